"""Errors raised by block tree operations.

NotFound-style errors are expected outcomes (stale references after a
concurrent delete), not faults. Callers re-resolve by block id or refresh.
"""


class BlockTreeError(Exception):
    """Base class for every block tree error."""


class BlockNotFoundError(BlockTreeError):
    def __init__(self, block_id: str) -> None:
        self.block_id = block_id
        super().__init__(f"Block not found: {block_id}")


class PathNotFoundError(BlockNotFoundError):
    def __init__(self, path: tuple[int, ...] | list[int]) -> None:
        self.path = tuple(path)
        BlockTreeError.__init__(self, f"No block at path: {list(self.path)}")
        self.block_id = None


class InvalidChildTypeError(BlockTreeError):
    def __init__(self, parent_type: str, child_type: str) -> None:
        self.parent_type = parent_type
        self.child_type = child_type
        super().__init__(f"A {parent_type} cannot contain a {child_type}")


class CannotDeleteRootError(BlockTreeError):
    def __init__(self, block_id: str) -> None:
        self.block_id = block_id
        super().__init__(f"Cannot delete the paper root: {block_id}")


class InvalidFieldError(BlockTreeError):
    def __init__(self, block_type: str, field: str) -> None:
        self.block_type = block_type
        self.field = field
        super().__init__(f"Field {field!r} cannot be updated on a {block_type}")


class DuplicateBlockIdError(BlockTreeError):
    def __init__(self, block_id: str) -> None:
        self.block_id = block_id
        super().__init__(f"Duplicate block id: {block_id}")


class PersistenceUnavailableError(BlockTreeError):
    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Persistence unavailable: {reason}")
