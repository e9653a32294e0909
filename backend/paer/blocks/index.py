"""Block id -> (block, path, parent) lookup over one paper tree."""

from dataclasses import dataclass

from paer.blocks.errors import BlockNotFoundError, DuplicateBlockIdError
from paer.blocks.nodes import Block, PaperBlock, children_of, walk


@dataclass(frozen=True)
class IndexEntry:
    block: Block
    path: tuple[int, ...]
    parent_id: str | None


class BlockIndex:
    """Derived lookup structure for a paper tree.

    ``build`` does a full O(n) traversal. After a structural mutation the
    mutator patches only the affected subtree with ``discard`` and
    ``reindex``; field updates need no patching because entries hold block
    references.
    """

    def __init__(self, root: PaperBlock) -> None:
        self._root = root
        self._entries: dict[str, IndexEntry] = {}

    @classmethod
    def build(cls, root: PaperBlock) -> "BlockIndex":
        """Index every block under ``root``. Raises DuplicateBlockIdError."""
        index = cls(root)
        index._visit(root, (), None, strict=True)
        return index

    @property
    def root(self) -> PaperBlock:
        return self._root

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, block_id: object) -> bool:
        return block_id in self._entries

    def block_ids(self) -> set[str]:
        return set(self._entries)

    def get(self, block_id: str) -> IndexEntry | None:
        return self._entries.get(block_id)

    def lookup(self, block_id: str) -> IndexEntry:
        """Entry for ``block_id``. Raises BlockNotFoundError."""
        entry = self._entries.get(block_id)
        if entry is None:
            raise BlockNotFoundError(block_id)
        return entry

    def ancestors(self, block_id: str) -> list[Block]:
        """Ancestor blocks of ``block_id``, root first, excluding the block itself."""
        chain: list[Block] = []
        parent_id = self.lookup(block_id).parent_id
        while parent_id is not None:
            entry = self._entries[parent_id]
            chain.append(entry.block)
            parent_id = entry.parent_id
        chain.reverse()
        return chain

    def parent(self, block_id: str) -> Block | None:
        parent_id = self.lookup(block_id).parent_id
        if parent_id is None:
            return None
        return self._entries[parent_id].block

    def reindex(self, block_id: str) -> None:
        """Re-derive entries for the subtree rooted at ``block_id``.

        Call after the block's child list changed. Ids inside the subtree
        are overwritten; collisions with blocks elsewhere must be rejected
        before the tree is changed.
        """
        entry = self.lookup(block_id)
        self._visit(entry.block, entry.path, entry.parent_id, strict=False)

    def discard(self, block: Block) -> None:
        """Forget every entry of a subtree that was removed from the tree."""
        for node, _ in walk(block):
            self._entries.pop(node.block_id, None)

    def reset(self, root: PaperBlock) -> None:
        """Point the index at a new root and rebuild from scratch.

        The new entries are built aside first; on DuplicateBlockIdError the
        index still describes the old root.
        """
        rebuilt = BlockIndex.build(root)
        self._root, self._entries = rebuilt._root, rebuilt._entries

    def _visit(
        self,
        block: Block,
        path: tuple[int, ...],
        parent_id: str | None,
        *,
        strict: bool,
    ) -> None:
        if strict and block.block_id in self._entries:
            raise DuplicateBlockIdError(block.block_id)
        self._entries[block.block_id] = IndexEntry(block, path, parent_id)
        for i, child in enumerate(children_of(block)):
            self._visit(child, (*path, i), block.block_id, strict=strict)
