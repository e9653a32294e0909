"""TreeMutator: the only code that changes a paper tree's shape or fields."""

import logging

from pydantic import ValidationError

from paer.blocks.errors import (
    BlockNotFoundError,
    CannotDeleteRootError,
    DuplicateBlockIdError,
    InvalidChildTypeError,
    InvalidFieldError,
)
from paer.blocks.hierarchy import HierarchyRules, load_hierarchy
from paer.blocks.index import BlockIndex
from paer.blocks.nodes import (
    UPDATABLE_FIELDS,
    Block,
    PaperBlock,
    children_of,
    new_block,
    walk,
)

logger = logging.getLogger(__name__)


class TreeMutator:
    """Applies field updates, inserts, and deletes to one paper tree.

    Every structural change patches the BlockIndex for the affected subtree
    before returning, so index and path lookups are always current.
    """

    def __init__(
        self,
        root: PaperBlock,
        *,
        hierarchy: HierarchyRules | None = None,
    ) -> None:
        self._hierarchy = hierarchy or load_hierarchy()
        self._index = BlockIndex.build(root)

    @property
    def root(self) -> PaperBlock:
        return self._index.root

    @property
    def index(self) -> BlockIndex:
        return self._index

    @property
    def hierarchy(self) -> HierarchyRules:
        return self._hierarchy

    def update_field(self, block_id: str, field: str, value: str) -> Block:
        """Set one field on one block. Never changes tree shape.

        Assignment is validated before it happens, so a rejected value leaves
        the block untouched.
        """
        block = self._index.lookup(block_id).block
        if field not in UPDATABLE_FIELDS[block.type]:
            raise InvalidFieldError(block.type, field)
        try:
            setattr(block, field, value)
        except ValidationError as e:
            raise InvalidFieldError(block.type, field) from e
        return block

    def insert_block(
        self,
        parent_block_id: str,
        after_block_id: str | None,
        block_type: str,
    ) -> str:
        """Create a block of ``block_type`` under the parent; return its id.

        Placed right after ``after_block_id``, or first when it is None. A
        stale ``after_block_id`` (no longer a child of the parent) appends
        at the end instead of failing.
        """
        parent = self._index.lookup(parent_block_id).block
        self._hierarchy.check(parent.type, block_type)
        block = new_block(block_type)
        return self._place(parent, after_block_id, block)

    def insert_subtree(
        self,
        parent_block_id: str,
        after_block_id: str | None,
        block: Block,
    ) -> str:
        """Insert a prebuilt block (with its subtree) using insert positioning."""
        parent = self._index.lookup(parent_block_id).block
        self._hierarchy.check(parent.type, block.type)
        self._hierarchy.check_tree(block)
        self._reject_known_ids(block)
        return self._place(parent, after_block_id, block)

    def delete_block(self, block_id: str) -> Block:
        """Remove the subtree rooted at ``block_id`` and return it."""
        entry = self._index.lookup(block_id)
        if entry.parent_id is None:
            raise CannotDeleteRootError(block_id)
        siblings = children_of(self._index.lookup(entry.parent_id).block)
        removed = siblings.pop(entry.path[-1])
        self._index.discard(removed)
        self._index.reindex(entry.parent_id)
        return removed

    def replace_block(self, block: Block) -> Block:
        """Swap the block holding ``block.block_id`` for ``block`` in place.

        Used to adopt the authoritative copy of a node or subtree. Replacing
        the root swaps the whole tree.
        """
        return self.replace_block_as(block.block_id, block)

    def replace_block_as(self, old_block_id: str, block: Block) -> Block:
        """Swap the block ``old_block_id`` for ``block``, keeping its position.

        The replacement may carry a different id (an optimistic placeholder
        being swapped for the server's block). Returns the old block.
        """
        entry = self._index.lookup(old_block_id)
        old = entry.block
        if old.type != block.type:
            raise InvalidChildTypeError(old.type, block.type)

        if entry.parent_id is None:
            if not isinstance(block, PaperBlock):
                raise InvalidChildTypeError("paper", block.type)
            self._index.reset(block)
            return old

        self._index.discard(old)
        try:
            self._reject_known_ids(block)
        except DuplicateBlockIdError:
            self._index.reindex(entry.parent_id)
            raise
        siblings = children_of(self._index.lookup(entry.parent_id).block)
        siblings[entry.path[-1]] = block
        self._index.reindex(entry.parent_id)
        return old

    def _place(self, parent: Block, after_block_id: str | None, block: Block) -> str:
        siblings = children_of(parent)
        if after_block_id is None:
            position = 0
        else:
            position = next(
                (i + 1 for i, s in enumerate(siblings) if s.block_id == after_block_id),
                None,
            )
            if position is None:
                logger.debug(
                    "Stale after_block_id %s under %s, appending",
                    after_block_id, parent.block_id,
                )
                position = len(siblings)
        siblings.insert(position, block)
        self._index.reindex(parent.block_id)
        return block.block_id

    def _reject_known_ids(self, block: Block) -> None:
        seen: set[str] = set()
        for node, _ in walk(block):
            if node.block_id in self._index or node.block_id in seen:
                raise DuplicateBlockIdError(node.block_id)
            seen.add(node.block_id)
