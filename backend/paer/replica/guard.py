"""ConsistencyGuard: optimistic local edits reconciled against the server.

Every mutation is two explicit phases. The replica applies it locally first,
then sends it to the persistence service and adopts the server's answer in
place of its own copy. Reconciliation always goes by block id, never by path,
since sibling positions may have shifted between the two phases.

Local edits the server has not confirmed yet (in flight, failed, or
cancelled) survive adoption of an enclosing subtree: they are re-applied on
top of the server's copy.
"""

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from paer.blocks.errors import (
    BlockNotFoundError,
    CannotDeleteRootError,
    InvalidChildTypeError,
    PersistenceUnavailableError,
)
from paer.blocks.hierarchy import HierarchyRules
from paer.blocks.index import BlockIndex
from paer.blocks.locks import KeyedLock
from paer.blocks.mutator import TreeMutator
from paer.blocks.nodes import (
    UPDATABLE_FIELDS,
    Block,
    PaperBlock,
    children_of,
    new_block,
    new_block_id,
    walk,
)
from paer.replica.persistence import PersistenceService

logger = logging.getLogger(__name__)

PENDING_PREFIX = "pending-"


def provisional_block_id() -> str:
    """Local id for an optimistic insert, replaced once the server answers."""
    return f"{PENDING_PREFIX}{new_block_id()}"


class ConsistencyGuard:
    """A client replica of one paper tree.

    Locks are per key: a field write holds its block, an insert or delete
    holds the parent whose children change. Edits to different keys run
    concurrently.
    """

    def __init__(
        self,
        persistence: PersistenceService,
        paper_id: str,
        *,
        hierarchy: HierarchyRules | None = None,
    ) -> None:
        self._persistence = persistence
        self._paper_id = paper_id
        self._hierarchy = hierarchy
        self._mutator: TreeMutator | None = None
        self._locks = KeyedLock()
        self.unconfirmed: set[str] = set()
        # Local edits not yet confirmed by the server, in flight or not.
        self._local_fields: dict[str, set[str]] = {}
        self._local_inserts: set[str] = set()
        self._local_deletes: set[str] = set()

    @property
    def paper_id(self) -> str:
        return self._paper_id

    @property
    def mutator(self) -> TreeMutator:
        if self._mutator is None:
            raise RuntimeError("Replica not loaded; call load() first")
        return self._mutator

    @property
    def tree(self) -> PaperBlock:
        return self.mutator.root

    @property
    def index(self) -> BlockIndex:
        return self.mutator.index

    async def load(self) -> PaperBlock:
        """Fetch the authoritative tree and drop all local state."""
        root = await self._persistence.get_tree(self._paper_id)
        self._mutator = TreeMutator(root, hierarchy=self._hierarchy)
        self.unconfirmed.clear()
        self._local_fields.clear()
        self._local_inserts.clear()
        self._local_deletes.clear()
        return root

    async def refresh(self) -> PaperBlock:
        logger.debug("Refreshing replica of paper %s", self._paper_id)
        return await self.load()

    async def update_field(self, block_id: str, field: str, value: str) -> Block:
        """Write one field locally, then adopt the server's copy of the node."""
        async with self._locks.hold(block_id):
            self.mutator.update_field(block_id, field, value)
            self._local_fields.setdefault(block_id, set()).add(field)
            async with self._confirming(block_id):
                confirmed = await self._persistence.save_field(
                    self._paper_id, block_id, field, value,
                )
            fields = self._local_fields.get(block_id)
            if fields is not None:
                fields.discard(field)
                if not fields:
                    del self._local_fields[block_id]
            return self._adopt_fields(confirmed)

    async def insert_block(
        self,
        parent_block_id: str,
        after_block_id: str | None,
        block_type: str,
    ) -> str:
        """Insert locally under a provisional id; return the server's id."""
        async with self._locks.hold(parent_block_id):
            placeholder = new_block(block_type, block_id=provisional_block_id())
            self.mutator.insert_subtree(parent_block_id, after_block_id, placeholder)
            self._local_inserts.add(placeholder.block_id)
            async with self._confirming(placeholder.block_id, parent_block_id):
                result = await self._persistence.insert_node(
                    self._paper_id, parent_block_id, after_block_id, block_type,
                )
            self._local_inserts.discard(placeholder.block_id)
            self._adopt_subtree(
                result.parent,
                {placeholder.block_id, parent_block_id, result.block_id},
            )
            return result.block_id

    async def delete_block(self, block_id: str) -> None:
        """Delete locally, then adopt the server's copy of the parent."""
        parent_id = self.index.lookup(block_id).parent_id
        if parent_id is None:
            raise CannotDeleteRootError(block_id)

        async with self._locks.hold(parent_id):
            removed = self.mutator.delete_block(block_id)
            self._local_deletes.add(block_id)
            async with self._confirming(block_id, parent_id):
                result = await self._persistence.delete_node(self._paper_id, block_id)
            self._local_deletes.discard(block_id)

            gone = {node.block_id for node, _ in walk(removed)}
            for old_id in gone:
                self._local_fields.pop(old_id, None)
                self._local_inserts.discard(old_id)
            self._adopt_subtree(result.parent, gone | {parent_id})

    @asynccontextmanager
    async def _confirming(self, *block_ids: str) -> AsyncIterator[None]:
        """Wrap the server round-trip of one mutation."""
        try:
            yield
        except (BlockNotFoundError, InvalidChildTypeError, CannotDeleteRootError) as e:
            logger.debug("Server rejected edit (%s); refreshing", e)
            await self.refresh()
            raise
        except PersistenceUnavailableError:
            self.unconfirmed.update(block_ids)
            logger.warning("Unconfirmed local edit to %s", ", ".join(block_ids))
            raise
        except asyncio.CancelledError:
            self.unconfirmed.update(block_ids)
            raise

    def _adopt_fields(self, confirmed: Block) -> Block:
        """Copy the server's field values onto the local node, leaving its
        children (and any pending edits below it) alone.

        Fields with a local value still awaiting confirmation keep it.
        """
        entry = self.index.get(confirmed.block_id)
        if entry is None:
            logger.debug("Block %s left the replica before confirm", confirmed.block_id)
            return confirmed
        pending = self._local_fields.get(confirmed.block_id, set())
        for field in UPDATABLE_FIELDS[confirmed.type] - pending:
            setattr(entry.block, field, getattr(confirmed, field))
        if not pending:
            self.unconfirmed.discard(confirmed.block_id)
        return entry.block

    def _adopt_subtree(self, confirmed: Block, settled: set[str]) -> None:
        """Replace the local subtree with the server's, by block id.

        Only ``settled`` ids leave ``unconfirmed``. Other local edits inside
        the subtree are carried over onto the server's copy.
        """
        self.unconfirmed.difference_update(settled)
        entry = self.index.get(confirmed.block_id)
        if entry is None:
            logger.debug("Block %s left the replica before confirm", confirmed.block_id)
            return

        fields, placeholders = self._local_edits_under(entry.block)
        self.mutator.replace_block(confirmed)

        for block_id in list(self._local_deletes):
            if block_id in self.index:
                self.mutator.delete_block(block_id)
        for parent_id, after_id, placeholder in placeholders:
            try:
                self.mutator.insert_subtree(parent_id, after_id, placeholder)
            except BlockNotFoundError:
                logger.debug(
                    "Dropping pending block %s: parent %s is gone",
                    placeholder.block_id, parent_id,
                )
                self._local_inserts.discard(placeholder.block_id)
                self.unconfirmed.discard(placeholder.block_id)
        for block_id, values in fields.items():
            node = self.index.get(block_id)
            if node is None:
                continue
            for field, value in values.items():
                setattr(node.block, field, value)

    def _local_edits_under(
        self, root: Block,
    ) -> tuple[dict[str, dict[str, str]], list[tuple[str, str | None, Block]]]:
        """Snapshot the unconfirmed field values and placeholders below ``root``.

        Placeholders come in document order with the sibling they follow, so
        re-inserting them in order restores their positions.
        """
        fields: dict[str, dict[str, str]] = {}
        placeholders: list[tuple[str, str | None, Block]] = []
        carried: set[str] = set()
        for node, _ in walk(root):
            if node.block_id in carried:
                continue
            if node.block_id in self._local_inserts:
                entry = self.index.lookup(node.block_id)
                siblings = children_of(self.index.lookup(entry.parent_id).block)
                position = entry.path[-1]
                after_id = siblings[position - 1].block_id if position else None
                placeholders.append((entry.parent_id, after_id, node))
                carried.update(n.block_id for n, _ in walk(node))
                continue
            local = self._local_fields.get(node.block_id)
            if local:
                fields[node.block_id] = {f: getattr(node, f) for f in local}
        return fields, placeholders
