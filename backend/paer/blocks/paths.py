"""Positional paths and breadcrumb chains.

A path is a tuple of child indices from the paper root. It is only valid for
the tree snapshot it was taken from: after any insert or delete, re-resolve by
block id before trusting a stored path again.
"""

from collections.abc import Sequence

from pydantic import BaseModel

from paer.blocks.errors import PathNotFoundError
from paer.blocks.index import BlockIndex
from paer.blocks.nodes import Block, PaperBlock, SentenceBlock, children_of

_LABEL_LENGTH = 40


class Breadcrumb(BaseModel):
    block_id: str
    type: str
    label: str


def resolve_path(root: PaperBlock, path: Sequence[int]) -> Block:
    """Walk child indices from the root. Raises PathNotFoundError."""
    current: Block = root
    for index in path:
        children = children_of(current)
        if not 0 <= index < len(children):
            raise PathNotFoundError(path)
        current = children[index]
    return current


def block_id_at(root: PaperBlock, path: Sequence[int]) -> str:
    return resolve_path(root, path).block_id


def path_of(index: BlockIndex, block_id: str) -> tuple[int, ...]:
    """Current path of ``block_id``. Raises BlockNotFoundError."""
    return index.lookup(block_id).path


def block_label(block: Block) -> str:
    """Short display label: the title, the start of a sentence, or the type."""
    if isinstance(block, SentenceBlock):
        text = block.content.strip()
        if len(text) > _LABEL_LENGTH:
            text = text[: _LABEL_LENGTH - 1].rstrip() + "…"
        return text or block.type
    title = getattr(block, "title", None)
    return title or block.type


def breadcrumbs(index: BlockIndex, block_id: str) -> list[Breadcrumb]:
    """Ancestor chain plus the block itself, root first."""
    chain = [*index.ancestors(block_id), index.lookup(block_id).block]
    return [
        Breadcrumb(block_id=b.block_id, type=b.type, label=block_label(b))
        for b in chain
    ]
