"""Block tree node model.

Six closed variants discriminated on ``type``. Containers keep their child
blocks in ``content``; a sentence keeps its text there instead. Serialized
keys match the editor's document format (``"block-id"``), so
``model_dump(by_alias=True)`` and ``load_block`` round-trip a document.
"""

from collections.abc import Iterator
from typing import Annotated, Any, Literal, Union, get_args
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

BlockType = Literal[
    "paper", "section", "subsection", "subsubsection", "paragraph", "sentence",
]
BLOCK_TYPES: tuple[str, ...] = get_args(BlockType)

TITLED_TYPES = frozenset({"paper", "section", "subsection", "subsubsection"})

# Fields a client may change after creation. ``type`` and ``block-id`` never change.
UPDATABLE_FIELDS: dict[str, frozenset[str]] = {
    "paper": frozenset({"title", "summary", "intent"}),
    "section": frozenset({"title", "summary", "intent"}),
    "subsection": frozenset({"title", "summary", "intent"}),
    "subsubsection": frozenset({"title", "summary", "intent"}),
    "paragraph": frozenset({"summary", "intent"}),
    "sentence": frozenset({"content", "summary", "intent"}),
}


def new_block_id() -> str:
    """Fresh block id. uuid4, so concurrent inserts never collide."""
    return str(uuid4())


class _BlockBase(BaseModel):
    model_config = ConfigDict(populate_by_name=True, validate_assignment=True)

    block_id: str = Field(default_factory=new_block_id, alias="block-id")
    summary: str = ""
    intent: str = ""


class SentenceBlock(_BlockBase):
    type: Literal["sentence"] = "sentence"
    content: str = ""


class ParagraphBlock(_BlockBase):
    type: Literal["paragraph"] = "paragraph"
    content: list[SentenceBlock] = Field(default_factory=list)


class SubsubsectionBlock(_BlockBase):
    type: Literal["subsubsection"] = "subsubsection"
    title: str = ""
    content: list["ChildBlock"] = Field(default_factory=list)


class SubsectionBlock(_BlockBase):
    type: Literal["subsection"] = "subsection"
    title: str = ""
    content: list["ChildBlock"] = Field(default_factory=list)


class SectionBlock(_BlockBase):
    type: Literal["section"] = "section"
    title: str = ""
    content: list["ChildBlock"] = Field(default_factory=list)


class PaperBlock(_BlockBase):
    """Tree root. Owner and collaborators are opaque user ids."""

    type: Literal["paper"] = "paper"
    title: str = "Untitled Paper"
    content: list["ChildBlock"] = Field(default_factory=list)
    author_id: str | None = None
    collaborator_ids: list[str] = Field(default_factory=list)


# Any non-root block parses under a paper or heading block; HierarchyRules
# decides which of those placements are allowed.
ChildBlock = Annotated[
    Union[SectionBlock, SubsectionBlock, SubsubsectionBlock, ParagraphBlock, SentenceBlock],
    Field(discriminator="type"),
]

Block = Annotated[
    Union[
        PaperBlock,
        SectionBlock,
        SubsectionBlock,
        SubsubsectionBlock,
        ParagraphBlock,
        SentenceBlock,
    ],
    Field(discriminator="type"),
]

for _model in (SubsubsectionBlock, SubsectionBlock, SectionBlock, PaperBlock):
    _model.model_rebuild()

_block_adapter: TypeAdapter[Block] = TypeAdapter(Block)


def load_block(data: dict[str, Any]) -> Block:
    """Parse one block (and its subtree) from its document form."""
    return _block_adapter.validate_python(data)


def load_paper(data: dict[str, Any]) -> PaperBlock:
    """Parse a whole paper document. The root must be of type paper."""
    return PaperBlock.model_validate(data)


def dump_block(block: Block) -> dict[str, Any]:
    """Document form of a block, keyed the way the editor expects."""
    return block.model_dump(by_alias=True, mode="json")


def children_of(block: Block) -> list:
    """The live child list of a container; an empty list for a sentence.

    Mutating the returned list mutates the tree.
    """
    match block:
        case SentenceBlock():
            return []
        case (
            PaperBlock()
            | SectionBlock()
            | SubsectionBlock()
            | SubsubsectionBlock()
            | ParagraphBlock()
        ):
            return block.content
    raise TypeError(f"Not a block: {block!r}")


def is_leaf(block: Block) -> bool:
    return isinstance(block, SentenceBlock)


def walk(
    block: Block, path: tuple[int, ...] = (),
) -> Iterator[tuple[Block, tuple[int, ...]]]:
    """Pre-order traversal yielding (block, path) pairs."""
    yield block, path
    for i, child in enumerate(children_of(block)):
        yield from walk(child, (*path, i))


def new_block(block_type: str, block_id: str | None = None) -> Block:
    """Build a block with type-appropriate defaults.

    A paragraph starts with one empty sentence so it is immediately editable.
    Titled blocks start with an empty title placeholder.
    """
    block_id = block_id or new_block_id()
    match block_type:
        case "section":
            return SectionBlock(block_id=block_id, title="")
        case "subsection":
            return SubsectionBlock(block_id=block_id, title="")
        case "subsubsection":
            return SubsubsectionBlock(block_id=block_id, title="")
        case "paragraph":
            return ParagraphBlock(block_id=block_id, content=[SentenceBlock()])
        case "sentence":
            return SentenceBlock(block_id=block_id, content="")
        case "paper":
            return PaperBlock(block_id=block_id)
    raise ValueError(f"Unknown block type: {block_type!r}")
