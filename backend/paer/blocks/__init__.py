"""Block tree core: node model, index, paths, and the mutator."""

from paer.blocks.errors import (
    BlockNotFoundError,
    BlockTreeError,
    CannotDeleteRootError,
    DuplicateBlockIdError,
    InvalidChildTypeError,
    InvalidFieldError,
    PathNotFoundError,
    PersistenceUnavailableError,
)
from paer.blocks.hierarchy import HierarchyRules, load_hierarchy
from paer.blocks.index import BlockIndex, IndexEntry
from paer.blocks.mutator import TreeMutator
from paer.blocks.nodes import (
    Block,
    PaperBlock,
    ParagraphBlock,
    SectionBlock,
    SentenceBlock,
    SubsectionBlock,
    SubsubsectionBlock,
    dump_block,
    load_block,
    load_paper,
    new_block,
    new_block_id,
)
from paer.blocks.paths import Breadcrumb, block_id_at, breadcrumbs, path_of, resolve_path

__all__ = [
    "Block",
    "BlockIndex",
    "BlockNotFoundError",
    "BlockTreeError",
    "Breadcrumb",
    "CannotDeleteRootError",
    "DuplicateBlockIdError",
    "HierarchyRules",
    "IndexEntry",
    "InvalidChildTypeError",
    "InvalidFieldError",
    "PaperBlock",
    "ParagraphBlock",
    "PathNotFoundError",
    "PersistenceUnavailableError",
    "SectionBlock",
    "SentenceBlock",
    "SubsectionBlock",
    "SubsubsectionBlock",
    "TreeMutator",
    "block_id_at",
    "breadcrumbs",
    "dump_block",
    "load_block",
    "load_hierarchy",
    "load_paper",
    "new_block",
    "new_block_id",
    "path_of",
    "resolve_path",
]
