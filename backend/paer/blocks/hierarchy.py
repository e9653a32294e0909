"""Parent/child type rules for the block tree.

The rules are a guideline for well-formed papers, not a schema: the default
``lenient`` set accepts the shapes real documents have (paragraphs directly
under the paper, sections without subsections). Both sets always reject a
nested paper, children under a sentence, and sentences outside paragraphs.
"""

from functools import cache
from pathlib import Path

import yaml

from paer.blocks.errors import InvalidChildTypeError
from paer.blocks.nodes import BLOCK_TYPES, Block, children_of, walk

_HIERARCHY_PATH = Path(__file__).parent.parent / "block_hierarchy.yml"

DEFAULT_MODE = "lenient"


class HierarchyRules:
    """Allowed child types per parent type."""

    def __init__(self, mode: str, allowed: dict[str, frozenset[str]]) -> None:
        self.mode = mode
        self._allowed = allowed

    def allows(self, parent_type: str, child_type: str) -> bool:
        return child_type in self._allowed.get(parent_type, frozenset())

    def allowed_children(self, parent_type: str) -> frozenset[str]:
        return self._allowed.get(parent_type, frozenset())

    def check(self, parent_type: str, child_type: str) -> None:
        """Raise InvalidChildTypeError unless the pairing is allowed."""
        if not self.allows(parent_type, child_type):
            raise InvalidChildTypeError(parent_type, child_type)

    def check_tree(self, root: Block) -> None:
        """Validate every parent/child pairing below ``root``."""
        for block, _ in walk(root):
            for child in children_of(block):
                self.check(block.type, child.type)


@cache
def load_hierarchy(mode: str = DEFAULT_MODE) -> HierarchyRules:
    """Load a rule set from block_hierarchy.yml."""
    with open(_HIERARCHY_PATH) as f:
        data = yaml.safe_load(f)
    if mode not in data:
        raise ValueError(f"Unknown hierarchy mode: {mode!r}")

    allowed: dict[str, frozenset[str]] = {}
    for parent_type in BLOCK_TYPES:
        children = data[mode].get(parent_type) or []
        unknown = set(children) - set(BLOCK_TYPES)
        if unknown:
            raise ValueError(f"Unknown block types in {mode} rules: {sorted(unknown)}")
        allowed[parent_type] = frozenset(children)
    return HierarchyRules(mode, allowed)
