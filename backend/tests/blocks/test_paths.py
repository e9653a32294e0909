"""Tests for positional paths and breadcrumbs."""

import pytest

from paer.blocks.errors import BlockNotFoundError, PathNotFoundError
from paer.blocks.index import BlockIndex
from paer.blocks.mutator import TreeMutator
from paer.blocks.nodes import SentenceBlock
from paer.blocks.paths import block_id_at, block_label, breadcrumbs, path_of, resolve_path
from tests.fixtures import scenario_paper


class TestResolvePath:
    def test_empty_path_is_root(self):
        paper = scenario_paper()
        assert resolve_path(paper, []) is paper

    def test_resolves_nested_block(self):
        assert block_id_at(scenario_paper(), [0, 0, 0]) == "sen1"

    def test_out_of_range_raises(self):
        with pytest.raises(PathNotFoundError) as exc_info:
            resolve_path(scenario_paper(), [0, 1])
        assert exc_info.value.path == (0, 1)

    def test_negative_index_raises(self):
        with pytest.raises(PathNotFoundError):
            resolve_path(scenario_paper(), [-1])

    def test_walking_through_a_leaf_raises(self):
        with pytest.raises(PathNotFoundError):
            resolve_path(scenario_paper(), [0, 0, 0, 0])

    def test_path_not_found_is_a_not_found(self):
        with pytest.raises(BlockNotFoundError):
            resolve_path(scenario_paper(), [3])


class TestPathOf:
    def test_path_of_block(self):
        index = BlockIndex.build(scenario_paper())
        assert path_of(index, "par1") == (0, 0)

    def test_paths_shift_after_insert(self):
        """A stored path goes stale; the block id still finds the block."""
        mutator = TreeMutator(scenario_paper())
        old_path = path_of(mutator.index, "sen1")

        mutator.insert_block("par1", None, "sentence")

        assert path_of(mutator.index, "sen1") == (0, 0, 1)
        assert block_id_at(mutator.root, old_path) != "sen1"


class TestBreadcrumbs:
    def test_chain_root_first_with_labels(self):
        crumbs = breadcrumbs(BlockIndex.build(scenario_paper()), "sen1")
        assert [(c.block_id, c.label) for c in crumbs] == [
            ("root", "Scenario"),
            ("sec1", "Introduction"),
            ("par1", "paragraph"),
            ("sen1", "Hello"),
        ]

    def test_long_sentence_label_truncated(self):
        label = block_label(SentenceBlock(content="a" * 60))
        assert len(label) == 40
        assert label.endswith("…")

    def test_empty_title_falls_back_to_type(self):
        paper = scenario_paper()
        paper.content[0].title = ""
        assert block_label(paper.content[0]) == "section"
