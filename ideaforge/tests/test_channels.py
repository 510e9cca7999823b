"""
Tests: state channels and merge strategies.

Run with:
    pytest ideaforge/tests/test_channels.py -v
"""

from typing import Annotated

import pytest
from pydantic import BaseModel

from ideaforge.models.state import ProjectState
from ideaforge.orchestration.channels import (
    AppendList,
    AppendSet,
    MergeStrategy,
    channels_for,
    merge_append_list,
    merge_append_set,
    merge_replace,
    merge_state,
)


class Notebook(BaseModel):
    title: str = ""
    pages: Annotated[list[str], AppendList] = []
    labels: Annotated[list[str], AppendSet] = []


class TestReducers:
    def test_replace(self):
        assert merge_replace("old", "new") == "new"
        assert merge_replace("old", None) == "old"
        assert merge_replace([1], []) == []

    def test_append_list_keeps_duplicates(self):
        assert merge_append_list(["a"], ["a", "b"]) == ["a", "a", "b"]
        assert merge_append_list(None, ["x"]) == ["x"]

    def test_append_set_keeps_first_seen_order(self):
        assert merge_append_set(["b", "a"], ["a", "c", "b", "d"]) == ["b", "a", "c", "d"]

    def test_append_list_is_associative(self):
        a, b, c = ["1"], ["2", "3"], ["4"]
        left = merge_append_list(merge_append_list(a, b), c)
        right = merge_append_list(a, merge_append_list(b, c))
        assert left == right


class TestChannelsFor:
    def test_declared_strategies(self):
        channels = channels_for(Notebook)
        assert channels["title"].strategy is MergeStrategy.REPLACE
        assert channels["pages"].strategy is MergeStrategy.APPEND_LIST
        assert channels["labels"].strategy is MergeStrategy.APPEND_SET
        assert channels["pages"].appends
        assert channels["pages"].default_factory() == []

    def test_project_state_append_fields(self):
        channels = channels_for(ProjectState)
        appending = {name for name, ch in channels.items() if ch.appends}
        assert appending == {
            "analysis_notes",
            "technologies",
            "research_topics",
            "feedback",
            "change_log",
            "errors",
        }

    def test_append_strategy_needs_list_default(self):
        class Broken(BaseModel):
            count: Annotated[int, AppendList] = 0

        with pytest.raises(TypeError, match="default is not a list"):
            channels_for(Broken)


class TestMergeState:
    def test_partial_update(self):
        state = Notebook(title="draft", pages=["p1"], labels=["x"])
        merged = merge_state(state, {"pages": ["p2"], "labels": ["x", "y"], "title": "final"})
        assert merged.title == "final"
        assert merged.pages == ["p1", "p2"]
        assert merged.labels == ["x", "y"]
        # input untouched
        assert state.pages == ["p1"]

    def test_unknown_key_rejected(self):
        with pytest.raises(KeyError, match="no channel 'chapters'"):
            merge_state(Notebook(), {"chapters": []})

    def test_sequential_updates_match_single_merge(self):
        state = Notebook()
        one_by_one = merge_state(merge_state(state, {"pages": ["a"]}), {"pages": ["b"]})
        together = merge_state(state, {"pages": ["a", "b"]})
        assert one_by_one.pages == together.pages
