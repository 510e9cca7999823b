"""
Tests: Stage Graph Engine — ordering, routing, failures, limits.

Run with:
    pytest ideaforge/tests/test_engine.py -v
"""

import asyncio
from typing import Annotated

import pytest
from langgraph.graph import END
from pydantic import BaseModel

from ideaforge.errors import FatalStageError, GraphDefinitionError
from ideaforge.orchestration.channels import AppendList
from ideaforge.orchestration.engine import StageGraph


class Flow(BaseModel):
    value: int = 0
    trail: Annotated[list[str], AppendList] = []
    errors: Annotated[list[str], AppendList] = []


def _mark(name: str, step: int = 1):
    def stage(state: Flow) -> dict:
        return {"trail": [name], "value": state.value + step}
    return stage


def _linear(**kwargs) -> StageGraph:
    graph = StageGraph(Flow, **kwargs)
    graph.register("a", _mark("a"))
    graph.register("b", _mark("b"))
    graph.register("c", _mark("c"))
    graph.add_edge("a", "b")
    graph.add_edge("b", "c")
    graph.set_entry("a")
    return graph


def _run(graph: StageGraph, state=None, **kwargs):
    return asyncio.run(graph.compile().run(state or Flow(), **kwargs))


class TestLinearRun:
    def test_stages_run_in_order(self):
        result = _run(_linear())
        assert result.visited == ["a", "b", "c"]
        assert result.state.trail == ["a", "b", "c"]
        assert result.state.value == 3
        assert result.completed
        assert result.state.errors == []

    def test_initial_state_as_mapping(self):
        result = _run(_linear(), {"value": 10, "trail": ["seed"]})
        assert result.state.value == 13
        assert result.state.trail == ["seed", "a", "b", "c"]

    def test_async_stage(self):
        async def slow(state: Flow) -> dict:
            await asyncio.sleep(0)
            return {"trail": ["async"]}

        graph = StageGraph(Flow)
        graph.register("only", slow)
        result = _run(graph)
        assert result.state.trail == ["async"]

    def test_entry_inferred_from_edges(self):
        graph = StageGraph(Flow)
        graph.register("b", _mark("b"))
        graph.register("a", _mark("a"))
        graph.add_edge("a", "b")
        assert graph.compile().entry == "a"

    def test_start_at(self):
        result = _run(_linear(), start_at="b")
        assert result.visited == ["b", "c"]

    def test_run_sync(self):
        result = _linear().compile().run_sync(Flow(value=1))
        assert result.state.value == 4
        assert result.visited == ["a", "b", "c"]

    def test_stage_end_hook_sees_cursor(self):
        seen = []

        def hook(stage, state, cursor):
            seen.append((stage, cursor.next_stage, state.value))

        _run(_linear(), on_stage_end=hook)
        assert seen == [("a", "b", 1), ("b", "c", 2), ("c", None, 3)]


class TestRouting:
    def test_conditional_edge(self):
        graph = StageGraph(Flow)
        graph.register("start", _mark("start", step=5))
        graph.register("big", _mark("big"))
        graph.register("small", _mark("small"))
        graph.add_conditional_edge(
            "start",
            lambda s: "high" if s.value > 3 else "low",
            {"high": "big", "low": "small"},
        )
        result = _run(graph)
        assert result.visited == ["start", "big"]

    def test_label_sequence_and_end(self):
        graph = StageGraph(Flow)
        graph.register("start", _mark("start"))
        graph.register("next", _mark("next"))
        graph.add_conditional_edge("start", lambda s: END, ["next", END])
        result = _run(graph)
        assert result.visited == ["start"]
        assert result.completed

    def test_unknown_label_halts(self):
        graph = StageGraph(Flow)
        graph.register("start", _mark("start"))
        graph.register("next", _mark("next"))
        graph.add_conditional_edge("start", lambda s: "nowhere", ["next"])
        result = _run(graph)
        assert result.halted
        assert result.state.errors == ["start routing error: unknown label 'nowhere'"]

    def test_cycle_stops_at_max_steps(self):
        graph = StageGraph(Flow, max_steps=5)
        graph.register("ping", _mark("ping"))
        graph.register("pong", _mark("pong"))
        graph.add_edge("ping", "pong")
        graph.add_conditional_edge("pong", lambda s: "again", {"again": "ping"})
        graph.set_entry("ping")
        result = _run(graph)
        assert result.visited == ["ping", "pong", "ping", "pong", "ping"]
        assert result.halted
        assert result.state.errors == ["engine error: exceeded maximum of 5 stage steps"]


class TestFailures:
    def test_stage_error_is_recorded_and_run_continues(self):
        def broken(state: Flow) -> dict:
            raise ValueError("boom")

        graph = StageGraph(Flow)
        graph.register("a", _mark("a"))
        graph.register("b", broken)
        graph.register("c", _mark("c"))
        graph.add_edge("a", "b")
        graph.add_edge("b", "c")
        result = _run(graph)
        assert result.visited == ["a", "b", "c"]
        assert result.state.errors == ["b error: boom"]
        assert result.state.trail == ["a", "c"]
        assert result.completed

    def test_fatal_error_halts_with_partial_update(self):
        def fatal(state: Flow) -> dict:
            raise FatalStageError("stop here", update={"value": 42})

        graph = StageGraph(Flow)
        graph.register("a", _mark("a"))
        graph.register("b", fatal)
        graph.register("c", _mark("c"))
        graph.add_edge("a", "b")
        graph.add_edge("b", "c")
        result = _run(graph)
        assert result.visited == ["a", "b"]
        assert result.halted
        assert result.state.value == 42
        assert result.state.errors == ["b error: stop here"]

    def test_unknown_field_is_an_error(self):
        graph = StageGraph(Flow)
        graph.register("a", lambda s: {"bogus": 1, "value": 2})
        result = _run(graph)
        assert result.state.value == 2
        assert result.state.errors == ["a error: wrote unknown field 'bogus'"]

    def test_stage_timeout(self):
        async def hang(state: Flow) -> dict:
            await asyncio.sleep(5)
            return {}

        graph = StageGraph(Flow, stage_timeout=0.01)
        graph.register("hang", hang)
        result = _run(graph)
        assert result.state.errors == ["hang error: timed out after 0.01s"]


class TestCancellation:
    def test_cancel_before_start(self):
        event = asyncio.Event()
        event.set()
        result = _run(_linear(), cancel_event=event)
        assert result.visited == []
        assert result.cursor.cancelled
        assert result.state.value == 0

    def test_cancel_between_stages(self):
        event = asyncio.Event()

        def stop_after(state: Flow) -> dict:
            event.set()
            return {"trail": ["a"]}

        graph = StageGraph(Flow)
        graph.register("a", stop_after)
        graph.register("b", _mark("b"))
        graph.add_edge("a", "b")
        result = _run(graph, cancel_event=event)
        assert result.visited == ["a"]
        assert result.cursor.halt_reason == "cancelled before b"
        assert result.state.trail == ["a"]


class TestCompile:
    def test_no_stages(self):
        with pytest.raises(GraphDefinitionError, match="no stages registered"):
            StageGraph(Flow).compile()

    def test_edge_to_unregistered_stage(self):
        graph = StageGraph(Flow)
        graph.register("a", _mark("a"))
        graph.add_edge("a", "ghost")
        with pytest.raises(GraphDefinitionError, match="unregistered stage"):
            graph.compile()

    def test_stage_name_shadowing_field(self):
        graph = StageGraph(Flow)
        graph.register("value", _mark("value"))
        with pytest.raises(GraphDefinitionError, match="shadows a state field"):
            graph.compile()

    def test_error_field_must_append(self):
        class NoErrors(BaseModel):
            value: int = 0

        graph = StageGraph(NoErrors)
        graph.register("a", _mark("a"))
        with pytest.raises(GraphDefinitionError, match="AppendList"):
            graph.compile()

    def test_duplicate_registration(self):
        graph = StageGraph(Flow)
        graph.register("a", _mark("a"))
        with pytest.raises(GraphDefinitionError, match="already registered"):
            graph.register("a", _mark("a"))

    def test_second_outgoing_edge(self):
        graph = _linear()
        with pytest.raises(GraphDefinitionError, match="already has an outgoing edge"):
            graph.add_edge("a", "c")
