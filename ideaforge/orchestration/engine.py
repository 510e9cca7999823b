"""
Stage Graph Engine — named stages joined by directed transitions,
executed on top of a LangGraph StateGraph.

    graph = StageGraph(ProjectState)
    graph.register("parse", parse_stage)
    graph.register("analyse", analyse_stage)
    graph.add_conditional_edge("parse", has_feedback, {"yes": "refine", "no": "analyse"})
    graph.set_entry("parse")
    result = await graph.compile().run(ProjectState(raw_content=text))

Execution model:
  - exactly one stage runs at a time; its partial update is merged through
    each field's declared strategy (see channels.py)
  - the next stage is resolved against the merged state; a stage with no
    outgoing edge is terminal
  - a stage that raises gets "<stage> error: <msg>" appended to the error
    field and the run continues along its edge; FatalStageError ends the run
  - control flow lives in a RunCursor, never in the user-visible state
  - cancellation is checked at every stage boundary; max_steps bounds the
    number of stage executions so a cycle that never exits still stops
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from contextlib import aclosing
from dataclasses import dataclass, field
from typing import Any, Annotated, Awaitable, Callable, Mapping, Optional, Sequence, TypedDict, Union

from langgraph.errors import GraphRecursionError
from langgraph.graph import END, START, StateGraph
from pydantic import BaseModel

from ideaforge.errors import FatalStageError, GraphDefinitionError, StageError
from .channels import Channel, MergeStrategy, channels_for, state_values

logger = logging.getLogger(__name__)

StageUpdate = Optional[Mapping[str, Any]]
StageFn = Callable[[Any], Union[StageUpdate, Awaitable[StageUpdate]]]
Predicate = Callable[[Any], Any]
StageEndHook = Callable[[str, BaseModel, "RunCursor"], Any]

DEFAULT_MAX_STEPS = 100


def _name(value: Any) -> str:
    """Accept plain strings or str-valued enums as stage names / labels."""
    return str(getattr(value, "value", value))


# ── Cursor & result ──────────────────────────────────────


@dataclass
class RunCursor:
    """Engine-owned control flow for one run."""
    current_stage: Optional[str] = None
    next_stage: Optional[str] = None
    visited: list[str] = field(default_factory=list)
    steps: int = 0
    halted: bool = False
    halt_reason: str = ""
    cancelled: bool = False

    def halt(self, reason: str, cancelled: bool = False) -> None:
        self.halted = True
        self.halt_reason = reason
        self.cancelled = self.cancelled or cancelled
        self.next_stage = None

    def snapshot(self) -> dict[str, Any]:
        return {
            "current_stage": self.current_stage,
            "next_stage": self.next_stage,
            "visited": list(self.visited),
            "steps": self.steps,
            "halted": self.halted,
            "halt_reason": self.halt_reason,
            "cancelled": self.cancelled,
        }


@dataclass
class RunResult:
    state: Any
    cursor: RunCursor

    @property
    def visited(self) -> list[str]:
        return self.cursor.visited

    @property
    def halted(self) -> bool:
        return self.cursor.halted

    @property
    def completed(self) -> bool:
        return not self.cursor.halted


@dataclass(frozen=True)
class _Edge:
    target: Optional[str] = None
    predicate: Optional[Predicate] = None
    labels: Mapping[str, str] = field(default_factory=dict)

    def targets(self) -> set[str]:
        if self.predicate is None:
            return {self.target}
        return set(self.labels.values())


# ── Builder ──────────────────────────────────────────────


class StageGraph:
    """Mutable graph definition. compile() freezes and validates it."""

    def __init__(
        self,
        state_model: type[BaseModel],
        *,
        error_field: str = "errors",
        max_steps: int = DEFAULT_MAX_STEPS,
        stage_timeout: Optional[float] = None,
    ):
        self.state_model = state_model
        self.channels = channels_for(state_model)
        self.error_field = error_field
        self.max_steps = max_steps
        self.stage_timeout = stage_timeout
        self._stages: dict[str, StageFn] = {}
        self._edges: dict[str, _Edge] = {}
        self._entry: Optional[str] = None

    def register(self, name: Any, fn: StageFn) -> StageGraph:
        stage = _name(name)
        if not stage or stage in (START, END):
            raise GraphDefinitionError(f"Invalid stage name: {stage!r}")
        if stage in self._stages:
            raise GraphDefinitionError(f"Stage already registered: {stage}")
        self._stages[stage] = fn
        return self

    add_stage = register

    def add_edge(self, source: Any, target: Any) -> StageGraph:
        src = _name(source)
        self._claim_source(src)
        self._edges[src] = _Edge(target=_name(target))
        return self

    def add_conditional_edge(
        self,
        source: Any,
        predicate: Predicate,
        label_map: Union[Mapping[Any, Any], Sequence[Any]],
    ) -> StageGraph:
        """
        *predicate* receives the merged state and returns one label of
        *label_map*. A sequence means each target is its own label.
        """
        src = _name(source)
        self._claim_source(src)
        if isinstance(label_map, Mapping):
            labels = {_name(k): _name(v) for k, v in label_map.items()}
        else:
            labels = {_name(t): _name(t) for t in label_map}
        if not labels:
            raise GraphDefinitionError(f"Conditional edge from {src} has no labels")
        self._edges[src] = _Edge(predicate=predicate, labels=labels)
        return self

    def set_entry(self, name: Any) -> StageGraph:
        if self._entry is not None:
            raise GraphDefinitionError(f"Entry stage already set to {self._entry}")
        self._entry = _name(name)
        return self

    def compile(self) -> CompiledStageGraph:
        problems: list[str] = []
        if not self._stages:
            problems.append("no stages registered")
        for stage in self._stages:
            if stage in self.channels:
                problems.append(f"stage '{stage}' shadows a state field of the same name")

        for src, edge in self._edges.items():
            if src not in self._stages:
                problems.append(f"edge source '{src}' is not a registered stage")
            for target in sorted(edge.targets()):
                if target != END and target not in self._stages:
                    problems.append(f"edge {src} → '{target}' targets an unregistered stage")

        err = self.channels.get(self.error_field)
        if err is None or err.strategy is not MergeStrategy.APPEND_LIST:
            problems.append(f"error field '{self.error_field}' must be an AppendList channel")

        entry = self._entry
        if entry is not None and entry not in self._stages:
            problems.append(f"entry stage '{entry}' is not registered")
        if entry is None and self._stages:
            incoming = {t for e in self._edges.values() for t in e.targets()}
            candidates = [s for s in self._stages if s not in incoming]
            if len(candidates) != 1:
                problems.append(f"expected exactly one entry stage, found {candidates or 'none'}")
            else:
                entry = candidates[0]

        if problems:
            raise GraphDefinitionError("; ".join(problems))

        logger.debug(f"[ENGINE] Compiled graph: {len(self._stages)} stages | entry={entry}")
        return CompiledStageGraph(
            state_model=self.state_model,
            channels=self.channels,
            stages=dict(self._stages),
            edges=dict(self._edges),
            entry=entry,
            error_field=self.error_field,
            max_steps=self.max_steps,
            stage_timeout=self.stage_timeout,
        )

    def _claim_source(self, src: str) -> None:
        if src in self._edges:
            raise GraphDefinitionError(f"Stage {src} already has an outgoing edge")


# ── Compiled graph ───────────────────────────────────────


class CompiledStageGraph:
    """Validated graph. Each run() builds a fresh LangGraph bound to its own cursor."""

    def __init__(
        self,
        state_model: type[BaseModel],
        channels: dict[str, Channel],
        stages: dict[str, StageFn],
        edges: dict[str, _Edge],
        entry: str,
        error_field: str,
        max_steps: int,
        stage_timeout: Optional[float],
    ):
        self.state_model = state_model
        self.channels = channels
        self.stages = stages
        self.edges = edges
        self.entry = entry
        self.error_field = error_field
        self.max_steps = max_steps
        self.stage_timeout = stage_timeout
        self._schema = _channel_schema(state_model, channels)

    @property
    def stage_names(self) -> list[str]:
        return list(self.stages)

    async def run(
        self,
        initial_state: Union[BaseModel, Mapping[str, Any], None] = None,
        *,
        start_at: Optional[str] = None,
        cancel_event: Optional[asyncio.Event] = None,
        on_stage_end: Optional[StageEndHook] = None,
    ) -> RunResult:
        state = self._coerce(initial_state)
        start = _name(start_at) if start_at else self.entry
        if start not in self.stages:
            raise GraphDefinitionError(f"Cannot start at unregistered stage '{start}'")

        cursor = RunCursor(next_stage=start)
        app = self._build(cursor, start, cancel_event)
        latest = state_values(state)
        reported = 0

        try:
            stream = app.astream(
                latest,
                config={"recursion_limit": self.max_steps + 5},
                stream_mode="values",
            )
            async with aclosing(stream) as updates:
                async for values in updates:
                    latest = values
                    if on_stage_end is not None and len(cursor.visited) > reported:
                        reported = len(cursor.visited)
                        outcome = on_stage_end(cursor.visited[-1], self._model(latest), cursor)
                        if inspect.isawaitable(outcome):
                            await outcome
        except GraphRecursionError:
            message = f"engine error: exceeded maximum of {self.max_steps} stage steps"
            logger.warning(f"[ENGINE] {message}")
            cursor.halt(message)
            latest = dict(latest)
            latest[self.error_field] = self.channels[self.error_field].merge(
                latest.get(self.error_field), [message]
            )

        final = self._model(latest)
        logger.info(
            f"[ENGINE] Run finished after {cursor.steps} steps | "
            f"halted={cursor.halted} | errors={len(getattr(final, self.error_field))}"
        )
        return RunResult(state=final, cursor=cursor)

    def run_sync(self, initial_state: Union[BaseModel, Mapping[str, Any], None] = None, **kwargs: Any) -> RunResult:
        return asyncio.run(self.run(initial_state, **kwargs))

    # ── LangGraph wiring ─────────────────────────────────

    def _build(self, cursor: RunCursor, start: str, cancel_event: Optional[asyncio.Event]):
        builder = StateGraph(self._schema)
        for name, fn in self.stages.items():
            builder.add_node(name, self._node(name, fn, cursor, cancel_event))
        builder.add_edge(START, start)

        def follow_cursor(_values: dict[str, Any]) -> str:
            if cursor.halted:
                return END
            return cursor.next_stage or END

        for name in self.stages:
            edge = self.edges.get(name)
            targets = sorted(edge.targets()) if edge else []
            path_map = {t: t for t in targets}
            path_map[END] = END
            builder.add_conditional_edges(name, follow_cursor, path_map)
        return builder.compile()

    def _node(self, name: str, fn: StageFn, cursor: RunCursor, cancel_event: Optional[asyncio.Event]):
        async def node(values: dict[str, Any]) -> dict[str, Any]:
            if cancel_event is not None and cancel_event.is_set():
                logger.info(f"[ENGINE] Cancelled before {name}")
                cursor.halt(f"cancelled before {name}", cancelled=True)
                return {}
            if cursor.steps >= self.max_steps:
                message = f"engine error: exceeded maximum of {self.max_steps} stage steps"
                logger.warning(f"[ENGINE] {message} (next was {name})")
                cursor.halt(message)
                return {self.error_field: [message]}

            cursor.steps += 1
            cursor.current_stage = name
            cursor.visited.append(name)
            errors: list[str] = []

            try:
                update = dict(await self._invoke(fn, self._model(values)) or {})
            except FatalStageError as exc:
                message = f"{name} error: {exc}"
                logger.error(f"[ENGINE] Fatal: {message}")
                cursor.halt(message)
                update = self._clean(name, exc.update, errors)
                update[self.error_field] = [*update.get(self.error_field, []), *errors, message]
                return update
            except asyncio.TimeoutError:
                failure = StageError(name, f"timed out after {self.stage_timeout}s")
                logger.error(f"[ENGINE] {failure}")
                update, errors = {}, [str(failure)]
            except Exception as exc:
                failure = StageError(name, str(exc))
                logger.error(f"[ENGINE] {failure}")
                update, errors = {}, [str(failure)]

            update = self._clean(name, update, errors)
            self._resolve_next(name, values, update, cursor, errors)
            if errors:
                update[self.error_field] = [*update.get(self.error_field, []), *errors]
            return update

        node.__name__ = f"stage_{name}"
        return node

    async def _invoke(self, fn: StageFn, state: BaseModel) -> StageUpdate:
        async def call() -> StageUpdate:
            result = fn(state)
            if inspect.isawaitable(result):
                result = await result
            return result

        if self.stage_timeout:
            return await asyncio.wait_for(call(), timeout=self.stage_timeout)
        return await call()

    def _clean(self, name: str, update: Mapping[str, Any], errors: list[str]) -> dict[str, Any]:
        cleaned: dict[str, Any] = {}
        for key, value in update.items():
            if key not in self.channels:
                errors.append(str(StageError(name, f"wrote unknown field '{key}'")))
                continue
            cleaned[key] = value
        return cleaned

    def _resolve_next(
        self,
        name: str,
        values: dict[str, Any],
        update: dict[str, Any],
        cursor: RunCursor,
        errors: list[str],
    ) -> None:
        edge = self.edges.get(name)
        if edge is None:
            cursor.next_stage = None
            return
        if edge.predicate is None:
            cursor.next_stage = edge.target
            return

        merged = dict(values)
        for key, value in update.items():
            merged[key] = self.channels[key].merge(merged.get(key), value)
        try:
            label = _name(edge.predicate(self._model(merged)))
        except Exception as exc:
            message = f"{name} routing error: {exc}"
            logger.error(f"[ENGINE] {message}")
            errors.append(message)
            cursor.halt(message)
            return
        if label not in edge.labels:
            message = f"{name} routing error: unknown label '{label}'"
            logger.error(f"[ENGINE] {message}")
            errors.append(message)
            cursor.halt(message)
            return
        target = edge.labels[label]
        cursor.next_stage = None if target == END else target

    # ── State conversion ─────────────────────────────────

    def _coerce(self, initial: Union[BaseModel, Mapping[str, Any], None]) -> BaseModel:
        if initial is None:
            return self.state_model()
        if isinstance(initial, self.state_model):
            return initial
        if isinstance(initial, BaseModel):
            return self.state_model.model_validate(state_values(initial))
        return self.state_model.model_validate(dict(initial))

    def _model(self, values: Mapping[str, Any]) -> BaseModel:
        data = {k: v for k, v in values.items() if k in self.channels}
        return self.state_model.model_validate(data)


def _channel_schema(model: type[BaseModel], channels: dict[str, Channel]) -> type:
    """TypedDict whose Annotated reducers mirror the declared merge strategies."""
    fields = {
        name: Annotated[list if channel.appends else Any, channel.reducer]
        for name, channel in channels.items()
    }
    return TypedDict(f"{model.__name__}Channels", fields)
