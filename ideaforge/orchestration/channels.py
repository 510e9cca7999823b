"""
State channels — how a stage's partial update is merged into pipeline state.

Every field of a state model is a channel. Its merge strategy is declared
on the field itself with ``Annotated``:

    errors: Annotated[list[str], AppendList] = []

Fields without a declared strategy are ``Replace``. The set of strategies
is closed; the engine reads them once at compile time.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Mapping

from pydantic import BaseModel


class MergeStrategy(str, Enum):
    REPLACE = "replace"
    APPEND_LIST = "append_list"
    APPEND_SET = "append_set"


# Short aliases used inside Annotated[...] declarations
Replace = MergeStrategy.REPLACE
AppendList = MergeStrategy.APPEND_LIST
AppendSet = MergeStrategy.APPEND_SET


def merge_replace(old: Any, new: Any) -> Any:
    """New value wins when present."""
    return old if new is None else new


def merge_append_list(old: Any, new: Any) -> list[Any]:
    return [*(old or []), *(new or [])]


def merge_append_set(old: Any, new: Any) -> list[Any]:
    """Union that keeps first-seen order."""
    merged = list(old or [])
    seen = set(merged)
    for item in new or []:
        if item not in seen:
            seen.add(item)
            merged.append(item)
    return merged


REDUCERS: dict[MergeStrategy, Callable[[Any, Any], Any]] = {
    MergeStrategy.REPLACE: merge_replace,
    MergeStrategy.APPEND_LIST: merge_append_list,
    MergeStrategy.APPEND_SET: merge_append_set,
}


@dataclass(frozen=True)
class Channel:
    name: str
    strategy: MergeStrategy
    default_factory: Callable[[], Any]

    @property
    def reducer(self) -> Callable[[Any, Any], Any]:
        return REDUCERS[self.strategy]

    def merge(self, old: Any, new: Any) -> Any:
        return self.reducer(old, new)

    @property
    def appends(self) -> bool:
        return self.strategy is not MergeStrategy.REPLACE


def channels_for(model: type[BaseModel]) -> dict[str, Channel]:
    """Read the declared merge strategy of every field on *model*."""
    channels: dict[str, Channel] = {}
    for name, field in model.model_fields.items():
        declared = [m for m in field.metadata if isinstance(m, MergeStrategy)]
        if len(declared) > 1:
            raise TypeError(f"{model.__name__}.{name} declares more than one merge strategy")
        strategy = declared[0] if declared else MergeStrategy.REPLACE

        def _default(field=field) -> Any:
            return field.get_default(call_default_factory=True)

        if strategy is not MergeStrategy.REPLACE and not isinstance(_default(), list):
            raise TypeError(
                f"{model.__name__}.{name} uses {strategy.value} but its default is not a list"
            )
        channels[name] = Channel(name=name, strategy=strategy, default_factory=_default)
    return channels


def state_values(state: BaseModel) -> dict[str, Any]:
    """Field values without dumping nested models."""
    return {name: getattr(state, name) for name in type(state).model_fields}


def merge_state(state: BaseModel, update: Mapping[str, Any]) -> BaseModel:
    """
    Apply one partial update to *state* and return a new state object.
    Unknown keys raise KeyError; the input state is left untouched.
    """
    model = type(state)
    channels = channels_for(model)
    values = state_values(state)
    for key, new in update.items():
        if key not in channels:
            raise KeyError(f"{model.__name__} has no channel '{key}'")
        values[key] = channels[key].merge(values[key], new)
    return model.model_validate(values)
