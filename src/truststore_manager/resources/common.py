"""
Shared plumbing for the host lifecycle hooks.

The host hands every hook a plain attribute bag (dict). Values are checked
explicitly here; a wrong type or a missing required attribute becomes a
VALIDATION_ERROR result naming the attribute, never an exception.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any, TypeVar

from railway import Result, ResultFailures

T = TypeVar("T")

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|h|m|s)")
_UNIT_SECONDS = {"h": 3600.0, "m": 60.0, "s": 1.0, "ms": 0.001}


@dataclass(frozen=True, slots=True)
class HookResponse:
    """
    What a hook hands back to the host.

    `state=None` tells the host to drop the resource from its state.
    """

    state: dict[str, Any] | None
    warnings: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {"state": self.state, "warnings": list(self.warnings)}


def parse_duration(text: str) -> float | None:
    """
    "1h30m" → 5400.0, "90s" → 90.0, "500ms" → 0.5.

    Returns None for anything that is not a positive duration.
    """
    compact = text.strip()
    parts = _DURATION_PART.findall(compact)
    if not parts or "".join(value + unit for value, unit in parts) != compact:
        return None
    seconds = sum(float(value) * _UNIT_SECONDS[unit] for value, unit in parts)
    return seconds if seconds > 0 else None


def isoformat(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


class AttributeReader:
    """
    Typed access to a host attribute bag.

    Each accessor records a problem instead of raising; `build` then turns
    the collected problems into one VALIDATION_ERROR, or runs the builder.

        reader = AttributeReader(plan)
        ca_set_id = reader.string("ca_set_id")
        version = reader.integer("version")
        return reader.build(lambda: ActivationRequest(ca_set_id, version, ...))
    """

    def __init__(self, bag: Mapping[str, Any] | None) -> None:
        self._bag: Mapping[str, Any] = bag if isinstance(bag, Mapping) else {}
        self._problems: list[str] = []
        if bag is not None and not isinstance(bag, Mapping):
            self._problems.append(f"expected an attribute object, got {type(bag).__name__}")

    @property
    def problems(self) -> tuple[str, ...]:
        return tuple(self._problems)

    def _get(self, key: str, required: bool) -> Any:
        value = self._bag.get(key)
        if value is None and required:
            self._problems.append(f"{key}: attribute is required")
        return value

    def string(self, key: str, required: bool = True) -> str | None:
        value = self._get(key, required)
        if value is None:
            return None
        if not isinstance(value, str):
            self._problems.append(f"{key}: expected a string, got {type(value).__name__}")
            return None
        return value

    def integer(self, key: str, required: bool = True) -> int | None:
        value = self._get(key, required)
        if value is None:
            return None
        # bool is an int subclass; a flag where a number belongs is still a type error
        if isinstance(value, bool) or not isinstance(value, int):
            self._problems.append(f"{key}: expected an integer, got {type(value).__name__}")
            return None
        return value

    def boolean(self, key: str, default: bool = False) -> bool:
        value = self._bag.get(key)
        if value is None:
            return default
        if not isinstance(value, bool):
            self._problems.append(f"{key}: expected a boolean, got {type(value).__name__}")
            return default
        return value

    def objects(self, key: str) -> list[Mapping[str, Any]]:
        value = self._get(key, required=False)
        if value is None:
            return []
        if not isinstance(value, list | tuple):
            self._problems.append(f"{key}: expected a list, got {type(value).__name__}")
            return []
        items: list[Mapping[str, Any]] = []
        for index, item in enumerate(value):
            if isinstance(item, Mapping):
                items.append(item)
            else:
                self._problems.append(f"{key}[{index}]: expected an object, got {type(item).__name__}")
        return items

    def timeout(self, operation: str, default: float) -> float:
        """Seconds from the `timeouts` sub-object for `operation`, else `default`."""
        block = self._bag.get("timeouts")
        if block is None:
            return default
        if not isinstance(block, Mapping):
            self._problems.append(f"timeouts: expected an object, got {type(block).__name__}")
            return default
        raw = block.get(operation)
        if raw is None:
            return default
        if not isinstance(raw, str):
            self._problems.append(f"timeouts.{operation}: expected a duration string, got {type(raw).__name__}")
            return default
        seconds = parse_duration(raw)
        if seconds is None:
            self._problems.append(f"timeouts.{operation}: invalid duration {raw!r}")
            return default
        return seconds

    def complain(self, problem: str) -> None:
        self._problems.append(problem)

    def build(self, builder: Callable[[], T]) -> Result[T]:
        if self._problems:
            return ResultFailures.validation_error(
                "invalid attributes: " + "; ".join(self._problems),
                details=tuple(self._problems),
            )
        return Result.success(builder())
