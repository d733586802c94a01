# dbverbs — prepared-statement database client
# Copyright (C) 2024-2026 Dr Horst Herb
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU Affero General Public License for more details.
#
# You should have received a copy of the GNU Affero General Public License
# along with this program.  If not, see <https://www.gnu.org/licenses/>.

"""Typed statement parameters.

Values are bound positionally.  Each value carries a kind, either
explicitly::

    client.select("SELECT * FROM t WHERE id = ?", [Param.of(1)])
    client.update(
        "UPDATE t SET name = ? WHERE id = ?",
        [Param(ParamKind.STRING, "Bob"), Param(ParamKind.INTEGER, 1)],
    )

or through a type-tag string as the first element, one character per
value (``i`` integer, ``d`` double, ``s`` string, ``b`` blob)::

    client.update("UPDATE t SET name = ? WHERE id = ?", ["si", "Bob", 1])

Both forms are validated before anything reaches the driver.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any

from dbverbs.errors import BindError


class ParamKind(str, Enum):
    """SQL type of a bound value, keyed by its tag character."""

    INTEGER = "i"
    DOUBLE = "d"
    STRING = "s"
    BLOB = "b"


@dataclass(frozen=True)
class Param:
    """A single bound value together with its kind.

    ``value`` may be ``None`` for any kind (SQL NULL).
    """

    kind: ParamKind
    value: Any

    def __post_init__(self) -> None:
        try:
            kind = ParamKind(self.kind)
        except ValueError:
            raise BindError(f"Unknown parameter kind {self.kind!r}") from None
        object.__setattr__(self, "kind", kind)

    @classmethod
    def of(cls, value: Any) -> Param:
        """Build a parameter, inferring its kind from the Python type."""
        if value is None or isinstance(value, str):
            return cls(ParamKind.STRING, value)
        if isinstance(value, bool):
            return cls(ParamKind.INTEGER, int(value))
        if isinstance(value, int):
            return cls(ParamKind.INTEGER, value)
        if isinstance(value, float):
            return cls(ParamKind.DOUBLE, value)
        if isinstance(value, (bytes, bytearray, memoryview)):
            return cls(ParamKind.BLOB, bytes(value))
        raise BindError(f"Cannot infer a parameter kind for {type(value).__name__}")

    def to_driver(self) -> Any:
        """Return the value checked and coerced for its kind."""
        value = self.value
        if value is None:
            return None
        if self.kind is ParamKind.INTEGER:
            if isinstance(value, int) and not isinstance(value, bool):
                return value
        elif self.kind is ParamKind.DOUBLE:
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                return float(value)
        elif self.kind is ParamKind.STRING:
            if isinstance(value, str):
                return value
        elif self.kind is ParamKind.BLOB:
            if isinstance(value, (bytes, bytearray, memoryview)):
                return bytes(value)
        raise BindError(
            f"Value {value!r} of type {type(value).__name__} does not match "
            f"parameter kind {self.kind.name} ({self.kind.value!r})"
        )


_TAGS = {kind.value: kind for kind in ParamKind}


def parse_tagged(params: Sequence[Any]) -> list[Param]:
    """Convert ``[tags, v1, v2, ...]`` into explicit :class:`Param` values.

    Raises :class:`BindError` if the tag string is missing, contains an
    unknown character, or its length differs from the number of values.
    """
    if not params:
        return []
    tags, values = params[0], list(params[1:])
    if not isinstance(tags, str) or not tags:
        raise BindError(
            "Parameter list must start with a type-tag string "
            "(one of 'i', 'd', 's', 'b' per value)"
        )
    unknown = sorted({c for c in tags if c not in _TAGS})
    if unknown:
        raise BindError(f"Unknown type tag(s) {unknown} in {tags!r}")
    if len(tags) != len(values):
        raise BindError(
            f"Type tags {tags!r} describe {len(tags)} value(s) "
            f"but {len(values)} were given"
        )
    return [Param(_TAGS[tag], value) for tag, value in zip(tags, values)]


def normalize_params(params: Sequence[Any] | None) -> tuple[Any, ...]:
    """Validate *params* in either accepted form and return driver values."""
    if not params:
        return ()
    if isinstance(params, (str, bytes)):
        raise BindError("Parameters must be a sequence, not a bare string")

    explicit = [isinstance(p, Param) for p in params]
    if all(explicit):
        typed = list(params)
    elif any(explicit):
        raise BindError("Cannot mix Param values with a type-tag parameter list")
    else:
        typed = parse_tagged(params)
    return tuple(p.to_driver() for p in typed)
