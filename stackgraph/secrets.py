"""Secret-marked values.

A ``SecretValue`` wraps data that must never be rendered in logs, reports or
exceptions.  Sensitivity is sticky: mapping, field extraction, concatenation
and interpolation that involve a secret produce another secret.

    token = SecretValue("dop_v1_abc")
    header = interpolate("Bearer {}", token)   # SecretValue
    str(header)                                # "[secret]"
    header.reveal()                            # "Bearer dop_v1_abc"
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from typing import Any, Generic, TypeVar

T = TypeVar("T")
U = TypeVar("U")

REDACTED = "[secret]"


class SecretValue(Generic[T]):
    """A value flagged as sensitive."""

    __slots__ = ("_value",)

    def __init__(self, value: T) -> None:
        # Never double-wrap
        while isinstance(value, SecretValue):
            value = value._value
        self._value = value

    def reveal(self) -> T:
        """Return the plaintext value.  Only call at the edge of an external API."""
        return self._value

    def map(self, fn: Callable[[T], U]) -> SecretValue[U]:
        return SecretValue(fn(self._value))

    def get(self, path: str) -> SecretValue[Any]:
        """Extract a dotted field path from a wrapped mapping."""
        return SecretValue(get_path(self._value, path))

    def __add__(self, other: object) -> SecretValue[Any]:
        return SecretValue(self._value + reveal(other))  # type: ignore[operator]

    def __radd__(self, other: object) -> SecretValue[Any]:
        return SecretValue(reveal(other) + self._value)  # type: ignore[operator]

    def __eq__(self, other: object) -> bool:
        if isinstance(other, SecretValue):
            return bool(self._value == other._value)
        return NotImplemented

    def __hash__(self) -> int:
        return hash((SecretValue, self._value))

    def __bool__(self) -> bool:
        return bool(self._value)

    def __str__(self) -> str:
        return REDACTED

    def __repr__(self) -> str:
        return f"SecretValue({REDACTED})"

    def __format__(self, format_spec: str) -> str:
        return REDACTED


def is_secret(value: object) -> bool:
    return isinstance(value, SecretValue)


def reveal(value: Any) -> Any:
    """Unwrap one level: a SecretValue becomes its plaintext, anything else is returned as-is."""
    if isinstance(value, SecretValue):
        return value.reveal()
    return value


def reveal_all(value: Any) -> Any:
    """Recursively unwrap every SecretValue inside mappings and sequences."""
    value = reveal(value)
    if isinstance(value, Mapping):
        return {k: reveal_all(v) for k, v in value.items()}
    if isinstance(value, list | tuple):
        return type(value)(reveal_all(v) for v in value)
    return value


def contains_secret(value: Any) -> bool:
    """Return True if *value* is, or transitively contains, a SecretValue."""
    if isinstance(value, SecretValue):
        return True
    if isinstance(value, Mapping):
        return any(contains_secret(v) for v in value.values())
    if isinstance(value, list | tuple):
        return any(contains_secret(v) for v in value)
    return False


def interpolate(template: str, *args: Any, **kwargs: Any) -> str | SecretValue[str]:
    """``str.format`` that keeps the result secret when any argument is secret."""
    rendered = template.format(
        *(reveal(a) for a in args),
        **{k: reveal(v) for k, v in kwargs.items()},
    )
    if any(is_secret(a) for a in args) or any(is_secret(v) for v in kwargs.values()):
        return SecretValue(rendered)
    return rendered


def concat(*parts: Any) -> str | SecretValue[str]:
    """Join *parts* as strings; secret if any part is secret."""
    joined = "".join(str(reveal(p)) for p in parts)
    if any(is_secret(p) for p in parts):
        return SecretValue(joined)
    return joined


def get_path(value: Any, path: str) -> Any:
    """Walk a dotted *path* through mappings (and integer indices through sequences).

    Walking into a SecretValue yields a SecretValue for the remainder.

    Raises:
        KeyError: if a segment does not exist.
    """
    if not path:
        return value
    head, _, rest = path.partition(".")
    if isinstance(value, SecretValue):
        return SecretValue(get_path(value.reveal(), path))
    if isinstance(value, Mapping):
        if head not in value:
            raise KeyError(head)
        return get_path(value[head], rest)
    if isinstance(value, Sequence) and not isinstance(value, str) and head.isdigit():
        index = int(head)
        if index >= len(value):
            raise KeyError(head)
        return get_path(value[index], rest)
    raise KeyError(head)


def redact(value: Any) -> Any:
    """Return a copy of *value* safe for logs: every SecretValue becomes ``[secret]``."""
    if isinstance(value, SecretValue):
        return REDACTED
    if isinstance(value, Mapping):
        return {k: redact(v) for k, v in value.items()}
    if isinstance(value, list | tuple):
        return [redact(v) for v in value]
    return value
