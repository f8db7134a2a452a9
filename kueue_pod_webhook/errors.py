"""
Error types for the pod webhook.

Fatal errors (``WebhookError`` and subclasses) abort a mutating request.
Field errors are collected into lists by the validators and aggregated into a
single ``AggregateError`` so the API server reports every violation at once.
The rendering of field errors follows the Kubernetes API conventions, e.g.

    metadata.labels[kueue.x-k8s.io/managed]: Forbidden: managed label value can only be 'true'
"""

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any


class WebhookError(Exception):
    """Base class for errors that fail an admission request."""


class SelectorError(WebhookError):
    pass


class NamespaceLookupError(WebhookError):
    pass


class RoleHashError(WebhookError):
    pass


class Path:
    """Dotted field path with optional map keys, e.g. metadata.labels[foo]."""

    def __init__(self, *names: str) -> None:
        self._repr = ".".join(names)

    def key(self, key: str) -> "Path":
        p = Path()
        p._repr = f"{self._repr}[{key}]"
        return p

    def __str__(self) -> str:
        return self._repr

    def __repr__(self) -> str:
        return f"Path({self._repr!r})"


class ErrorType(str, Enum):
    REQUIRED = "Required value"
    INVALID = "Invalid value"
    FORBIDDEN = "Forbidden"


@dataclass(frozen=True)
class FieldError:
    type: ErrorType
    field: str
    detail: str = ""
    bad_value: Any = None

    def __str__(self) -> str:
        msg = f"{self.field}: {self.type.value}"
        if self.type is ErrorType.INVALID:
            msg += f": {_render_value(self.bad_value)}"
        if self.detail:
            msg += f": {self.detail}"
        return msg


def _render_value(value: Any) -> str:
    if isinstance(value, str):
        return json.dumps(value)
    return str(value)


def required(path: Path, detail: str) -> FieldError:
    return FieldError(ErrorType.REQUIRED, str(path), detail)


def invalid(path: Path, value: Any, detail: str) -> FieldError:
    return FieldError(ErrorType.INVALID, str(path), detail, value)


def forbidden(path: Path, detail: str) -> FieldError:
    return FieldError(ErrorType.FORBIDDEN, str(path), detail)


def validate_immutable_field(new: Any, old: Any, path: Path) -> list[FieldError]:
    if new != old:
        return [invalid(path, new, "field is immutable")]
    return []


class AggregateError(Exception):
    def __init__(self, errors: list[FieldError]) -> None:
        self.errors = list(errors)
        super().__init__(str(self))

    def __str__(self) -> str:
        if len(self.errors) == 1:
            return str(self.errors[0])
        return "[" + ", ".join(str(e) for e in self.errors) + "]"


def to_aggregate(errors: list[FieldError]) -> AggregateError | None:
    """Return None for an empty list so callers can treat it as 'no error'."""
    if not errors:
        return None
    return AggregateError(errors)
