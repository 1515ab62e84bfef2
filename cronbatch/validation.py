"""Structured validation errors for admission checks."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Iterable


def _format_value(value: object) -> str:
    if isinstance(value, str):
        return json.dumps(value, ensure_ascii=False)
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


@dataclass(frozen=True)
class FieldError:
    """A problem with the value of one field, identified by its dotted path."""

    field: str
    value: object
    detail: str = ""
    error_type: str = "Invalid value"

    def __str__(self) -> str:
        body = f"{self.error_type}: {_format_value(self.value)}"
        if self.detail:
            body = f"{body}: {self.detail}"
        return f"{self.field}: {body}"


class InvalidError(ValueError):
    """Raised when an object fails validation on one or more fields."""

    def __init__(self, group: str, kind: str, name: str, errors: Iterable[FieldError]) -> None:
        self.group = group
        self.kind = kind
        self.name = name
        self.errors: tuple[FieldError, ...] = tuple(errors)
        if not self.errors:
            raise ValueError("an invalid error needs at least one field error")
        super().__init__(str(self))

    @property
    def qualified_kind(self) -> str:
        return f"{self.kind}.{self.group}" if self.group else self.kind

    def __str__(self) -> str:
        messages = [str(error) for error in self.errors]
        summary = messages[0] if len(messages) == 1 else "[" + ", ".join(messages) + "]"
        return f"{self.qualified_kind} {json.dumps(self.name)} is invalid: {summary}"