"""Errors raised while building filters and converting their configuration."""

from __future__ import annotations

from typing import Any


class FilterError(Exception):
    """Base class for errors raised when a filter cannot be created."""

    def __eq__(self, other: object) -> bool:
        if type(self) is not type(other):
            return NotImplemented
        return self.args == other.args  # type: ignore[union-attr]

    def __hash__(self) -> int:
        return hash((type(self), self.args))


class NotFoundError(FilterError):
    """No filter is registered under the requested name."""

    def __init__(self, key: str) -> None:
        super().__init__(key)
        self.key = key

    def __str__(self) -> str:
        return f"filter `{self.key}` not found"


class MismatchedTypesError(FilterError):
    """A binary configuration carried a type other than the one expected."""

    def __init__(self, expected: str, actual: str) -> None:
        super().__init__(expected, actual)
        self.expected = expected
        self.actual = actual

    def __str__(self) -> str:
        return f"Expected <{self.expected}> message, received <{self.actual}> "


class MissingConfigError(FilterError):
    """A filter that needs configuration was created without any."""

    def __init__(self, name: str) -> None:
        super().__init__(name)
        self.name = name

    def __str__(self) -> str:
        return f"filter `{self.name}` requires configuration, but none provided"


class FieldInvalidError(FilterError):
    """A configuration field holds a value the filter cannot accept."""

    def __init__(self, field: str, reason: str) -> None:
        super().__init__(field, reason)
        self.field = field
        self.reason = reason

    def __str__(self) -> str:
        return f"field `{self.field}` is invalid, reason: {self.reason}"


class DeserializeFailedError(FilterError):
    """A textual configuration could not be read into a configuration object."""

    def __init__(self, message: Any) -> None:
        text = str(message)
        super().__init__(text)
        self.message = text

    def __str__(self) -> str:
        return f"Deserialization failed: {self.message}"


class ConvertProtoConfigError(FilterError):
    """A binary configuration could not be converted to its typed form."""

    def __init__(self, reason: Any, field: str | None = None) -> None:
        text = str(reason)
        super().__init__(text, field)
        self.reason = text
        self.field = field

    def __str__(self) -> str:
        prefix = f"Field `{self.field}`" if self.field is not None else ""
        return f"{prefix}failed to convert protobuf config: {self.reason}"

    @classmethod
    def missing_field(cls, field: str) -> ConvertProtoConfigError:
        """Error for a required field that is absent from the message."""
        return cls(f"`{field}` is required but not found", field)