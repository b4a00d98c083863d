"""Error taxonomy shared by every pipeline stage."""

from __future__ import annotations

from typing import List, Optional

from .source_location import SourceLocation

UNRESOLVABLE_TYPE = "unresolvable type"
CONFLICTING_SHAPE = "conflicting shape"
CONFLICTING_TYPE = "conflicting type"
UNSUPPORTED_INTRINSIC = "unsupported intrinsic"

INFERENCE_REASONS = (
    UNRESOLVABLE_TYPE,
    CONFLICTING_SHAPE,
    CONFLICTING_TYPE,
    UNSUPPORTED_INTRINSIC,
)


class TranspileError(Exception):
    """Base class for every user-facing transpilation failure."""

    stage = "unknown"

    def __init__(
        self,
        message: str,
        location: Optional[SourceLocation] = None,
        stage: Optional[str] = None,
    ) -> None:
        self.message = message
        self.location = location
        if stage is not None:
            self.stage = stage
        prefix = f"{location}: " if location is not None and location.line > 0 else ""
        super().__init__(f"{prefix}{message}")

    @property
    def line(self) -> int:
        return self.location.line if self.location else 0

    @property
    def column(self) -> int:
        return self.location.column if self.location else 0

    @property
    def source_file(self) -> Optional[str]:
        return self.location.file if self.location else None

    def one_line(self) -> str:
        """Return the error as a single line, position first."""
        return str(self).splitlines()[0]

    def __reduce__(self):
        # Subclass constructors take different arguments than self.args holds,
        # so rebuild from the instance state when crossing process boundaries.
        return (_rebuild_error, (type(self), self.args, self.__dict__.copy()))


def _rebuild_error(cls, args, state):
    error = cls.__new__(cls)
    # builtin bases such as SyntaxError keep their message outside __dict__
    super(TranspileError, error).__init__(*args)
    error.__dict__.update(state)
    return error


class SourceSyntaxError(TranspileError, SyntaxError):
    """Malformed source text. Fatal for the module being parsed."""

    stage = "parsing"

    def __init__(
        self,
        message: str,
        location: Optional[SourceLocation] = None,
        expected: Optional[List[str]] = None,
    ) -> None:
        self.expected = list(expected or [])
        if self.expected:
            message = f"{message}; expected one of: {', '.join(self.expected)}"
        super().__init__(message, location)


class UnsupportedSyntaxError(TranspileError):
    """Well-formed source outside the supported subset."""

    stage = "parsing"

    def __init__(
        self,
        construct: str,
        location: Optional[SourceLocation] = None,
        stage: Optional[str] = None,
    ) -> None:
        self.construct = construct
        super().__init__(f"unsupported syntax: {construct}", location, stage)


class InferenceError(TranspileError):
    """A type or shape could not be resolved. Fatal for the enclosing function."""

    stage = "inference"

    def __init__(
        self,
        reason: str,
        binding: Optional[str] = None,
        detail: str = "",
        location: Optional[SourceLocation] = None,
    ) -> None:
        if reason not in INFERENCE_REASONS:
            raise ValueError(f"Unknown inference failure reason: {reason!r}")
        self.reason = reason
        self.binding = binding
        self.detail = detail
        message = reason
        if binding:
            message += f" for '{binding}'"
        if detail:
            message += f": {detail}"
        super().__init__(message, location)


class EmissionError(TranspileError):
    """The target AST holds a construct with no rendering rule."""

    stage = "emission"


class RemapError(TranspileError):
    """A Remap.toml file could not be used."""

    stage = "configuration"
