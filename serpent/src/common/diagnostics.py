"""Per-module collection of transpilation failures."""

from dataclasses import dataclass
from enum import Enum
from typing import List
import logging

from .exceptions import TranspileError

logger = logging.getLogger(__name__)


class DiagnosticSeverity(Enum):
    """Severity levels for transpiler diagnostics."""

    WARNING = "warning"  # Reported, module is still emitted
    ERROR = "error"  # Module is not emitted


@dataclass
class Diagnostic:
    """A recorded failure and the stage that reported it."""

    severity: DiagnosticSeverity
    error: TranspileError
    stage: str  # parsing, inference, lowering, emission

    def format(self) -> str:
        # Format: SEVERITY [stage:file:line:col]: message
        parts = [self.stage]
        if self.error.source_file:
            parts.append(self.error.source_file)
        if self.error.line > 0:
            parts.append(str(self.error.line))
            if self.error.column > 0:
                parts.append(str(self.error.column))
        return f"{self.severity.value.upper()} [{':'.join(parts)}]: {self.error.message}"


class ProgramDiagnostics:
    """Failures reported while transpiling one module.

    Every stage reports into the same collector, so the module's manifest
    status is read from a single place once the pipeline is done with it.
    Errors keep their original exception objects; callers re-raise or render
    them as they see fit.
    """

    def __init__(self, raise_errors: bool = False):
        self.diagnostics: List[Diagnostic] = []
        self.raise_errors = raise_errors
        self.default_stage = "unknown"

    def report(self, error: TranspileError) -> None:
        """Record a pipeline exception as an error."""
        self._add(DiagnosticSeverity.ERROR, error)
        if self.raise_errors:
            raise error

    def warn(self, error: TranspileError) -> None:
        """Record a problem that does not stop emission."""
        self._add(DiagnosticSeverity.WARNING, error)

    def _add(self, severity: DiagnosticSeverity, error: TranspileError) -> Diagnostic:
        stage = error.stage if error.stage != "unknown" else self.default_stage
        diag = Diagnostic(severity, error, stage)
        self.diagnostics.append(diag)
        # errors are printed by the caller
        logger.log(
            logging.DEBUG if severity is DiagnosticSeverity.ERROR else logging.WARNING,
            diag.format(),
        )
        return diag

    def has_errors(self) -> bool:
        return self.error_count() > 0

    def error_count(self) -> int:
        return len(self.errors())

    def warning_count(self) -> int:
        return sum(1 for d in self.diagnostics if d.severity is DiagnosticSeverity.WARNING)

    def errors(self) -> List[TranspileError]:
        """Errors in the order they were reported."""
        return [d.error for d in self.diagnostics if d.severity is DiagnosticSeverity.ERROR]

    def messages(self) -> List[str]:
        return [diag.format() for diag in self.diagnostics]
