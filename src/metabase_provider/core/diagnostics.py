"""
Diagnostics returned by every lifecycle operation.

Reconcilers never raise across their public boundary; failures are
collected here and the orchestrator decides what to do with them.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional


class Severity(Enum):
    ERROR = "error"
    WARNING = "warning"


class DiagnosticKind(Enum):
    VALIDATION = "validation"
    TRANSPORT = "transport"
    NOT_FOUND = "not_found"
    PARTIAL_FAILURE = "partial_failure"
    UNRECOGNIZED_ENGINE = "unrecognized_engine"
    SERIALIZATION = "serialization"
    INTERNAL = "internal"


@dataclass(frozen=True)
class Diagnostic:
    severity: Severity
    summary: str
    detail: str = ""
    kind: DiagnosticKind = DiagnosticKind.INTERNAL
    attribute: Optional[str] = None

    @property
    def is_error(self) -> bool:
        return self.severity is Severity.ERROR

    def __str__(self) -> str:
        where = f" [{self.attribute}]" if self.attribute else ""
        text = f"{self.severity.value.upper()}{where}: {self.summary}"
        if self.detail:
            text += f" - {self.detail}"
        return text


class Diagnostics(List[Diagnostic]):

    def add_error(
        self,
        summary: str,
        detail: str = "",
        *,
        kind: DiagnosticKind = DiagnosticKind.INTERNAL,
        attribute: Optional[str] = None,
    ) -> None:
        self.append(Diagnostic(Severity.ERROR, summary, detail, kind, attribute))

    def add_warning(
        self,
        summary: str,
        detail: str = "",
        *,
        kind: DiagnosticKind = DiagnosticKind.INTERNAL,
        attribute: Optional[str] = None,
    ) -> None:
        self.append(Diagnostic(Severity.WARNING, summary, detail, kind, attribute))

    def has_error(self) -> bool:
        return any(d.is_error for d in self)

    def errors(self) -> List[Diagnostic]:
        return [d for d in self if d.is_error]

    def warnings(self) -> List[Diagnostic]:
        return [d for d in self if not d.is_error]

    def of_kind(self, kind: DiagnosticKind) -> List[Diagnostic]:
        return [d for d in self if d.kind is kind]
