"""Data models shared by the render pipeline"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import BaseModel


class ClassifierState(str, Enum):
    """Position of the log triage within the LaTeX run"""
    preamble_normal = "preamble_normal"
    preamble_error = "preamble_error"
    document_normal = "document_normal"
    document_error = "document_error"


class ErrorPhase(str, Enum):
    """Phase in which the first unrecognized renderer message appeared"""
    none = "none"
    preamble = "preamble"
    document = "document"


class DiagnosticReport(BaseModel):
    """Actionable subset of a renderer log, shown inline under the diagram."""
    phase: ErrorPhase
    title: str
    body: str


@dataclass(frozen=True)
class SourceBlock:
    """Literal text of one fenced block plus the vault path of its document."""
    source: str
    path:   str             # vault-relative, '/'-delimited
    start:  int = 0         # first source line of the fence
    end:    int = 0         # line after the closing fence


@dataclass
class BlockTarget:
    """Rendering target for a single block: output markup and at most one report."""
    block:  SourceBlock
    markup: Optional[str] = None
    report: Optional[DiagnosticReport] = None

    def attach_report(self, report: DiagnosticReport) -> None:
        """Attach a report, replacing any report from an earlier flush."""
        self.report = report


@dataclass
class ParsedDoc:
    """Internal parse result carrying markdown-it tokens; not persisted."""
    path:       Path
    vault_path: str            # path relative to the vault root
    markdown:   str
    tokens:     list = field(default_factory=list)
