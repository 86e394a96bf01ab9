"""Renderer log triage: separate TeX chatter from the messages a user must act on.

The TeX engine prints loaded files, banners and progress lines interleaved with
real errors, and never signals on its log channel that it is done. Lines are
therefore buffered and triaged once no new line has arrived for a quiet period.

Triage walks the buffer through four states:

    preamble_normal --(document marker)--> document_normal
          |                                      |
     (unknown line)                        (unknown line)
          v                                      v
    preamble_error                         document_error

Chatter rules apply only before the document starts; document markers are
skipped in both normal states. The first line
that matches no rule moves to an error state for good, and every later line is
kept verbatim since it is likely part of the error context.
"""

import asyncio
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable, Optional

from mdtikz.core.models import BlockTarget, ClassifierState, DiagnosticReport, ErrorPhase


logger = logging.getLogger(__name__)

QUIET_PERIOD = 1.0

TITLES = {
    ErrorPhase.preamble: r"LaTeX Preamble Error (before \begin{document})",
    ErrorPhase.document: r"LaTeX Document Error (after \begin{document})",
    ErrorPhase.none:     "TikZ Log",
}


class Verdict(str, Enum):
    skip = "skip"                      # benign preamble chatter
    enter_document = "enter_document"  # the engine reached the document body


@dataclass(frozen=True)
class LogRule:
    """One whitelist entry: lines matching pattern get verdict."""
    pattern: re.Pattern
    verdict: Verdict

    def matches(self, line: str) -> bool:
        return self.pattern.search(line) is not None


def rule(pattern: str, verdict: Verdict) -> LogRule:
    return LogRule(re.compile(pattern), verdict)


DEFAULT_RULES: tuple[LogRule, ...] = (
    # file-load echoes, never a '!' error line
    rule(r'^(?!!)[\s()"]*[\w\-.]+\.(?:tex|sty|code\.tex)', Verdict.skip),
    rule(r'^This is e-TeX|^LaTeX2e|^\*\*entering extended mode|^\(input\.tex$|^For additional information', Verdict.skip),
    rule(r'^\s*\.{3,}\s*$|^\s*$', Verdict.skip),
    # pdfTeX banner and absolute or relative loads of classes, packages and configs
    rule(r'^(?!!)[\s()"]*\S*/[\w\-.]+\.(?:tex|sty|cls|clo|cfg|def|fd|ldf)', Verdict.skip),
    rule(r'^This is pdfTeX|^restricted \\write18|^\**entering extended mode', Verdict.skip),
    rule(r'^\(\./input\.tex|^L3 programming layer|^Document Class:', Verdict.skip),
    rule(r'^[()\s]+$', Verdict.skip),
    rule(r'^No file input\.aux\.', Verdict.enter_document),
    rule(r'^ABD:', Verdict.enter_document),
    rule(r'^\("input\.aux"\)|^\(\./input\.aux\)|^\[\d+', Verdict.enter_document),
    rule(r'^Output written on|^Transcript written on', Verdict.enter_document),
)


class LogTriage:
    """Single pass of the triage state machine over one buffer."""

    def __init__(self, rules: Iterable[LogRule] = DEFAULT_RULES):
        self.rules = tuple(rules)
        self.state = ClassifierState.preamble_normal
        self.phase = ErrorPhase.none
        self.retained: list[str] = []

    def _verdict(self, line: str, allowed: set[Verdict]) -> Optional[Verdict]:
        """Verdict of the first rule that matches line, ignoring rules outside allowed."""
        for r in self.rules:
            if r.verdict in allowed and r.matches(line):
                return r.verdict
        return None

    def _fail(self, state: ClassifierState, phase: ErrorPhase) -> None:
        self.state = state
        if self.phase is ErrorPhase.none:
            self.phase = phase

    def step(self, line: str) -> bool:
        """Advance on one line; return True if the line is kept for the report."""
        trimmed = line.strip()

        if self.state is ClassifierState.preamble_normal:
            verdict = self._verdict(trimmed, {Verdict.skip, Verdict.enter_document})
            if verdict is Verdict.skip:
                return False
            if verdict is Verdict.enter_document:
                self.state = ClassifierState.document_normal
                return False
            self._fail(ClassifierState.preamble_error, ErrorPhase.preamble)

        elif self.state is ClassifierState.document_normal:
            if self._verdict(trimmed, {Verdict.enter_document}):
                return False
            self._fail(ClassifierState.document_error, ErrorPhase.document)

        self.retained.append(line)
        return True

    def report(self) -> Optional[DiagnosticReport]:
        """Report for the retained lines, or None when nothing needs attention."""
        if not self.retained:
            return None
        return DiagnosticReport(
            phase=self.phase,
            title=TITLES[self.phase],
            body="\n".join(self.retained),
        )


def triage(lines: Iterable[str], rules: Iterable[LogRule] = DEFAULT_RULES) -> Optional[DiagnosticReport]:
    """Classify a complete log and return its report, if any."""
    machine = LogTriage(rules)
    for line in lines:
        machine.step(line)
    return machine.report()


def _running_loop() -> Optional[asyncio.AbstractEventLoop]:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


class DiagnosticClassifier:
    """Debounced log buffer bound to the most recently started render.

    feed() never blocks: it appends to the buffer and re-arms a single-shot
    timer on the event loop. When the timer fires the buffer is triaged and a
    report, if any, is attached to the current target.
    """

    def __init__(
        self,
        quiet_period: float = QUIET_PERIOD,
        rules: Iterable[LogRule] = DEFAULT_RULES,
        on_report: Optional[Callable[[BlockTarget, DiagnosticReport], None]] = None,
        ):
        self.quiet_period = quiet_period
        self.rules = tuple(rules)
        self.on_report = on_report
        self.buffer: list[str] = []
        self.target: Optional[BlockTarget] = None
        self._timer: Optional[asyncio.TimerHandle] = None
        self._idle: Optional[asyncio.Event] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    def begin(self, target: Optional[BlockTarget]) -> None:
        """Start a new render: drop any pending buffer and timer, then bind target."""
        self.clear()
        self.target = target
        self._loop = _running_loop() or self._loop

    def clear(self) -> None:
        self.buffer = []
        self._cancel()

    def _cancel(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._idle is not None:
            self._idle.set()

    def feed(self, line: str) -> None:
        """Buffer one renderer message and restart the quiet-period timer.

        Safe to call from any thread. Off the event loop the timer is re-armed
        on the loop that last started a render; with no such loop the line is
        only buffered until the next flush.
        """
        self.buffer.append(line)
        loop = _running_loop()
        if loop is not None:
            self._loop = loop
            self._rearm()
        elif self._loop is not None and not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self._rearm)

    def _rearm(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
        self._timer = self._loop.call_later(self.quiet_period, self.flush)
        if self._idle is None or self._idle.is_set():
            self._idle = asyncio.Event()

    @property
    def pending(self) -> bool:
        return self._timer is not None

    def flush(self) -> Optional[DiagnosticReport]:
        """Triage the buffer, attach the report to the target and clear the buffer."""
        self._timer = None
        lines, self.buffer = self.buffer, []
        try:
            report = triage(lines, self.rules)
            if report is None:
                return None
            if self.target is None:
                logger.debug("Dropping %s with no render target", report.title)
                return None
            self.target.attach_report(report)
            if self.on_report is not None:
                self.on_report(self.target, report)
            return report
        finally:
            if self._idle is not None:
                self._idle.set()

    async def settle(self) -> None:
        """Wait until no flush is pending."""
        if self._timer is not None and self._idle is not None:
            await self._idle.wait()
