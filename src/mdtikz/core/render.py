"""Renderer boundary: diagnostic sink, renderer protocol and the latex/dvisvgm adapter"""

import asyncio
import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Callable, Optional, Protocol

from mdtikz.core.merge import BEGIN_MARKER


logger = logging.getLogger(__name__)
renderer_log = logging.getLogger("mdtikz.renderer")

Listener = Callable[[str], None]

DOCUMENT_CLASS = r"\documentclass[tikz]{standalone}"
XML_HEADER_RE = re.compile(r"<\?xml[^?]*\?>|<!DOCTYPE[^>]*>")

# one log line per message; TeX otherwise wraps long file paths at 79 columns
TEX_ENV = {"max_print_line": "10000"}


class RenderError(RuntimeError):
    """The renderer produced no markup for a block."""


class DiagnosticSink:
    """Log channel handed to a renderer; listeners observe every message."""

    def __init__(self):
        self._listeners: list[Listener] = []

    def add_listener(self, listener: Listener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def write(self, message: str) -> None:
        renderer_log.debug(message)
        for listener in list(self._listeners):
            listener(message)


class Renderer(Protocol):
    """Turns merged TikZ source into SVG, writing its progress to sink."""

    async def render(self, source: str, sink: DiagnosticSink) -> str: ...


def wrap_document(source: str, marker: str = BEGIN_MARKER) -> str:
    """Make source a complete LaTeX document; a bare picture is wrapped in standalone."""
    if r"\documentclass" in source:
        return source
    if marker in source:
        return f"{DOCUMENT_CLASS}\n{source}\n"
    return f"{DOCUMENT_CLASS}\n{marker}\n{source}\n\\end{{document}}\n"


def clean_svg(svg: str) -> str:
    """Strip XML declaration and DOCTYPE so the SVG can be inlined."""
    return XML_HEADER_RE.sub("", svg).strip()


class LatexRenderer:
    """Run latex then dvisvgm in a scratch directory.

    Every line latex prints goes to the sink; dvisvgm output only reaches the
    module logger.
    """

    def __init__(self, latex: str = "latex", dvisvgm: str = "dvisvgm", marker: str = BEGIN_MARKER):
        self.latex = latex
        self.dvisvgm = dvisvgm
        self.marker = marker

    async def _run(self, args: list[str], cwd: Path, sink: Optional[DiagnosticSink] = None) -> int:
        try:
            proc = await asyncio.create_subprocess_exec(
                *args,
                cwd=cwd,
                env={**os.environ, **TEX_ENV},
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except FileNotFoundError as e:
            raise RenderError(f"{args[0]} not found; install a TeX distribution with dvisvgm") from e

        async for raw in proc.stdout:
            line = raw.decode("utf-8", errors="replace").rstrip("\r\n")
            if sink is not None:
                sink.write(line)
            else:
                logger.debug("%s: %s", args[0], line)
        return await proc.wait()

    async def render(self, source: str, sink: DiagnosticSink) -> str:
        with tempfile.TemporaryDirectory(prefix="mdtikz-") as tmp:
            work = Path(tmp)
            (work / "input.tex").write_text(wrap_document(source, self.marker), encoding="utf-8")

            code = await self._run(
                [self.latex, "-interaction=nonstopmode", "-halt-on-error", "input.tex"], work, sink,
            )
            dvi = work / "input.dvi"
            if not dvi.exists():
                raise RenderError(f"{self.latex} exited with {code} and wrote no DVI output")

            code = await self._run([self.dvisvgm, "--no-fonts", "--output=input.svg", "input.dvi"], work)
            svg = work / "input.svg"
            if code != 0 or not svg.exists():
                raise RenderError(f"{self.dvisvgm} exited with {code} and wrote no SVG output")
            return clean_svg(svg.read_text(encoding="utf-8"))
