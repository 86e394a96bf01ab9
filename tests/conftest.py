"""Root test configuration: shared fakes and session-level cleanup of runtime artifacts"""

import asyncio
import shutil
from pathlib import Path
from typing import Optional

import pytest

from mdtikz.core.render import DiagnosticSink, RenderError


_PROJECT_ROOT = Path(__file__).parent.parent

_CLEANUP_FILES = ["config.yaml"]
_CLEANUP_DIRS = ["dist"]

SVG = '<svg xmlns="http://www.w3.org/2000/svg"><path fill="black" stroke="#000"/><rect fill="white"/></svg>'


class FakeRenderer:
    """Renderer double: writes canned log lines to the sink, then returns canned markup."""

    def __init__(
        self,
        lines: Optional[list[str]] = None,
        markup: str = SVG,
        fail: bool = False,
        gap: float = 0.0,
        error: Optional[Exception] = None,
        ):
        self.lines = list(lines or [])
        self.markup = markup
        self.fail = fail
        self.error = error
        self.gap = gap
        self.sources: list[str] = []

    async def render(self, source: str, sink: DiagnosticSink) -> str:
        self.sources.append(source)
        if self.error is not None:
            # only the first call hits an unexpected failure
            error, self.error = self.error, None
            raise error
        for line in self.lines:
            sink.write(line)
            await asyncio.sleep(self.gap)
        if self.fail:
            raise RenderError("latex exited with 1 and wrote no DVI output")
        return self.markup


@pytest.fixture(name="make_renderer")
def make_renderer_fixture():
    return FakeRenderer


@pytest.fixture(name="vault")
def vault_fixture(tmp_path):
    """A small vault: root preamble, a nested folder with its own preamble, and notes."""
    root = tmp_path / "vault"
    (root / "math" / "geometry").mkdir(parents=True)
    (root / "physics").mkdir()
    (root / ".tikz-preamble").write_text("\\usetikzlibrary{arrows}\n")
    (root / "math" / "tikz-preamble.tex").write_text("  \\usepackage{amsmath}\n\n\\usetikzlibrary{calc}\n")
    (root / "physics" / "waves.md").write_text(
        "# Waves\n\n```tikz\n\\begin{document}\n\\begin{tikzpicture}\n\\draw (0,0) -- (1,0);\n"
        "\\end{tikzpicture}\n\\end{document}\n```\n"
    )
    (root / "math" / "geometry" / "triangles.md").write_text(
        "# Triangles\n\nIntro.\n\n```tikz\n\\begin{tikzpicture}\n&nbsp;\n  \\draw (0,0) -- (1,1);\n"
        "\\end{tikzpicture}\n```\n\nBetween.\n\n```python\nprint('not tikz')\n```\n\n"
        "```tikz\n\\begin{tikzpicture}\n\\fill (0,0) circle (1);\n\\end{tikzpicture}\n```\n"
    )
    return root


@pytest.fixture(scope="session", autouse=True)
def cleanup_artifacts():
    """Remove config and output files created during the test session."""
    yield
    for name in _CLEANUP_FILES:
        p = _PROJECT_ROOT / name
        if p.exists():
            p.unlink()
    for name in _CLEANUP_DIRS:
        p = _PROJECT_ROOT / name
        if p.exists():
            shutil.rmtree(p)
