"""Unit tests for core/pipeline.py"""

import pytest

from mdtikz.config import Settings
from mdtikz.core.models import ErrorPhase, SourceBlock
from mdtikz.core.pipeline import TikzPipeline, prepare_source
from mdtikz.core.preamble import PreambleResolver, VaultLookup


@pytest.fixture(name="settings")
def settings_fixture():
    return Settings(quiet_period=0.02)


def _pipeline(vault, renderer, settings, **kwargs) -> TikzPipeline:
    pipeline = TikzPipeline(renderer, PreambleResolver(VaultLookup(vault)), settings, **kwargs)
    pipeline.install()
    return pipeline


@pytest.mark.asyncio
async def test_prepare_source_merges_preamble(vault):
    block = SourceBlock(source="  \\begin{tikzpicture}\n&nbsp;\n\\end{tikzpicture}\n", path="math/geometry/t.md")
    source = await prepare_source(block, PreambleResolver(VaultLookup(vault)))
    assert source == (
        "\\usepackage{amsmath}\n\\usetikzlibrary{calc}\n"
        "\\begin{tikzpicture}\n\\end{tikzpicture}"
    )


@pytest.mark.asyncio
async def test_render_block_hands_merged_source_to_renderer(vault, make_renderer, settings):
    renderer = make_renderer()
    pipeline = _pipeline(vault, renderer, settings)
    block = SourceBlock(source="\\begin{document}\n \\draw (0,0);\n\\end{document}", path="physics/waves.md")
    await pipeline.render_block(block)
    assert renderer.sources == ["\\usetikzlibrary{arrows}\n\\begin{document}\n\\draw (0,0);\n\\end{document}"]


@pytest.mark.asyncio
async def test_render_block_post_processes_markup(vault, make_renderer, settings):
    pipeline = _pipeline(vault, make_renderer(), settings)
    target = await pipeline.render_block(SourceBlock(source="\\draw (0,0);", path="doc.md"))
    assert 'fill="currentColor"' in target.markup
    assert 'fill="var(--background-primary)"' in target.markup
    assert target.report is None


@pytest.mark.asyncio
async def test_render_block_respects_invert_setting(vault, make_renderer):
    settings = Settings(quiet_period=0.02, invert_colors_in_dark_mode=False)
    pipeline = _pipeline(vault, make_renderer(), settings)
    target = await pipeline.render_block(SourceBlock(source="\\draw (0,0);", path="doc.md"))
    assert 'fill="black"' in target.markup


@pytest.mark.asyncio
async def test_render_block_uses_optimizer(vault, make_renderer, settings):
    pipeline = _pipeline(vault, make_renderer(), settings, optimizer=lambda m, o: "<svg/>")
    target = await pipeline.render_block(SourceBlock(source="x", path="doc.md"))
    assert target.markup == "<svg/>"


@pytest.mark.asyncio
async def test_render_block_attaches_report(vault, make_renderer, settings):
    renderer = make_renderer(lines=["This is e-TeX", "No file input.aux.", "! Undefined control sequence.", "l.3 \\foo"])
    pipeline = _pipeline(vault, renderer, settings)
    target = await pipeline.render_block(SourceBlock(source="\\foo", path="doc.md"))
    assert target.report.phase == ErrorPhase.document
    assert target.report.body == "! Undefined control sequence.\nl.3 \\foo"


@pytest.mark.asyncio
async def test_render_error_keeps_report_without_markup(vault, make_renderer, settings):
    renderer = make_renderer(lines=["! LaTeX Error: File `nope.sty' not found."], fail=True)
    pipeline = _pipeline(vault, renderer, settings)
    target = await pipeline.render_block(SourceBlock(source="\\usepackage{nope}", path="doc.md"))
    assert target.markup is None
    assert target.report.phase == ErrorPhase.preamble


@pytest.mark.asyncio
async def test_blocks_do_not_share_diagnostics(vault, make_renderer, settings):
    pipeline = _pipeline(vault, make_renderer(lines=["! broken"]), settings)
    first = await pipeline.render_block(SourceBlock(source="a", path="doc.md"))
    pipeline.renderer = make_renderer(lines=["This is e-TeX"])
    second = await pipeline.render_block(SourceBlock(source="b", path="doc.md"))
    assert first.report.body == "! broken"
    assert second.report is None


@pytest.mark.asyncio
async def test_uninstall_detaches_classifier(vault, make_renderer, settings):
    pipeline = _pipeline(vault, make_renderer(), settings)
    pipeline.uninstall()
    pipeline.sink.write("! after teardown")
    assert pipeline.classifier.buffer == []
    assert pipeline.classifier.target is None


@pytest.mark.asyncio
async def test_render_document_writes_output(vault, make_renderer, settings, tmp_path):
    pipeline = _pipeline(vault, make_renderer(), settings)
    out = await pipeline.render_document(vault / "math" / "geometry" / "triangles.md", vault, tmp_path / "out")
    assert out == tmp_path / "out" / "math" / "geometry" / "triangles.md"
    text = out.read_text()
    assert text.count('<div class="tikz-diagram">') == 2
    assert "```python" in text
    assert "```tikz" not in text


@pytest.mark.asyncio
async def test_render_document_isolates_block_failures(vault, make_renderer, settings, tmp_path, caplog):
    """An unexpected error in one block leaves its fence in place and the other blocks still render."""
    doc = vault / "three.md"
    doc.write_text("".join(f"```tikz\n\\draw ({i},0);\n```\n\n" for i in range(3)))
    renderer = make_renderer(error=ValueError("unexpected renderer failure"))
    pipeline = _pipeline(vault, renderer, settings)

    out = await pipeline.render_document(doc, vault, tmp_path / "out")

    assert len(renderer.sources) == 3
    text = out.read_text()
    assert text.count('<div class="tikz-diagram">') == 2
    assert "```tikz\n\\draw (0,0);\n```" in text
    assert "block failed to render" in caplog.text
