"""Pipeline step functions: prepare, render and export TikZ blocks of a vault"""

import logging
from pathlib import Path

from mdtikz.config import Settings
from mdtikz.core.diagnostics import DiagnosticClassifier
from mdtikz.core.export import write_doc
from mdtikz.core.extract import discover_files, extract_blocks, parse_file
from mdtikz.core.merge import BEGIN_MARKER, merge
from mdtikz.core.models import BlockTarget, SourceBlock
from mdtikz.core.normalize import normalize
from mdtikz.core.postprocess import Optimizer, passthrough, post_process
from mdtikz.core.preamble import PreambleResolver, VaultLookup
from mdtikz.core.render import DiagnosticSink, Renderer, RenderError


logger = logging.getLogger(__name__)


async def prepare_source(block: SourceBlock, resolver: PreambleResolver, marker: str = BEGIN_MARKER) -> str:
    """Normalized block source with its preamble merged in, ready for the renderer."""
    preamble = await resolver.resolve(block.path)
    return merge(normalize(block.source), preamble, marker)


class TikzPipeline:
    """Render blocks one at a time, each owning the diagnostic buffer while it runs."""

    def __init__(
        self,
        renderer: Renderer,
        resolver: PreambleResolver,
        settings: Settings,
        optimizer: Optimizer = passthrough,
        ):
        self.renderer = renderer
        self.resolver = resolver
        self.settings = settings
        self.optimizer = optimizer
        self.sink = DiagnosticSink()
        self.classifier = DiagnosticClassifier(quiet_period=settings.quiet_period)

    def install(self) -> None:
        self.sink.add_listener(self.classifier.feed)

    def uninstall(self) -> None:
        self.sink.remove_listener(self.classifier.feed)
        self.classifier.begin(None)

    async def render_block(self, block: SourceBlock) -> BlockTarget:
        """Render one block; the source is fully merged before the renderer sees it."""
        target = BlockTarget(block=block)
        self.classifier.begin(target)

        source = await prepare_source(block, self.resolver, self.settings.begin_marker)
        try:
            markup = await self.renderer.render(source, self.sink)
        except RenderError as e:
            logger.warning("%s (line %d): %s", block.path, block.start + 1, e)
        else:
            target.markup = post_process(
                markup,
                self.settings.invert_colors_in_dark_mode,
                self.optimizer,
                self.settings.current_color,
                self.settings.background_color,
            )
        await self.classifier.settle()
        return target

    async def render_document(self, path: Path, vault_root: Path, output_dir: Path) -> Path:
        """Render every tikz block of one document and write the result.

        A block that fails unexpectedly is logged and left as its original
        fence; the remaining blocks still render.
        """
        parsed = parse_file(path, vault_root, self.settings.parser_config)
        targets = []
        for block in extract_blocks(parsed, self.settings.fence_language):
            try:
                target = await self.render_block(block)
            except Exception:
                logger.exception("%s (line %d): block failed to render", block.path, block.start + 1)
                self.classifier.begin(None)
                target = BlockTarget(block=block)
            targets.append(target)
        failed = sum(1 for t in targets if t.report is not None or t.markup is None)
        logger.info("%s: %d block(s), %d with errors", parsed.vault_path, len(targets), failed)
        return write_doc(parsed.markdown, targets, parsed.vault_path, output_dir)


async def run_render(
    path: Path,
    vault_root: Path,
    output_dir: Path,
    settings: Settings,
    renderer: Renderer,
    optimizer: Optimizer = passthrough,
    ) -> list[tuple[Path, Path]]:
    """Render all documents under path. Returns (source_path, output_path) pairs."""
    resolver = PreambleResolver(VaultLookup(vault_root), settings.preamble_filenames, settings.max_ascent)
    pipeline = TikzPipeline(renderer, resolver, settings, optimizer)
    pipeline.install()
    results = []
    try:
        for p in discover_files(path):
            try:
                out_file = await pipeline.render_document(p, vault_root, output_dir)
            except Exception as e:
                raise RuntimeError(f"Failed to render {p}: {e}") from e
            results.append((p, out_file))
    finally:
        pipeline.uninstall()
    return results
