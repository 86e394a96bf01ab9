"""CLI command implementations"""

import asyncio
from pathlib import Path
from typing import Annotated, Optional

import typer
import yaml

from mdtikz.config import Settings, load_config, save_config
from mdtikz.core.diagnostics import DiagnosticClassifier
from mdtikz.core.extract import extract_blocks, parse_file
from mdtikz.core.models import BlockTarget, SourceBlock
from mdtikz.core.pipeline import prepare_source, run_render
from mdtikz.core.postprocess import load_optimizer
from mdtikz.core.preamble import PreambleResolver, VaultLookup
from mdtikz.core.render import LatexRenderer


def _fail(msg: str, cause: Optional[Exception] = None) -> None:
    """Print a user-friendly error to stderr and exit 1."""
    typer.echo(f"Error: {msg}", err=True)
    if cause:
        typer.echo(f"  {cause}", err=True)
    raise typer.Exit(1)


def _settings(overrides: Optional[dict] = None) -> Settings:
    """Load config with standard CLI error handling."""
    try:
        return load_config(overrides=overrides)
    except ValueError as e:
        _fail(str(e))


def _resolver(vault: Path, settings: Settings) -> PreambleResolver:
    return PreambleResolver(VaultLookup(vault), settings.preamble_filenames, settings.max_ascent)


def _vault_root(path: Path, vault: Optional[str]) -> Path:
    """Explicit --vault, else the directory being rendered (or the file's directory)."""
    if vault:
        return Path(vault)
    return path if path.is_dir() else path.parent


def render_cmd(
    path: Annotated[str, typer.Argument(help="File or directory to render")],
    vault: Annotated[Optional[str], typer.Option("--vault", help="Vault root used for preamble lookup")] = None,
    out: Annotated[Optional[str], typer.Option("--out-dir", help="Output directory")] = None,
    invert: Annotated[Optional[bool], typer.Option("--invert/--no-invert", help="Theme-aware black/white colors")] = None,
    quiet: Annotated[Optional[float], typer.Option("--quiet-period", help="Seconds of log silence before triage")] = None,
    optimizer: Annotated[Optional[str], typer.Option("--optimizer", help="SVG optimizer as module:function, called as f(markup, options)")] = None,
    ):
    """Render every tikz block to inline SVG and write the documents to the output dir.

    SVG is not optimized unless an --optimizer is given; by default the markup
    is written as rendered, after recoloring.
    """
    settings = _settings(overrides={
        "output_dir": out, "invert_colors_in_dark_mode": invert, "quiet_period": quiet, "optimizer": optimizer,
    })
    src = Path(path)
    if not src.exists():
        _fail(f"Path not found: {path}")
    try:
        svg_optimizer = load_optimizer(settings.optimizer)
    except ValueError as e:
        _fail(str(e))
    renderer = LatexRenderer(settings.latex_command, settings.svg_command, settings.begin_marker)
    output_dir = Path(settings.output_dir)

    try:
        results = asyncio.run(run_render(src, _vault_root(src, vault), output_dir, settings, renderer, svg_optimizer))
    except RuntimeError as e:
        _fail(str(e))
    for source, out_file in results:
        typer.echo(f"  {source} -> {out_file}")
    typer.echo(f"Rendered {len(results)} document(s) to {output_dir}/")


def preamble_cmd(
    document: Annotated[str, typer.Argument(help="Vault-relative path of a document")],
    vault: Annotated[str, typer.Option("--vault", help="Vault root")] = ".",
    ):
    """Print the preamble that applies to a document."""
    settings = _settings()
    preamble = asyncio.run(_resolver(Path(vault), settings).resolve(document))
    if not preamble.strip():
        typer.echo(f"No preamble found for {document}.")
        raise typer.Exit(1)
    typer.echo(preamble.rstrip("\n"))


def tidy_cmd(
    path: Annotated[str, typer.Argument(help="Markdown file containing tikz blocks")],
    vault: Annotated[Optional[str], typer.Option("--vault", help="Vault root used for preamble lookup")] = None,
    ):
    """Print the normalized source, preamble included, of each tikz block."""
    settings = _settings()
    src = Path(path)
    if not src.is_file():
        _fail(f"Not a file: {path}")
    root = _vault_root(src, vault)
    try:
        parsed = parse_file(src, root, settings.parser_config)
    except (OSError, UnicodeDecodeError) as e:
        _fail(f"Cannot read {path}", e)
    blocks = extract_blocks(parsed, settings.fence_language)
    if not blocks:
        typer.echo(f"No {settings.fence_language} blocks in {path}.")
        raise typer.Exit(1)

    resolver = _resolver(root, settings)

    async def _prepare_all() -> list[str]:
        return [await prepare_source(b, resolver, settings.begin_marker) for b in blocks]

    for block, source in zip(blocks, asyncio.run(_prepare_all())):
        typer.echo(f"% --- {parsed.vault_path}:{block.start + 1} ---")
        typer.echo(source)


def triage_cmd(
    logfile: Annotated[str, typer.Argument(help="Saved renderer log, one message per line")],
    quiet: Annotated[Optional[float], typer.Option("--quiet-period", help="Seconds of log silence before triage")] = None,
    ):
    """Classify a renderer log and print the actionable lines."""
    settings = _settings(overrides={"quiet_period": quiet})
    src = Path(logfile)
    try:
        lines = src.read_text(encoding="utf-8").splitlines()
    except (OSError, UnicodeDecodeError) as e:
        _fail(f"Cannot read {logfile}", e)

    target = BlockTarget(block=SourceBlock(source="", path=src.name))

    async def _classify() -> None:
        classifier = DiagnosticClassifier(quiet_period=settings.quiet_period)
        classifier.begin(target)
        for line in lines:
            classifier.feed(line)
        await classifier.settle()

    asyncio.run(_classify())
    if target.report is None:
        typer.echo("No errors found.")
        return
    typer.echo(target.report.title)
    typer.echo(target.report.body)
    raise typer.Exit(1)


def config_cmd(
    assignments: Annotated[Optional[list[str]], typer.Option("--set", help="KEY=VALUE to persist")] = None,
    ):
    """Show the effective settings; --set updates config.yaml."""
    overrides = {}
    for item in assignments or []:
        key, sep, value = item.partition("=")
        if not sep or key not in Settings.model_fields:
            _fail(f"Invalid setting: {item}")
        overrides[key] = value

    settings = _settings(overrides=overrides)
    if overrides:
        written = save_config(settings)
        typer.echo(f"Saved {', '.join(overrides)} to {written}")
    typer.echo(yaml.safe_dump(settings.model_dump(), sort_keys=False, allow_unicode=True).rstrip())
