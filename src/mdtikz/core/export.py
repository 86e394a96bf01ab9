"""Export: replace rendered fences with inline SVG and error reports, write output files"""

import html
from pathlib import Path

from mdtikz.core.models import BlockTarget, DiagnosticReport


def build_report(report: DiagnosticReport) -> str:
    """Dismissible HTML block showing the report title and the retained log lines."""
    return (
        '<details class="tikz-error-display" open>\n'
        f'<summary class="tikz-error-title">{html.escape(report.title)}</summary>\n'
        f'<pre class="tikz-log-area">{html.escape(report.body)}</pre>\n'
        '</details>\n'
    )


def build_block(target: BlockTarget, original: str) -> str:
    """Markdown replacing one fence: the diagram (or the untouched fence) plus any report."""
    parts = []
    if target.markup is not None:
        parts.append(f'<div class="tikz-diagram">\n{target.markup}\n</div>\n')
    else:
        parts.append(original if original.endswith('\n') else original + '\n')
    if target.report is not None:
        parts.append('\n' + build_report(target.report))
    return ''.join(parts)


def build_markdown(markdown: str, targets: list[BlockTarget]) -> str:
    """Return markdown with each target's fence span replaced by its rendered block."""
    lines = markdown.splitlines(keepends=True)
    for target in sorted(targets, key=lambda t: t.block.start, reverse=True):
        start, end = target.block.start, target.block.end
        original = ''.join(lines[start:end])
        lines[start:end] = [build_block(target, original)]
    return ''.join(lines)


def write_doc(markdown: str, targets: list[BlockTarget], vault_path: str, output_dir: Path) -> Path:
    """Write the rendered document to output_dir, mirroring its vault location.

    Returns the written path.
    """
    dest = output_dir.joinpath(*vault_path.split('/'))
    dest.parent.mkdir(parents=True, exist_ok=True)
    dest.write_text(build_markdown(markdown, targets), encoding='utf-8')
    return dest
