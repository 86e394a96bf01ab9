"""File discovery and fenced TikZ block extraction via markdown-it"""

from pathlib import Path

from markdown_it import MarkdownIt

from mdtikz.core.models import ParsedDoc, SourceBlock


MD_EXTENSIONS = {'.md', '.mdx'}


def _make_parser(preset: str) -> MarkdownIt:
    """Build a MarkdownIt instance for the given preset name."""
    return MarkdownIt(preset, options_update={"linkify": False})


def vault_path(path: Path, vault_root: Path) -> str:
    """Return path relative to vault_root as a '/'-delimited string."""
    try:
        return path.resolve().relative_to(vault_root.resolve()).as_posix()
    except ValueError:
        return path.name


def discover_files(path: Path) -> list[Path]:
    """Return sorted .md/.mdx files under path, or [path] if a single file."""
    if path.is_file():
        return [path] if path.suffix in MD_EXTENSIONS else []
    return sorted(p for p in path.rglob('*') if p.suffix in MD_EXTENSIONS)


def parse_file(path: Path, vault_root: Path, parser_config: str = 'gfm-like') -> ParsedDoc:
    """Parse a single markdown file into a ParsedDoc with token stream."""
    markdown = path.read_text(encoding='utf-8')
    return ParsedDoc(
        path=path,
        vault_path=vault_path(path, vault_root),
        markdown=markdown,
        tokens=_make_parser(parser_config).parse(markdown),
    )


def _fence_language(token) -> str:
    info = token.info.strip()
    return info.split(maxsplit=1)[0] if info else ''


def extract_blocks(parsed: ParsedDoc, language: str = 'tikz') -> list[SourceBlock]:
    """Return one SourceBlock per fenced block tagged with language, in document order."""
    blocks = []
    for tok in parsed.tokens:
        if tok.type != 'fence' or _fence_language(tok) != language:
            continue
        start, end = tok.map if tok.map else (0, 0)
        blocks.append(SourceBlock(source=tok.content, path=parsed.vault_path, start=start, end=end))
    return blocks
