"""Splice a resolved preamble into normalized TikZ source"""

from mdtikz.core.normalize import tidy_lines


BEGIN_MARKER = r"\begin{document}"


def merge(source: str, preamble: str, marker: str = BEGIN_MARKER) -> str:
    """Insert the preamble lines before the first line containing marker.

    Without a marker line the preamble is prepended. An empty preamble
    returns source unchanged.
    """
    if not preamble.strip():
        return source

    preamble_lines = tidy_lines(preamble)
    lines = source.split("\n") if source else []
    index = next((i for i, line in enumerate(lines) if marker in line), None)
    if index is None:
        lines = preamble_lines + lines
    else:
        lines[index:index] = preamble_lines
    return "\n".join(lines)
