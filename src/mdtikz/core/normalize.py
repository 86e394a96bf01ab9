"""Clean pasted TikZ source before it reaches the TeX engine"""


NBSP = "&nbsp;"


def tidy_lines(text: str) -> list[str]:
    """Split text into lines, trim each and drop the empty ones."""
    return [line.strip() for line in text.split("\n") if line.strip()]


def normalize(raw: str) -> str:
    """Remove &nbsp; escapes, trim every line and drop blank lines.

    Pasted code often carries invisible whitespace the TeX engine rejects.
    Applying normalize twice gives the same result as applying it once.
    """
    # removal can join the halves of a new escape, e.g. "&&nbsp;nbsp;"
    while NBSP in raw:
        raw = raw.replace(NBSP, "")
    return "\n".join(tidy_lines(raw))
