"""Theme adaptation and optimization of rendered SVG markup"""

import re
from importlib import import_module
from typing import Any, Callable, Optional


CURRENT_COLOR = "currentColor"
BACKGROUND_COLOR = "var(--background-primary)"

# Rewriting ids per diagram collides once several diagrams share one page.
OPTIMIZER_OPTIONS = {"cleanup_ids": False}

BLACK_RE = re.compile(r'"(?:#000|black)"')
WHITE_RE = re.compile(r'"(?:#fff|white)"')

Optimizer = Callable[[str, dict[str, Any]], str]


def passthrough(markup: str, options: dict[str, Any]) -> str:
    """Default optimizer: returns markup unchanged."""
    return markup


def load_optimizer(ref: Optional[str]) -> Optimizer:
    """Resolve a "module:function" reference to an optimizer; None gives passthrough."""
    if not ref:
        return passthrough
    module_name, sep, attr = ref.partition(":")
    if not sep or not module_name or not attr:
        raise ValueError(f"Invalid optimizer {ref!r}: expected 'module:function'")
    try:
        module = import_module(module_name)
    except ImportError as e:
        raise ValueError(f"Invalid optimizer {ref!r}: {e}") from e
    optimizer = getattr(module, attr, None)
    if not callable(optimizer):
        raise ValueError(f"Invalid optimizer {ref!r}: {module_name} has no callable {attr}")
    return optimizer


def recolor(markup: str, current: str = CURRENT_COLOR, background: str = BACKGROUND_COLOR) -> str:
    """Swap quoted black/white color literals for theme-aware values."""
    markup = BLACK_RE.sub(f'"{current}"', markup)
    return WHITE_RE.sub(f'"{background}"', markup)


def post_process(
    markup: str,
    invert_for_dark_mode: bool,
    optimizer: Optimizer = passthrough,
    current: str = CURRENT_COLOR,
    background: str = BACKGROUND_COLOR,
    ) -> str:
    """Recolor (optionally) and optimize one diagram's SVG."""
    if invert_for_dark_mode:
        markup = recolor(markup, current, background)
    return optimizer(markup, dict(OPTIMIZER_OPTIONS))
