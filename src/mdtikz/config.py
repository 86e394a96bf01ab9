"""Application configuration: settings schema, config.yaml loader and writer"""

import os
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, Field


CONFIG_FILE = "config.yaml"

PREAMBLE_FILENAMES = [".tikz-preamble.tex", ".tikz-preamble", "tikz-preamble.tex"]


class Settings(BaseModel):
    app_name:       str = "mdtikz"
    invert_colors_in_dark_mode: bool = Field(default=True, description="Rewrite black/white fills to theme colors")
    current_color:    str = Field(default="currentColor", description="Replacement for black fill/stroke values")
    background_color: str = Field(default="var(--background-primary)", description="Replacement for white fill/stroke values")
    quiet_period:   float = Field(default=1.0, gt=0, description="Seconds without renderer output before the log is triaged")
    max_ascent:     int = Field(default=10, ge=1, description="Max directories searched for a preamble file")
    preamble_filenames: list[str] = Field(default_factory=lambda: list(PREAMBLE_FILENAMES), min_length=1)
    begin_marker:   str = Field(default=r"\begin{document}", description="Line marker the preamble is inserted before")
    fence_language: str = Field(default="tikz", description="Info string of the fenced blocks to render")
    latex_command:  str = Field(default="latex",   description="TeX engine producing DVI output")
    svg_command:    str = Field(default="dvisvgm", description="DVI to SVG converter")
    output_dir:     str = Field(default="dist",     description="Directory for rendered documents")
    parser_config:  str = Field(default="gfm-like", description="MarkdownIt parser preset name")
    optimizer:      Optional[str] = Field(default=None, description="SVG optimizer as module:function; unset leaves markup as rendered")


def load_config(overrides: Optional[dict[str, Any]] = None) -> Settings:
    """Load Settings from config.yaml, then MDTIKZ_<FIELD> env vars, then non-None CLI overrides."""
    data: dict[str, Any] = {}
    if Path(CONFIG_FILE).exists():
        try:
            data = yaml.safe_load(Path(CONFIG_FILE).read_text()) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid {CONFIG_FILE}: {e}") from e
        if not isinstance(data, dict):
            raise ValueError(f"Invalid {CONFIG_FILE}: expected a mapping, got {type(data).__name__}")

    for name in Settings.model_fields:
        if val := os.getenv(f"MDTIKZ_{name.upper()}"):
            data[name] = val

    if overrides:
        data.update({k: v for k, v in overrides.items() if v is not None})
    return Settings(**data)


def save_config(settings: Settings) -> Path:
    """Write settings to config.yaml, keeping only values that differ from the defaults."""
    defaults = Settings().model_dump()
    changed = {k: v for k, v in settings.model_dump().items() if defaults.get(k) != v}
    path = Path(CONFIG_FILE)
    path.write_text(yaml.safe_dump(changed, sort_keys=False, allow_unicode=True), encoding="utf-8")
    return path
