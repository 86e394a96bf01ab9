"""CLI entrypoint: Typer app definition and command registration"""

import logging
from typing import Annotated

import typer

from mdtikz.cli.commands import config_cmd, preamble_cmd, render_cmd, tidy_cmd, triage_cmd


app = typer.Typer(name="mdtikz", no_args_is_help=True, help="Render TikZ blocks in a Markdown vault to inline SVG")


@app.callback()
def main(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Log debug output, renderer chatter included")] = False,
    ):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


app.command(name="render")(render_cmd)
app.command(name="preamble")(preamble_cmd)
app.command(name="tidy")(tidy_cmd)
app.command(name="triage")(triage_cmd)
app.command(name="config")(config_cmd)
