"""
ciliumlab CLI — provision, render, and tear down Cilium lab fleets.

The main Click group is defined here and every subcommand is
registered from its own module.

Entry point: ciliumlab.cli:main
"""

from __future__ import annotations

import click

from .. import LAB_HOME, __version__
from ._common import LabContext, setup_logging


@click.group()
@click.version_option(version=__version__, prog_name="ciliumlab")
@click.option("--home", default=LAB_HOME, type=click.Path(), help="Lab home directory.")
@click.option("--config", "config_path", default=None, type=click.Path(dir_okay=False),
              help="Config file (default: <home>/config.yaml).")
@click.option("--verbose", "-v", is_flag=True, help="Log progress to the console.")
@click.pass_context
def main(ctx: click.Context, home: str, config_path: str, verbose: bool):
    """ciliumlab — Cilium lab VMs on Compute Engine.

    Deploy N machines, each with a kind cluster running Cilium and Hubble.
    """
    lab = LabContext(home=home, config_path=config_path)
    setup_logging(lab.home, verbose)
    ctx.obj = lab


# ---------------------------------------------------------------------------
# Register command groups from modular files
# ---------------------------------------------------------------------------

from .deploy import register_deploy_commands
from .teardown import register_teardown_commands

register_deploy_commands(main)
register_teardown_commands(main)
