"""Teardown commands: delete lab VMs and firewall rules, or write cleanup scripts."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import click

from ._common import LabContext, console, fail, pass_lab
from ..config import resolve_project
from ..errors import LabError, TeardownResourceError
from ..models import ResourceKind, TeardownFilter, TeardownReport
from ..teardown import (
    TeardownConfirmer,
    TeardownPlan,
    TeardownSweep,
    build_filter,
    render_teardown_scripts,
)


def _confirm_plan(yes: bool) -> TeardownConfirmer:
    def confirm(plan: TeardownPlan) -> bool:
        console.print(f"\n  [bold]{len(plan.names)}[/] {plan.kind.value} resource(s) will be deleted:")
        for name in plan.names:
            console.print(f"    - {name}")
        if yes:
            return True
        return click.confirm("\n  Delete all of the above?", default=False)
    return confirm


def _sweep(lab: LabContext, project: Optional[str], zone: str, teardown_filter: TeardownFilter,
           kind: ResourceKind, yes: bool) -> TeardownReport:
    from ..providers.gcloud import detect_project
    from ..providers.gcp import GCPCompute

    cloud = GCPCompute(
        project=resolve_project(project, lab.config, detect_project), zone=zone,
    )
    cloud.check_access()
    return TeardownSweep(cloud).sweep(teardown_filter, _confirm_plan(yes), kind)


def _print_report(report: TeardownReport) -> None:
    if not report.matched:
        console.print("\n  [dim]Nothing deleted.[/]\n")
        return
    for name in report.deleted:
        console.print(f"  [green]deleted[/] {name}")
    for name in report.failed:
        console.print(f"  [red]failed[/]  {name}")
    console.print(
        f"\n  Deleted: [green]{len(report.deleted)}[/]  Failed: [red]{len(report.failed)}[/]\n"
    )
    if report.failed:
        raise TeardownResourceError(
            f"{len(report.failed)} resource(s) could not be deleted: "
            + ", ".join(report.failed)
        )


def register_teardown_commands(main: click.Group) -> None:
    """Register the teardown command group."""

    @main.group()
    def teardown():
        """Remove lab resources."""

    @teardown.command("vms")
    @click.option("--tag", default=None, help="Network tag to match (default: lab tag).")
    @click.option("--prefix", default=None, help="Name prefix to match (default: lab prefix).")
    @click.option("--zone", default=None, help="Compute zone (default: from config).")
    @click.option("--project", default=None, help="GCP project.")
    @click.option("--yes", "-y", is_flag=True, help="Skip the confirmation prompt.")
    @pass_lab
    def vms(lab: LabContext, tag: Optional[str], prefix: Optional[str],
            zone: Optional[str], project: Optional[str], yes: bool):
        """Delete every lab VM matching the tag OR the name prefix."""
        zone = zone or lab.config.zone
        teardown_filter = build_filter(
            tag=tag or lab.config.lab_tag, prefix=prefix or lab.config.prefix, zone=zone,
        )
        try:
            report = _sweep(lab, project, zone, teardown_filter, ResourceKind.COMPUTE_INSTANCE, yes)
            _print_report(report)
        except LabError as exc:
            fail(exc)

    @teardown.command("firewall")
    @click.option("--tag", default=None, help="Target tag the rules carry (default: lab tag).")
    @click.option("--project", default=None, help="GCP project.")
    @click.option("--yes", "-y", is_flag=True, help="Skip the confirmation prompt.")
    @pass_lab
    def firewall(lab: LabContext, tag: Optional[str], project: Optional[str], yes: bool):
        """Delete the firewall rules that target the lab tag."""
        # Rules are global; they are selected by the tag they target.
        teardown_filter = build_filter(tag=tag or lab.config.lab_tag)
        try:
            report = _sweep(
                lab, project, lab.config.zone, teardown_filter, ResourceKind.NETWORK_RULE, yes,
            )
            _print_report(report)
        except LabError as exc:
            fail(exc)

    @teardown.command("scripts")
    @click.option("--output-dir", default=".", type=click.Path(file_okay=False),
                  help="Where to write the scripts.")
    @pass_lab
    def scripts(lab: LabContext, output_dir: str):
        """Write the standalone cleanup shell scripts."""
        config = lab.config
        written = render_teardown_scripts(
            build_filter(tag=config.lab_tag, prefix=config.prefix, zone=config.zone),
            [rule.name for rule in config.firewall_rules()],
            Path(output_dir).expanduser(),
        )
        for path in written:
            console.print(f"  Wrote [cyan]{path}[/]")

