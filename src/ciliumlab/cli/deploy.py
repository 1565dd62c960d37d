"""Deploy and render commands."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import click
from rich.panel import Panel

from ._common import LabContext, console, fail, machine_table, pass_lab
from ..config import LabConfig, resolve_project
from ..errors import LabError
from ..models import MAX_MACHINES, MIN_MACHINES, ProvisionRequest, RunOutcome
from ..orchestrator import Confirmer, Orchestrator, RunSummary


def confirm_run(summary: RunSummary) -> bool:
    """Show the deployment summary and ask for a yes."""
    console.print()
    console.print(
        Panel(
            f"  Project:   {summary.project}\n"
            f"  Region:    {summary.region}\n"
            f"  Zone:      {summary.zone}\n"
            f"  Machines:  {summary.machine_count}\n"
            f"  Names:     {' '.join(summary.machine_names)}\n"
            f"  Tags:      {','.join(summary.tags)}\n"
            f"  Firewall:  {', '.join(summary.firewall_rules)}",
            title="Cilium Lab Deployment",
            border_style="bright_blue",
            padding=(1, 2),
        )
    )
    return click.confirm("\n  Proceed with deployment?", default=False)


def build_orchestrator(
    request: ProvisionRequest,
    config: LabConfig,
    confirm: Optional[Confirmer],
    keep_going: bool,
) -> Orchestrator:
    """Wire the production collaborators for one run."""
    from ..providers.gcloud import GcloudChannel
    from ..providers.gcp import GCPCompute
    from ..provisioner import VMProvisioner
    from ..readiness import BackoffPolicy, ReadinessPoller
    from ..remote import RemoteExecutor

    cloud = GCPCompute(project=request.project, zone=request.zone)
    channel = GcloudChannel(zone=request.zone, project=request.project)
    poller = ReadinessPoller(channel.probe, BackoffPolicy(**config.poll.model_dump()))
    provisioner = VMProvisioner(
        cloud, poller, RemoteExecutor(channel), remote_retries=config.remote_retries,
    )
    return Orchestrator(cloud, provisioner, confirm=confirm, keep_going=keep_going)


def detect_project() -> Optional[str]:
    """Ask gcloud for the active project."""
    from ..providers.gcloud import detect_project as _detect
    return _detect()


def register_deploy_commands(main: click.Group) -> None:
    """Register the deploy and render commands."""

    @main.command()
    @click.argument(
        "count", required=False, default=1,
        type=click.IntRange(MIN_MACHINES, MAX_MACHINES),
    )
    @click.option("--yes", "-y", is_flag=True, help="Skip the confirmation prompt.")
    @click.option("--keep-going", is_flag=True,
                  help="Continue with the remaining machines after a failure.")
    @click.option("--project", default=None, help="GCP project (default: gcloud config).")
    @click.option("--zone", default=None, help="Compute zone (default: from config).")
    @click.option("--output-dir", default=".", type=click.Path(file_okay=False),
                  help="Where to write the teardown scripts.")
    @pass_lab
    def deploy(lab: LabContext, count: int, yes: bool, keep_going: bool,
               project: Optional[str], zone: Optional[str], output_dir: str):
        """Provision COUNT lab machines (1-10, default 1).

        Creates the shared firewall rules, then each VM in turn: waits
        for SSH, copies the install script over and runs it. Leaves
        cleanup scripts in the output directory.

        Examples:

            ciliumlab deploy

            ciliumlab deploy 3 --keep-going
        """
        from ..preflight import require_tools
        from ..teardown import build_filter, render_teardown_scripts

        config = lab.config
        try:
            require_tools()
            request = config.to_request(
                count,
                project=resolve_project(project, config, detect_project),
                zone=zone,
            )
            orchestrator = build_orchestrator(
                request, config, None if yes else confirm_run, keep_going,
            )
            report = orchestrator.run(request)
        except LabError as exc:
            fail(exc)
            return

        if report.overall == RunOutcome.CANCELLED:
            console.print("  [dim]Cancelled.[/]\n")
            return

        color = {
            RunOutcome.SUCCESS: "green",
            RunOutcome.PARTIAL: "yellow",
        }.get(report.overall, "red")
        console.print()
        console.print(machine_table(report, request.zone))
        for record in report.failed:
            console.print(f"  [red]{record.name}:[/] {record.error}")
        console.print(
            Panel(
                f"  [bold]Status:[/]   [{color}]{report.overall.value}[/]\n"
                f"  [bold]Machines:[/] {len(report.provisioned)} provisioned, "
                f"{len(report.failed)} failed\n\n"
                "  Next: ssh into a machine and run [cyan]./start-port-forward.sh[/]\n"
                "  to print the Hubble UI, Prometheus and Grafana URLs.",
                title="Deployment Complete",
                border_style=color,
                padding=(1, 2),
            )
        )

        scripts = render_teardown_scripts(
            build_filter(tag=request.lab_tag, prefix=request.prefix, zone=request.zone),
            [rule.name for rule in request.firewall_rules],
            Path(output_dir).expanduser(),
        )
        for path in scripts:
            console.print(f"  Wrote [cyan]{path}[/]")
        console.print()

        if report.exit_code:
            raise SystemExit(report.exit_code)

    @main.command()
    @click.option("--output", "-o", default="install_on_vm_kp.sh", type=click.Path(dir_okay=False),
                  help="Where to write the rendered install script.")
    @pass_lab
    def render(lab: LabContext, output: str):
        """Render the install script without deploying anything."""
        from ..payload import PayloadGenerator

        request = lab.config.to_request(1)
        artifact = PayloadGenerator().render(request)
        path = Path(output).expanduser()
        path.write_text(artifact.text, encoding="utf-8")
        console.print(f"  Wrote [cyan]{path}[/] (sha256 {artifact.digest[:16]})")
