"""
Teardown — best-effort deletion of lab resources.

Unlike provisioning, a sweep never stops at the first error: every
matching resource gets its own delete attempt and its own line in the
report. Nothing is deleted without an explicit confirmation.

Two ways to tear down:
- ``TeardownSweep`` deletes from Python, right now.
- ``render_teardown_scripts`` writes standalone shell scripts for later.
"""

from __future__ import annotations

import logging
import os
import shlex
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from google.api_core import exceptions as google_exceptions
from pydantic import BaseModel

from .errors import PreconditionError
from .models import CloudResource, ResourceKind, TeardownFilter, TeardownReport
from .payload import render_template
from .providers.base import CloudBackend

logger = logging.getLogger("ciliumlab.teardown")

VM_SCRIPT = "cleanup-cilium-vms.sh"
FIREWALL_SCRIPT = "cleanup-firewall-rules.sh"


def build_filter(
    tag: Optional[str] = None,
    prefix: Optional[str] = None,
    zone: Optional[str] = None,
) -> TeardownFilter:
    """Build a teardown filter.

    Args:
        tag: Network tag to match.
        prefix: Name prefix to match.
        zone: Restrict matches to this zone.

    Returns:
        TeardownFilter matching on tag OR prefix.

    Raises:
        ValueError: If neither tag nor prefix is given.
    """
    if not tag and not prefix:
        raise ValueError("a teardown filter needs a tag or a name prefix")
    return TeardownFilter(tag=tag, prefix=prefix, zone=zone)


class TeardownPlan(BaseModel):
    """What a sweep is about to delete, shown to the confirmer."""

    kind: ResourceKind
    names: List[str]


TeardownConfirmer = Callable[[TeardownPlan], bool]


class TeardownSweep:
    """Delete every resource matching a filter.

    Args:
        cloud: Control plane backend.
    """

    def __init__(self, cloud: CloudBackend) -> None:
        self._cloud = cloud

    def _list(self, kind: ResourceKind) -> List[CloudResource]:
        try:
            if kind == ResourceKind.COMPUTE_INSTANCE:
                return self._cloud.list_instances()
            return self._cloud.list_firewalls()
        except google_exceptions.GoogleAPIError as exc:
            raise PreconditionError(
                f"Cannot list {kind.value} resources: {exc}. "
                "Check that the Compute Engine API is enabled and the account can list them."
            ) from exc

    def _delete(self, kind: ResourceKind, name: str) -> None:
        if kind == ResourceKind.COMPUTE_INSTANCE:
            self._cloud.delete_instance(name)
        else:
            self._cloud.delete_firewall(name)

    def matches(
        self, teardown_filter: TeardownFilter, kind: ResourceKind = ResourceKind.COMPUTE_INSTANCE,
    ) -> List[str]:
        """Names of live resources the filter selects, in listing order.

        Raises:
            PreconditionError: If the resources cannot be listed.
        """
        return [r.name for r in self._list(kind) if teardown_filter.matches(r)]

    def apply(
        self,
        teardown_filter: TeardownFilter,
        confirmed: bool,
        kind: ResourceKind = ResourceKind.COMPUTE_INSTANCE,
    ) -> TeardownReport:
        """Delete matching resources, continuing past failures.

        Args:
            teardown_filter: Selection predicate, evaluated now.
            confirmed: Nothing is touched unless this is True.
            kind: Which resources to sweep.

        Returns:
            TeardownReport; empty when not confirmed.
        """
        report = TeardownReport()
        if not confirmed:
            logger.info("Teardown not confirmed; nothing deleted")
            return report

        report.matched = self.matches(teardown_filter, kind)
        for name in report.matched:
            try:
                self._delete(kind, name)
            except Exception as exc:
                logger.error("Failed to delete %s %s: %s", kind.value, name, exc)
                report.failed.append(name)
            else:
                report.deleted.append(name)

        logger.info(
            "Teardown of %s: %d deleted, %d failed",
            kind.value, len(report.deleted), len(report.failed),
        )
        return report

    def sweep(
        self,
        teardown_filter: TeardownFilter,
        confirm: TeardownConfirmer,
        kind: ResourceKind = ResourceKind.COMPUTE_INSTANCE,
    ) -> TeardownReport:
        """Show the matches to ``confirm`` and delete them if approved."""
        names = self.matches(teardown_filter, kind)
        if not names:
            logger.info("No %s resources match %s", kind.value, teardown_filter)
            return TeardownReport()
        approved = bool(confirm(TeardownPlan(kind=kind, names=names)))
        return self.apply(teardown_filter, approved, kind)


def render_teardown_scripts(
    teardown_filter: TeardownFilter,
    rule_names: Sequence[str],
    directory: Path,
) -> List[Path]:
    """Write the standalone cleanup scripts.

    Args:
        teardown_filter: Tag, prefix and zone baked into the VM script.
        rule_names: Firewall rules the firewall script deletes.
        directory: Output directory (created if missing).

    Returns:
        Paths of the two executable scripts.

    Raises:
        ValueError: If the filter lacks a tag, prefix or zone; an empty
            prefix would select every VM in the project.
    """
    if not (teardown_filter.tag and teardown_filter.prefix and teardown_filter.zone):
        raise ValueError("teardown scripts need a tag, a name prefix and a zone")
    directory.mkdir(parents=True, exist_ok=True)
    vm_text = render_template("cleanup-vms.sh.tmpl", {
        "zone": shlex.quote(teardown_filter.zone or ""),
        "lab_tag": shlex.quote(teardown_filter.tag or ""),
        "prefix": shlex.quote(teardown_filter.prefix or ""),
    })
    fw_text = render_template("cleanup-firewall.sh.tmpl", {
        "rule_lines": "\n".join(f"    {shlex.quote(name)}" for name in rule_names),
    })

    written = []
    for filename, text in ((VM_SCRIPT, vm_text), (FIREWALL_SCRIPT, fw_text)):
        path = directory / filename
        path.write_text(text + "\n", encoding="utf-8")
        os.chmod(path, 0o755)
        written.append(path)
        logger.info("Wrote %s", path)
    return written
