"""
Error taxonomy for lab runs.

Every fatal condition carries its own exit code so a wrapper script can
tell a bad argument from a missing project from a VM that never came up.
"""

from __future__ import annotations


class LabError(Exception):
    """Base class for every error ciliumlab reports to the user."""

    exit_code = 1


class RequestValidationError(LabError):
    """Bad input. Raised before any side effect."""

    exit_code = 2


class PreconditionError(LabError):
    """No project context, or the Compute Engine API is unreachable."""

    exit_code = 3


class ResourceEnsureError(LabError):
    """A creation call failed for a reason other than 'already exists'."""

    exit_code = 4


class ReadinessTimeout(LabError):
    """A machine never accepted an SSH connection within the poll budget."""

    exit_code = 5


class RemoteExecutionError(LabError):
    """Copying or running the install payload on a machine failed."""

    exit_code = 6


class TeardownResourceError(LabError):
    """One or more deletions failed during a teardown sweep."""

    exit_code = 7


class ResourceConflictError(Exception):
    """The cloud refused a create because the resource already exists.

    Not fatal: the ensurer re-checks existence and reports
    ``already_existed`` when the resource is really there.
    """
