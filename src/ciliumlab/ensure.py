"""
ResourceEnsurer — check-then-create for named cloud resources.

The check and the create are two separate API calls, so a second run
against the same project can slip in between them. A create that fails
because the resource now exists is counted as ``already_existed``.
"""

from __future__ import annotations

import logging

from .errors import ResourceConflictError
from .models import EnsureOutcome, EnsureResult, ManagedResource

logger = logging.getLogger("ciliumlab.ensure")


class ResourceEnsurer:
    """Idempotent creation of ManagedResources. Never raises for API errors."""

    def ensure(self, resource: ManagedResource) -> EnsureResult:
        """Make sure a resource exists.

        Args:
            resource: Descriptor with existence predicate and creation action.

        Returns:
            EnsureResult with outcome already_existed, created, or failed.
        """
        try:
            present = resource.exists()
        except Exception as exc:
            logger.error("Existence check for %s failed: %s", resource.name, exc)
            return self._result(resource, EnsureOutcome.FAILED, f"existence check failed: {exc}")

        if present:
            logger.info("%s '%s' already exists", resource.kind.value, resource.name)
            return self._result(resource, EnsureOutcome.ALREADY_EXISTED)

        logger.info("Creating %s '%s'", resource.kind.value, resource.name)
        try:
            resource.create()
        except ResourceConflictError as exc:
            return self._recheck(resource, exc)
        except Exception as exc:
            logger.error("Creating %s failed: %s", resource.name, exc)
            return self._result(resource, EnsureOutcome.FAILED, str(exc))

        return self._result(resource, EnsureOutcome.CREATED)

    def _recheck(self, resource: ManagedResource, conflict: Exception) -> EnsureResult:
        """Resolve a create-time conflict by looking again."""
        logger.info(
            "Create of %s conflicted (%s); checking again", resource.name, conflict,
        )
        try:
            present = resource.exists()
        except Exception as exc:
            return self._result(resource, EnsureOutcome.FAILED, f"recheck failed: {exc}")
        if present:
            return self._result(resource, EnsureOutcome.ALREADY_EXISTED)
        return self._result(resource, EnsureOutcome.FAILED, str(conflict))

    @staticmethod
    def _result(
        resource: ManagedResource, outcome: EnsureOutcome, cause: str | None = None,
    ) -> EnsureResult:
        return EnsureResult(
            name=resource.name, kind=resource.kind, outcome=outcome, cause=cause,
        )
