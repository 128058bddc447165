"""Reconciliation pass for Lambda@Edge associations.

A pass runs in two phases, matching the deployment lifecycle:

1. validate_and_register(): once declarations are merged into the compiled
   template, validate them and record the pending associations.
2. reconcile(): once the functions are deployed (their version outputs
   exist), resolve references and converge each distribution.

Failures are not compensated. The merge is idempotent, so the recovery
strategy is to fix the cause and run the whole pass again; bindings that
were already applied are detected as no-ops.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from .backend import EdgeBackend
from .config import (
    DEFAULT_DEPLOY_POLL_INTERVAL_SECONDS,
    DEFAULT_PROGRESS_INITIAL_DELAY_SECONDS,
    DEFAULT_PROGRESS_INTERVAL_SECONDS,
    Config,
)
from .models import FunctionDeclaration, PendingAssociation
from .naming import ServiceNaming
from .resolver import ReferenceResolver
from .updater import DistributionUpdater, UpdateOutcome
from .validator import validate_associations
from .waiter import DeploymentWaiter

logger = logging.getLogger(__name__)


@dataclass
class ReconcileResult:
    """Result of a single reconciliation pass."""

    stack_name: str
    start_time: datetime = field(default_factory=lambda: datetime.now(UTC))
    end_time: datetime | None = None
    associations: int = 0
    outcomes: list[UpdateOutcome] = field(default_factory=list)

    @property
    def duration_seconds(self) -> float:
        """Calculate duration in seconds."""
        if self.end_time is None:
            return 0.0
        return (self.end_time - self.start_time).total_seconds()

    @property
    def distributions_checked(self) -> int:
        return len(self.outcomes)

    @property
    def distributions_updated(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.submitted)


class EdgeAssociationReconciler:
    """Owns the pending associations and wait registry of one pass."""

    def __init__(
        self,
        backend: EdgeBackend,
        naming: ServiceNaming,
        *,
        poll_interval_seconds: float = DEFAULT_DEPLOY_POLL_INTERVAL_SECONDS,
        progress_interval_seconds: float = DEFAULT_PROGRESS_INTERVAL_SECONDS,
        progress_initial_delay_seconds: float = DEFAULT_PROGRESS_INITIAL_DELAY_SECONDS,
        dry_run: bool = False,
    ) -> None:
        """Initialize the reconciler.

        Args:
            backend: AWS access, constructed once and injected.
            naming: Naming conventions of the service being deployed.
            poll_interval_seconds: Seconds between distribution status polls.
            progress_interval_seconds: Seconds between progress dots.
            progress_initial_delay_seconds: Delay before the first progress notice.
            dry_run: Compute changes without updating distributions.
        """
        self._backend = backend
        self._naming = naming
        self._waiter = DeploymentWaiter(
            backend,
            poll_interval_seconds=poll_interval_seconds,
            progress_interval_seconds=progress_interval_seconds,
            progress_initial_delay_seconds=progress_initial_delay_seconds,
        )
        self._updater = DistributionUpdater(backend, self._waiter, dry_run=dry_run)
        self._pending: list[PendingAssociation] = []

    @classmethod
    def from_config(
        cls,
        config: Config,
        backend: EdgeBackend,
        naming: ServiceNaming,
    ) -> EdgeAssociationReconciler:
        return cls(
            backend,
            naming,
            poll_interval_seconds=config.deploy_poll_interval_seconds,
            progress_interval_seconds=config.progress_interval_seconds,
            progress_initial_delay_seconds=config.progress_initial_delay_seconds,
            dry_run=config.dry_run,
        )

    @property
    def pending_associations(self) -> list[PendingAssociation]:
        return list(self._pending)

    @property
    def waiter(self) -> DeploymentWaiter:
        return self._waiter

    def validate_and_register(
        self,
        functions: Mapping[str, FunctionDeclaration],
        template: dict[str, Any],
    ) -> list[PendingAssociation]:
        """Validate declarations and register them for the next reconcile().

        Raises:
            AssociationValidationError: If any declaration is invalid.
        """
        self._pending = validate_associations(functions, template, self._naming)
        return self.pending_associations

    async def reconcile(self) -> ReconcileResult:
        """Converge every distribution that has pending associations.

        Raises:
            ResolutionError: If a stack, output or resource is missing.
            ConcurrentModification: If CloudFront rejects a stale ETag.
        """
        stack_name = self._naming.stack_name
        result = ReconcileResult(stack_name=stack_name, associations=len(self._pending))

        count = len(self._pending)
        if count == 0:
            result.end_time = datetime.now(UTC)
            return result

        logger.info(
            f"Checking to see if {count} "
            + ("functions need " if count > 1 else "function needs ")
            + "to be associated to CloudFront",
            extra={"stack_name": stack_name, "associations": count},
        )

        self._waiter.reset()
        resolver = ReferenceResolver(self._backend, stack_name, self._pending)
        resolution = await resolver.resolve()

        result.outcomes = await self._updater.update_all(resolution)
        result.end_time = datetime.now(UTC)
        self._log_result(result)
        return result

    def _log_result(self, result: ReconcileResult) -> None:
        """Log reconciliation result with structured data."""
        logger.info(
            "Reconciliation result",
            extra={
                "stack_name": result.stack_name,
                "duration_seconds": result.duration_seconds,
                "associations": result.associations,
                "distributions_checked": result.distributions_checked,
                "distributions_updated": result.distributions_updated,
            },
        )
