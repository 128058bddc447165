"""Per-distribution update orchestration.

For each distribution: wait until it is deployed, fetch its configuration,
merge the desired bindings, and submit the result only when something
changed. Distributions are processed one after another, never in
parallel: CloudFront accepts a single in-flight configuration change per
distribution and each change takes minutes to converge.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from .backend import EdgeBackend
from .merger import merge_distribution_config
from .models import DesiredBinding, ResolutionResult, ResolvedDistribution
from .waiter import DeploymentWaiter

logger = logging.getLogger(__name__)


@dataclass
class UpdateOutcome:
    """Result of reconciling one distribution."""

    distribution_id: str
    logical_name: str
    changed: bool = False
    submitted: bool = False


class DistributionUpdater:
    """Converges distributions to their desired Lambda@Edge bindings."""

    def __init__(
        self,
        backend: EdgeBackend,
        waiter: DeploymentWaiter,
        *,
        dry_run: bool = False,
    ) -> None:
        self._backend = backend
        self._waiter = waiter
        self._dry_run = dry_run

    async def update_all(self, resolution: ResolutionResult) -> list[UpdateOutcome]:
        """Update every resolved distribution sequentially.

        Raises:
            ConcurrentModification: If CloudFront rejects a stale ETag.
        """
        outcomes: list[UpdateOutcome] = []
        for resolved in resolution.distributions.values():
            bindings = resolution.desired.get(resolved.distribution_id, [])
            outcome = await self.update_distribution(resolved, bindings)
            outcomes.append(outcome)
        return outcomes

    async def update_distribution(
        self,
        resolved: ResolvedDistribution,
        bindings: list[DesiredBinding],
    ) -> UpdateOutcome:
        """Bring one distribution in line with its desired bindings.

        Args:
            resolved: Distribution to update.
            bindings: Desired bindings for it.

        Returns:
            What happened to the distribution.

        Raises:
            ConcurrentModification: If CloudFront rejects a stale ETag.
        """
        distribution_id = resolved.distribution_id
        name = resolved.logical_name
        outcome = UpdateOutcome(distribution_id=distribution_id, logical_name=name)

        state = await self._backend.get_distribution(distribution_id)
        if not state.is_deployed:
            await self._waiter.wait_until_deployed(distribution_id, name)
            # The ETag changes when the pending update lands, read it again
            state = await self._backend.get_distribution(distribution_id)

        config = state.config
        outcome.changed = merge_distribution_config(config, bindings)

        if not outcome.changed:
            logger.info(
                "The distribution is already configured with the current versions "
                "of each Lambda@Edge function it needs",
                extra={"distribution": name, "distribution_id": distribution_id},
            )
            return outcome

        if self._dry_run:
            logger.info(
                f'Dry run: skipping update of distribution "{name}"',
                extra={"distribution": name, "distribution_id": distribution_id},
            )
            return outcome

        logger.info(
            f'Updating distribution "{name}" because we updated Lambda@Edge associations on it',
            extra={"distribution": name, "distribution_id": distribution_id},
        )
        await self._backend.update_distribution(distribution_id, config, state.etag)
        outcome.submitted = True

        await self._waiter.wait_until_deployed(distribution_id, name)
        logger.info(
            f'Done updating distribution "{name}"',
            extra={"distribution": name, "distribution_id": distribution_id},
        )
        return outcome
