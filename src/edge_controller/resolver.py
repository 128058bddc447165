"""Resolution of pending associations against the deployed stack.

Two read-only lookups turn abstract references into concrete ones:

- distribution logical names -> CloudFront distribution ids
  (DescribeStackResources, skipped when every id was declared)
- function version outputs -> qualified function ARNs (DescribeStacks)

Results are memoized on the resolver; one resolver serves one pass.
"""

from __future__ import annotations

import logging

from .backend import EdgeBackend
from .models import (
    ById,
    ByName,
    DesiredBinding,
    PendingAssociation,
    ResolutionResult,
    ResolvedDistribution,
)

logger = logging.getLogger(__name__)


class ResolutionError(Exception):
    """Raised when a pending association cannot be resolved."""

    pass


class StackNotFound(ResolutionError):
    """The deployment stack does not exist."""

    def __init__(self, stack_name: str) -> None:
        self.stack_name = stack_name
        super().__init__(f'CloudFormation did not return a stack with name "{stack_name}"')


class OutputNotFound(ResolutionError):
    """The function's version output is missing from the stack.

    Usually means the function was not deployed with versioning enabled.
    """

    def __init__(self, stack_name: str, output_name: str) -> None:
        self.stack_name = stack_name
        self.output_name = output_name
        super().__init__(f'Stack "{stack_name}" did not have an output with name "{output_name}"')


class ResourceNotFound(ResolutionError):
    """The distribution resource is missing from the stack."""

    def __init__(self, stack_name: str, logical_name: str) -> None:
        self.stack_name = stack_name
        self.logical_name = logical_name
        super().__init__(
            f'Stack "{stack_name}" did not have a resource with logical name "{logical_name}"'
        )


class ReferenceResolver:
    """Resolves pending associations for a single reconciliation pass."""

    def __init__(
        self,
        backend: EdgeBackend,
        stack_name: str,
        pending: list[PendingAssociation],
    ) -> None:
        self._backend = backend
        self._stack_name = stack_name
        self._pending = list(pending)

        self._distributions: dict[str, ResolvedDistribution] | None = None
        self._desired: dict[str, list[DesiredBinding]] | None = None

    async def resolve(self) -> ResolutionResult:
        """Resolve every pending association.

        Raises:
            ResolutionError: If a stack, output or resource is missing.
        """
        distributions = await self.resolve_distribution_ids()
        desired = await self.resolve_function_arns()
        return ResolutionResult(desired=desired, distributions=distributions)

    async def resolve_distribution_ids(self) -> dict[str, ResolvedDistribution]:
        """Map each association's function logical id to its distribution.

        Raises:
            ResourceNotFound: If a named distribution is not in the stack.
        """
        if self._distributions is not None:
            return self._distributions

        distributions: dict[str, ResolvedDistribution] = {}
        by_name: list[PendingAssociation] = []

        for association in self._pending:
            ref = association.distribution
            match ref:
                case ById(distribution_id=distribution_id, logical_name=logical_name):
                    distributions[association.function_logical_id] = ResolvedDistribution(
                        distribution_id=distribution_id,
                        logical_name=logical_name,
                    )
                case ByName():
                    by_name.append(association)

        # DescribeStackResources is only needed for references declared by name
        if by_name:
            resources = await self._backend.describe_stack_resources(self._stack_name)

            for association in by_name:
                logical_name = association.distribution_logical_name
                physical_id = resources.get(logical_name)
                if not physical_id:
                    raise ResourceNotFound(self._stack_name, logical_name)

                distributions[association.function_logical_id] = ResolvedDistribution(
                    distribution_id=physical_id,
                    logical_name=logical_name,
                )

        # Keep declaration order regardless of which lookup resolved an entry
        self._distributions = {
            association.function_logical_id: distributions[association.function_logical_id]
            for association in self._pending
        }
        logger.debug(
            "Resolved distribution ids",
            extra={
                "stack_name": self._stack_name,
                "looked_up": len(by_name),
                "distributions": len(self._distributions),
            },
        )
        return self._distributions

    async def resolve_function_arns(self) -> dict[str, list[DesiredBinding]]:
        """Group desired bindings by distribution id.

        Raises:
            StackNotFound: If the stack does not exist.
            OutputNotFound: If a version output is missing.
            ResourceNotFound: If a named distribution is not in the stack.
        """
        if self._desired is not None:
            return self._desired

        distributions = await self.resolve_distribution_ids()

        outputs = await self._backend.describe_stack_outputs(self._stack_name)
        if outputs is None:
            raise StackNotFound(self._stack_name)

        desired: dict[str, list[DesiredBinding]] = {}
        for association in self._pending:
            function_arn = outputs.get(association.version_output_name)
            if function_arn is None:
                raise OutputNotFound(self._stack_name, association.version_output_name)

            distribution_id = distributions[association.function_logical_id].distribution_id
            desired.setdefault(distribution_id, []).append(
                DesiredBinding(event_type=association.event_type, function_arn=function_arn)
            )

        self._desired = desired
        return self._desired
