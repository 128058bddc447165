"""Validation of declared Lambda@Edge associations.

Turns the `lambdaAtEdge` annexes of a service declaration into a list of
PendingAssociation values, checking them against the compiled template.
Validation runs before any AWS call, so a bad declaration never reaches
a distribution.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from .models import (
    DISTRIBUTION_RESOURCE_TYPE,
    VALID_EVENT_TYPES,
    ById,
    ByName,
    DistributionRef,
    EdgeBindingDeclaration,
    EventType,
    FunctionDeclaration,
    PendingAssociation,
)
from .naming import ServiceNaming
from .template import strip_environment

logger = logging.getLogger(__name__)


class AssociationValidationError(Exception):
    """Raised when a declared association is invalid."""

    pass


class InvalidEventType(AssociationValidationError):
    """The declared eventType is not a CloudFront event."""

    def __init__(self, event_type: Any) -> None:
        self.event_type = event_type
        super().__init__(
            f'"{event_type}" is not a valid event type, must be one of: '
            + ", ".join(VALID_EVENT_TYPES)
        )


class MissingDistributionReference(AssociationValidationError):
    """Neither a template distribution nor a distribution id was declared."""

    def __init__(self, logical_name: str | None) -> None:
        self.logical_name = logical_name
        super().__init__(
            f'Could not find resource with logical name "{logical_name}" '
            "or there is no distributionID set"
        )


class IncompleteDistributionReference(AssociationValidationError):
    """A distribution id was declared without the distribution logical name."""

    def __init__(self, distribution_id: str) -> None:
        self.distribution_id = distribution_id
        super().__init__(f'Distribution ID "{distribution_id}" requires a distribution to be set')


class WrongResourceType(AssociationValidationError):
    """The referenced template resource is not a CloudFront distribution."""

    def __init__(self, logical_name: str, resource_type: Any) -> None:
        self.logical_name = logical_name
        self.resource_type = resource_type
        super().__init__(
            f'Resource with logical name "{logical_name}" is not type {DISTRIBUTION_RESOURCE_TYPE}'
        )


class DuplicateEventType(AssociationValidationError):
    """Two functions claim the same event type on one distribution.

    CloudFront keeps one function per event type on a behavior, so the
    second binding would overwrite the first on every pass.
    """

    def __init__(
        self,
        first_function: str,
        second_function: str,
        logical_name: str,
        event_type: EventType,
    ) -> None:
        self.first_function = first_function
        self.second_function = second_function
        self.logical_name = logical_name
        self.event_type = event_type
        super().__init__(
            f'Functions "{first_function}" and "{second_function}" are both associated '
            f'to {event_type.value} on distribution "{logical_name}"'
        )


def parse_distribution_ref(
    binding: EdgeBindingDeclaration,
    resources: Mapping[str, Any],
) -> DistributionRef:
    """Build the distribution reference of one annex.

    Raises:
        MissingDistributionReference: If nothing resolvable was declared.
        IncompleteDistributionReference: If only a distribution id was declared.
        WrongResourceType: If the named resource is not a distribution.
    """
    logical_name = binding.distribution or None
    distribution_id = binding.distribution_id or None
    resource = resources.get(logical_name) if logical_name else None

    if resource is None and distribution_id is None:
        raise MissingDistributionReference(logical_name)

    if logical_name is None:
        # distribution_id must be set here, otherwise the check above raised
        raise IncompleteDistributionReference(distribution_id)

    if distribution_id is not None:
        return ById(distribution_id=distribution_id, logical_name=logical_name)

    resource_type = resource.get("Type")
    if resource_type != DISTRIBUTION_RESOURCE_TYPE:
        raise WrongResourceType(logical_name, resource_type)

    return ByName(logical_name=logical_name)


def parse_event_type(value: Any) -> EventType:
    """Validate a declared event type.

    Raises:
        InvalidEventType: If value is not one of the four CloudFront events.
    """
    try:
        return EventType(value)
    except ValueError as e:
        raise InvalidEventType(value) from e


def validate_associations(
    functions: Mapping[str, FunctionDeclaration],
    template: dict[str, Any],
    naming: ServiceNaming,
) -> list[PendingAssociation]:
    """Validate declared associations and prepare their functions.

    Every edge-bound function has its environment variables stripped from
    the template, since Lambda@Edge rejects them.

    Args:
        functions: Declared functions keyed by function name.
        template: Compiled CloudFormation template, modified in place.
        naming: Naming conventions for the service.

    Returns:
        Pending associations in declaration order (possibly empty).

    Raises:
        AssociationValidationError: On the first invalid declaration.
    """
    resources: Mapping[str, Any] = template.get("Resources") or {}
    pending: list[PendingAssociation] = []
    claimed: dict[tuple[DistributionRef, EventType], str] = {}

    for function_name, function in functions.items():
        binding = function.lambda_at_edge
        if binding is None:
            continue

        event_type = parse_event_type(binding.event_type)
        distribution = parse_distribution_ref(binding, resources)

        owner = claimed.setdefault((distribution, event_type), function_name)
        if owner != function_name:
            raise DuplicateEventType(
                owner, function_name, distribution.logical_name, event_type
            )

        pending.append(
            PendingAssociation(
                function_logical_id=naming.lambda_logical_id(function_name),
                distribution=distribution,
                event_type=event_type,
                version_output_name=naming.lambda_version_output_logical_id(function_name),
            )
        )

    for association in pending:
        strip_environment(template, association.function_logical_id)

    logger.debug(
        "Validated Lambda@Edge associations",
        extra={"associations": len(pending), "functions": len(functions)},
    )
    return pending
