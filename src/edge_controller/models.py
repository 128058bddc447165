"""Declaration models and reconciliation value types.

Pydantic models parse the service declaration file at the boundary.
Frozen dataclasses carry validated, resolved state through one
reconciliation pass and are never mutated once constructed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Annotated, Any

from pydantic import BaseModel, Field, field_validator

# =============================================================================
# Event Types
# =============================================================================


class EventType(str, Enum):
    """CloudFront events a Lambda@Edge function can be bound to."""

    VIEWER_REQUEST = "viewer-request"
    ORIGIN_REQUEST = "origin-request"
    VIEWER_RESPONSE = "viewer-response"
    ORIGIN_RESPONSE = "origin-response"


VALID_EVENT_TYPES: tuple[str, ...] = tuple(e.value for e in EventType)

DISTRIBUTION_RESOURCE_TYPE = "AWS::CloudFront::Distribution"

# Terminal status reported by CloudFront once a configuration has propagated
DEPLOYED_STATUS = "Deployed"


# =============================================================================
# Declaration Models
# =============================================================================


class EdgeBindingDeclaration(BaseModel):
    """The `lambdaAtEdge` annex of a function declaration.

    eventType is kept as a plain string here; the association validator
    checks it so the operator sees the same message for every bad value.
    """

    model_config = {"extra": "ignore", "populate_by_name": True}

    distribution: str | None = None
    distribution_id: str | None = Field(None, alias="distributionID")
    event_type: str | None = Field(None, alias="eventType")


class FunctionDeclaration(BaseModel):
    """A single function entry of the service declaration.

    Only the lambdaAtEdge annex is read. Everything else (handler,
    environment, events) belongs to the deployment framework and may hold
    CloudFormation intrinsics, so it is ignored rather than validated.
    """

    model_config = {"extra": "ignore", "populate_by_name": True}

    lambda_at_edge: EdgeBindingDeclaration | None = Field(None, alias="lambdaAtEdge")


class ProviderDeclaration(BaseModel):
    """Provider section of the service declaration."""

    model_config = {"extra": "ignore", "populate_by_name": True}

    name: str = "aws"
    stage: Annotated[str, Field(min_length=1)] = "dev"
    region: str = "us-east-1"
    stack_name: str | None = Field(None, alias="stackName")

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if v != "aws":
            raise ValueError("Lambda@Edge associations require the aws provider")
        return v


class ServiceDeclaration(BaseModel):
    """Top-level service declaration (a serverless.yml-shaped document)."""

    model_config = {"extra": "ignore", "populate_by_name": True}

    service: Annotated[str, Field(min_length=1)]
    provider: ProviderDeclaration = Field(default_factory=ProviderDeclaration)
    functions: dict[str, FunctionDeclaration] = Field(default_factory=dict)

    @field_validator("functions", mode="before")
    @classmethod
    def default_empty_functions(cls, v: Any) -> Any:
        # `functions:` with no entries parses as None
        return v or {}

    @property
    def edge_functions(self) -> dict[str, FunctionDeclaration]:
        """Functions that carry a lambdaAtEdge annex, in declaration order."""
        return {
            name: fn for name, fn in self.functions.items() if fn.lambda_at_edge is not None
        }


# =============================================================================
# Distribution References
# =============================================================================


@dataclass(frozen=True)
class ByName:
    """Distribution declared only by its CloudFormation logical name."""

    logical_name: str


@dataclass(frozen=True)
class ById:
    """Distribution declared with its CloudFront id.

    The logical name is still required: it is the stable key used for
    grouping and progress output.
    """

    distribution_id: str
    logical_name: str


DistributionRef = ById | ByName


# =============================================================================
# Reconciliation Values
# =============================================================================


@dataclass(frozen=True)
class PendingAssociation:
    """A validated, not yet resolved intent to bind a function to a distribution."""

    function_logical_id: str
    distribution: DistributionRef
    event_type: EventType
    version_output_name: str

    @property
    def distribution_logical_name(self) -> str:
        return self.distribution.logical_name


@dataclass(frozen=True)
class ResolvedDistribution:
    """A distribution reference resolved to its CloudFront id."""

    distribution_id: str
    logical_name: str


@dataclass(frozen=True)
class DesiredBinding:
    """One (event type, function version ARN) pair a distribution must carry."""

    event_type: EventType
    function_arn: str


@dataclass(frozen=True)
class DistributionState:
    """A snapshot of a distribution as returned by CloudFront.

    Attributes:
        distribution_id: CloudFront distribution id
        status: "Deployed" or "InProgress"
        config: The DistributionConfig document (owned by the caller once fetched)
        etag: Concurrency token required to submit an update
    """

    distribution_id: str
    status: str
    config: dict[str, Any] = field(default_factory=dict, compare=False)
    etag: str | None = None

    @property
    def is_deployed(self) -> bool:
        return self.status == DEPLOYED_STATUS


@dataclass
class ResolutionResult:
    """Output of the reference resolver for one pass.

    Attributes:
        desired: Distribution id to desired bindings, in declaration order
        distributions: Function logical id to its resolved distribution
    """

    desired: dict[str, list[DesiredBinding]]
    distributions: dict[str, ResolvedDistribution]
