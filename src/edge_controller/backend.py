"""AWS access for the association operator.

Wraps the CloudFormation and CloudFront clients behind a small async
interface. boto3 is blocking, so every call runs in the default executor
to keep the event loop free while CloudFront converges.

Clients are built once per process from a single boto3 session and
injected wherever they are needed.
"""

from __future__ import annotations

import asyncio
import copy
import logging
from collections.abc import Callable
from typing import Any, Protocol, TypeVar

import boto3
from botocore.exceptions import ClientError

from .models import DistributionState

logger = logging.getLogger(__name__)

T = TypeVar("T")

# CloudFront error codes meaning the ETag we sent is stale
STALE_ETAG_ERROR_CODES = frozenset({"PreconditionFailed", "InvalidIfMatchVersion"})

# CloudFormation answers describe_stacks on a missing stack with a generic
# ValidationError whose message says so
MISSING_STACK_ERROR_CODE = "ValidationError"
MISSING_STACK_MESSAGE_FRAGMENT = "does not exist"


class ConcurrencyError(Exception):
    """Raised when a backend rejects a write because of a concurrent change."""

    pass


class ConcurrentModification(ConcurrencyError):
    """CloudFront rejected an update because the ETag was stale."""

    def __init__(self, distribution_id: str, etag: str | None) -> None:
        self.distribution_id = distribution_id
        self.etag = etag
        super().__init__(
            f'Distribution "{distribution_id}" was modified concurrently '
            f'(ETag "{etag}" is no longer current)'
        )


class EdgeBackend(Protocol):
    """Operations the reconciler needs from AWS."""

    async def describe_stack_outputs(self, stack_name: str) -> dict[str, str] | None: ...

    async def describe_stack_resources(self, stack_name: str) -> dict[str, str]: ...

    async def get_distribution(self, distribution_id: str) -> DistributionState: ...

    async def update_distribution(
        self,
        distribution_id: str,
        config: dict[str, Any],
        etag: str | None,
    ) -> DistributionState: ...

    async def wait_until_deployed(
        self,
        distribution_id: str,
        poll_interval_seconds: float,
    ) -> DistributionState: ...


class AwsEdgeBackend:
    """EdgeBackend implementation over boto3 clients."""

    def __init__(self, cloudformation: Any, cloudfront: Any) -> None:
        """Initialize with already constructed boto3 clients.

        Args:
            cloudformation: boto3 CloudFormation client.
            cloudfront: boto3 CloudFront client.
        """
        self._cloudformation = cloudformation
        self._cloudfront = cloudfront

    @classmethod
    def from_session(cls, region: str, profile: str | None = None) -> AwsEdgeBackend:
        """Build the backend with credentials resolved once.

        Args:
            region: Region of the CloudFormation stack.
            profile: Optional named credentials profile.
        """
        session = boto3.session.Session(profile_name=profile, region_name=region)
        logger.info(
            "Initialized AWS session",
            extra={"region": region, "profile": profile or "default"},
        )
        return cls(
            cloudformation=session.client("cloudformation"),
            cloudfront=session.client("cloudfront"),
        )

    async def _call(self, func: Callable[..., T], **kwargs: Any) -> T:
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(None, lambda: func(**kwargs))

    async def describe_stack_outputs(self, stack_name: str) -> dict[str, str] | None:
        """Return the outputs of a stack, or None if the stack does not exist.

        Raises:
            ClientError: For any failure other than a missing stack.
        """
        try:
            response = await self._call(
                self._cloudformation.describe_stacks, StackName=stack_name
            )
        except ClientError as e:
            error = e.response.get("Error", {})
            if (
                error.get("Code") == MISSING_STACK_ERROR_CODE
                and MISSING_STACK_MESSAGE_FRAGMENT in error.get("Message", "")
            ):
                return None
            raise

        for stack in response.get("Stacks", []):
            if stack.get("StackName") == stack_name:
                return {
                    output["OutputKey"]: output["OutputValue"]
                    for output in stack.get("Outputs", [])
                }
        return None

    async def describe_stack_resources(self, stack_name: str) -> dict[str, str]:
        """Return logical resource ids mapped to physical ids.

        DescribeStackResources stops at 100 resources, so the paginated
        ListStackResources is used to cover large stacks.
        """
        return await self._call(self._list_stack_resources, stack_name=stack_name)

    def _list_stack_resources(self, stack_name: str) -> dict[str, str]:
        paginator = self._cloudformation.get_paginator("list_stack_resources")
        resources: dict[str, str] = {}
        for page in paginator.paginate(StackName=stack_name):
            for resource in page.get("StackResourceSummaries", []):
                resources[resource["LogicalResourceId"]] = resource.get("PhysicalResourceId", "")
        return resources

    async def get_distribution(self, distribution_id: str) -> DistributionState:
        response = await self._call(self._cloudfront.get_distribution, Id=distribution_id)
        distribution = response["Distribution"]
        return DistributionState(
            distribution_id=distribution_id,
            status=distribution["Status"],
            config=distribution["DistributionConfig"],
            etag=response.get("ETag"),
        )

    async def update_distribution(
        self,
        distribution_id: str,
        config: dict[str, Any],
        etag: str | None,
    ) -> DistributionState:
        """Submit a distribution configuration guarded by its ETag.

        Raises:
            ConcurrentModification: If the ETag is stale.
            ClientError: For any other CloudFront error.
        """
        try:
            response = await self._call(
                self._cloudfront.update_distribution,
                Id=distribution_id,
                DistributionConfig=config,
                IfMatch=etag,
            )
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in STALE_ETAG_ERROR_CODES:
                raise ConcurrentModification(distribution_id, etag) from e
            raise

        distribution = response["Distribution"]
        return DistributionState(
            distribution_id=distribution_id,
            status=distribution["Status"],
            config=copy.deepcopy(distribution["DistributionConfig"]),
            etag=response.get("ETag"),
        )

    async def wait_until_deployed(
        self,
        distribution_id: str,
        poll_interval_seconds: float,
    ) -> DistributionState:
        """Poll until CloudFront reports the distribution as deployed.

        There is no local timeout: a distribution that never converges is
        a CloudFront fault and blocks the pass until it is interrupted.
        """
        while True:
            state = await self.get_distribution(distribution_id)
            if state.is_deployed:
                return state
            logger.debug(
                "Distribution not deployed yet",
                extra={"distribution_id": distribution_id, "status": state.status},
            )
            await asyncio.sleep(poll_interval_seconds)
