"""Waiting for CloudFront distributions to reach the Deployed state.

A configuration change takes minutes to propagate to every edge location.
The waiter polls through the backend without blocking the event loop and
keeps the operator informed with a low-frequency progress ticker.

Concurrent waits on the same distribution share a single poll. The
registry of in-flight waits belongs to the waiter, which belongs to one
reconciliation pass; entries are dropped as soon as their wait settles.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

import click

from .backend import EdgeBackend
from .config import (
    DEFAULT_DEPLOY_POLL_INTERVAL_SECONDS,
    DEFAULT_PROGRESS_INITIAL_DELAY_SECONDS,
    DEFAULT_PROGRESS_INTERVAL_SECONDS,
)
from .models import DistributionState

logger = logging.getLogger(__name__)


def _echo_progress(text: str, newline: bool) -> None:
    click.echo(text, nl=newline, err=True)


class ProgressTicker:
    """Emits the begin notice once, then a dot per interval, until stopped."""

    def __init__(
        self,
        display_name: str,
        interval_seconds: float,
        initial_delay_seconds: float,
        echo: Callable[[str, bool], None] = _echo_progress,
    ) -> None:
        self._display_name = display_name
        self._interval_seconds = interval_seconds
        self._initial_delay_seconds = initial_delay_seconds
        self._echo = echo
        self._task: asyncio.Task[None] | None = None
        self.dots_printed = 0

    def start(self) -> None:
        self._task = asyncio.ensure_future(self._run())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

        if self.dots_printed:
            # A dot was printed, terminate the line
            self._echo("", True)

    async def _run(self) -> None:
        await asyncio.sleep(self._initial_delay_seconds)
        logger.info(
            f'Waiting for CloudFront distribution "{self._display_name}" to be deployed',
            extra={"distribution": self._display_name},
        )
        logger.info("This can take awhile.")
        while True:
            self._echo(".", False)
            self.dots_printed += 1
            await asyncio.sleep(self._interval_seconds)


class DeploymentWaiter:
    """Blocks until distributions report Deployed, deduplicating concurrent waits."""

    def __init__(
        self,
        backend: EdgeBackend,
        *,
        poll_interval_seconds: float = DEFAULT_DEPLOY_POLL_INTERVAL_SECONDS,
        progress_interval_seconds: float = DEFAULT_PROGRESS_INTERVAL_SECONDS,
        progress_initial_delay_seconds: float = DEFAULT_PROGRESS_INITIAL_DELAY_SECONDS,
        echo: Callable[[str, bool], None] = _echo_progress,
    ) -> None:
        self._backend = backend
        self._poll_interval_seconds = poll_interval_seconds
        self._progress_interval_seconds = progress_interval_seconds
        self._progress_initial_delay_seconds = progress_initial_delay_seconds
        self._echo = echo
        self._in_flight: dict[str, asyncio.Task[DistributionState]] = {}

    def reset(self) -> None:
        """Forget every registered wait. Called when a pass starts."""
        self._in_flight.clear()

    def is_waiting(self, distribution_id: str) -> bool:
        return distribution_id in self._in_flight

    async def wait_until_deployed(
        self,
        distribution_id: str,
        display_name: str,
    ) -> DistributionState:
        """Wait until the distribution is deployed.

        A caller arriving while another wait on the same id is in flight
        joins that wait instead of polling again.

        Args:
            distribution_id: CloudFront distribution id.
            display_name: Name used in progress output (the logical name).

        Returns:
            The deployed distribution state.

        Raises:
            ClientError: If CloudFront reports an error while polling.
        """
        in_flight = self._in_flight.get(distribution_id)
        if in_flight is not None:
            logger.debug(
                "Joining in-flight wait",
                extra={"distribution_id": distribution_id, "distribution": display_name},
            )
            return await asyncio.shield(in_flight)

        task = asyncio.ensure_future(self._wait(distribution_id, display_name))
        self._in_flight[distribution_id] = task
        try:
            return await task
        finally:
            if self._in_flight.get(distribution_id) is task:
                del self._in_flight[distribution_id]

    async def _wait(self, distribution_id: str, display_name: str) -> DistributionState:
        ticker = ProgressTicker(
            display_name,
            interval_seconds=self._progress_interval_seconds,
            initial_delay_seconds=self._progress_initial_delay_seconds,
            echo=self._echo,
        )
        ticker.start()
        try:
            state = await self._backend.wait_until_deployed(
                distribution_id, self._poll_interval_seconds
            )
        finally:
            await ticker.stop()

        logger.info(
            f'Distribution "{display_name}" is now in "{state.status}" state',
            extra={
                "distribution": display_name,
                "distribution_id": distribution_id,
                "status": state.status,
            },
        )
        return state
