"""Confirmation depth tracking for included transactions."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable

from rwa_deployer.core.config import get_settings
from rwa_deployer.core.exceptions import DeploymentError, classify_exception
from rwa_deployer.infrastructure.blockchain.client import ChainClient
from rwa_deployer.services.deployment.schemas import ConfirmationState, ConfirmationStatus

logger = logging.getLogger(__name__)

UpdateCallback = Callable[[ConfirmationStatus], None]


@dataclass
class MonitorHandle:
    """Cancellation handle for a monitor started in the background."""

    task: asyncio.Task
    cancel_event: asyncio.Event

    def cancel(self) -> None:
        """Stop polling; the task finishes at its next check."""
        self.cancel_event.set()

    @property
    def done(self) -> bool:
        return self.task.done()

    async def wait(self) -> bool:
        return await self.task


class ConfirmationMonitor:
    """Reports confirmation depth of a transaction until a target depth.

    Depth is ``current_height - inclusion_height + 1``; the including block
    counts as the first confirmation.
    """

    def __init__(
        self,
        client: ChainClient,
        poll_interval: float | None = None,
        receipt_timeout: float | None = None,
        receipt_poll_latency: float | None = None,
        max_polls: int | None = None,
        default_target_depth: int | None = None,
    ):
        """Initialize monitor.

        Args:
            client: Blockchain client
            poll_interval: Seconds between block height polls
            receipt_timeout: Max wait for the receipt in seconds
            receipt_poll_latency: Receipt polling interval in seconds
            max_polls: Upper bound on height polls per monitor call
            default_target_depth: Target depth when a call does not give one
        """
        settings = get_settings()
        self.client = client
        self.poll_interval = (
            poll_interval if poll_interval is not None
            else settings.confirmation_poll_interval
        )
        self.receipt_timeout = (
            receipt_timeout if receipt_timeout is not None else settings.receipt_timeout
        )
        self.receipt_poll_latency = (
            receipt_poll_latency if receipt_poll_latency is not None
            else settings.receipt_poll_latency
        )
        self.max_polls = (
            max_polls if max_polls is not None else settings.confirmation_max_polls
        )
        self.default_target_depth = (
            default_target_depth if default_target_depth is not None
            else settings.confirmation_target_depth
        )

    async def monitor(
        self,
        tx_hash: str,
        on_update: UpdateCallback | None = None,
        target_depth: int | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> bool:
        """Track a transaction until ``target_depth`` or cancellation.

        Args:
            tx_hash: Transaction hash
            on_update: Called with every status change
            target_depth: Depth at which polling stops (default 12)
            cancel_event: Set by the caller to stop polling

        Returns:
            True if the transaction was included successfully, False if it
            failed or no receipt could be obtained

        Raises:
            ValueError: If target_depth is below 1
        """
        target = target_depth if target_depth is not None else self.default_target_depth
        if target < 1:
            raise ValueError(f"target_depth must be at least 1, got {target}")
        cancel_event = cancel_event or asyncio.Event()

        def report(state: ConfirmationState, depth: int = 0) -> None:
            if not on_update:
                return
            try:
                on_update(ConfirmationStatus(state=state, depth=depth, tx_hash=tx_hash))
            except Exception as e:
                logger.error(f"Confirmation callback error for {tx_hash}: {e}")

        report(ConfirmationState.PENDING)

        try:
            receipt = await self._wait_for_receipt(tx_hash, cancel_event)
        except DeploymentError as e:
            logger.warning(f"No receipt for {tx_hash}: {e.message}")
            report(ConfirmationState.FAILED)
            return False

        if receipt is None:
            logger.info(f"Monitoring of {tx_hash} cancelled before inclusion")
            return False

        if receipt.get("status") != 1:
            logger.warning(f"Transaction {tx_hash} failed in block {receipt.get('blockNumber')}")
            report(ConfirmationState.FAILED)
            return False

        inclusion_block = receipt["blockNumber"]
        depth = 1
        report(ConfirmationState.CONFIRMED, depth)

        polls = 0
        while depth < target and polls < self.max_polls:
            if cancel_event.is_set():
                logger.info(f"Monitoring of {tx_hash} cancelled at depth {depth}")
                break

            polls += 1
            try:
                height = await self.client.get_block_number()
            except Exception as e:
                logger.warning(f"Block height poll failed for {tx_hash}: {e}")
            else:
                # A lagging node may report an older height
                new_depth = max(depth, height - inclusion_block + 1)
                if new_depth != depth:
                    depth = new_depth
                    report(ConfirmationState.CONFIRMED, depth)

            if depth >= target:
                break
            await self._sleep(cancel_event)
        else:
            if depth < target:
                logger.warning(
                    f"Stopped monitoring {tx_hash} at depth {depth}/{target} "
                    f"after {polls} polls"
                )

        logger.info(f"Transaction {tx_hash} confirmed at depth {depth}")
        return True

    def start(
        self,
        tx_hash: str,
        on_update: UpdateCallback | None = None,
        target_depth: int | None = None,
    ) -> MonitorHandle:
        """Run ``monitor`` as a background task.

        The returned handle must be kept; it is the only way to stop the loop.
        """
        cancel_event = asyncio.Event()
        task = asyncio.create_task(
            self.monitor(tx_hash, on_update, target_depth, cancel_event),
            name=f"confirmations-{tx_hash}",
        )
        return MonitorHandle(task=task, cancel_event=cancel_event)

    async def _wait_for_receipt(
        self, tx_hash: str, cancel_event: asyncio.Event
    ) -> dict[str, Any] | None:
        """Wait for inclusion, returning None if cancelled first.

        Raises:
            DeploymentError: On timeout or an unrecoverable RPC failure
        """
        receipt_task = asyncio.ensure_future(
            asyncio.wait_for(
                self.client.wait_for_transaction_receipt(
                    tx_hash,
                    timeout=self.receipt_timeout,
                    poll_latency=self.receipt_poll_latency,
                ),
                timeout=self.receipt_timeout,
            )
        )
        cancel_task = asyncio.ensure_future(cancel_event.wait())
        try:
            done, _ = await asyncio.wait(
                {receipt_task, cancel_task}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            cancel_task.cancel()
            if not receipt_task.done():
                receipt_task.cancel()

        if receipt_task not in done:
            return None
        try:
            return receipt_task.result()
        except Exception as e:
            raise classify_exception(e) from e

    async def _sleep(self, cancel_event: asyncio.Event) -> None:
        """Sleep one poll interval, waking early on cancellation."""
        try:
            await asyncio.wait_for(cancel_event.wait(), timeout=self.poll_interval)
        except asyncio.TimeoutError:
            pass


def get_confirmation_monitor(client: ChainClient) -> ConfirmationMonitor:
    """Create a monitor configured from settings."""
    return ConfirmationMonitor(client)
