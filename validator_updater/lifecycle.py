"""Retry and timeout policy around destructive VMM calls.

Stopping is best effort: a failed or timed-out StopVm is reported as
StopFailed and the sequence moves on to removal. Removal is retried with a
fixed delay and its final failure propagates.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TypeVar

from .errors import UpdaterError
from .vmm import VmmClient

logger = logging.getLogger(__name__)

T = TypeVar("T")

SleepFn = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class Stopped:
    vm_id: str


@dataclass(frozen=True)
class StopFailed:
    vm_id: str
    reason: str


StopResult = Stopped | StopFailed


@dataclass
class RetryPolicy:
    """Fixed-delay retry.

    Args:
        max_attempts: Total attempts, including the first
        delay: Seconds between attempts
        sleep: Awaitable sleep, replaced in tests
    """

    max_attempts: int = 3
    delay: float = 3.0
    sleep: SleepFn = field(default=asyncio.sleep)

    async def run(self, operation: Callable[[], Awaitable[T]], description: str) -> T:
        for attempt in range(1, self.max_attempts + 1):
            try:
                return await operation()
            except UpdaterError as e:
                if attempt >= self.max_attempts:
                    logger.error(f"{description} failed after {self.max_attempts} attempts")
                    raise
                logger.warning(
                    f"{description} failed (attempt {attempt}/{self.max_attempts}): {e}, "
                    "retrying..."
                )
                await self.sleep(self.delay)
        raise AssertionError("unreachable")


class VmLifecycle:
    """Stop/remove sequencing for a single VM."""

    def __init__(
        self,
        vmm: VmmClient,
        *,
        stop_timeout: float = 60.0,
        stop_settle: float = 5.0,
        remove_grace: float = 2.0,
        remove_policy: RetryPolicy | None = None,
        sleep: SleepFn = asyncio.sleep,
    ):
        self.vmm = vmm
        self.stop_timeout = stop_timeout
        self.stop_settle = stop_settle
        self.remove_grace = remove_grace
        self.remove_policy = remove_policy or RetryPolicy(sleep=sleep)
        self.sleep = sleep

    async def stop_vm(self, vm_id: str) -> StopResult:
        """Stop a VM within stop_timeout. Never raises for RPC failures."""
        logger.info(f"Stopping VM: {vm_id}")
        try:
            await asyncio.wait_for(self.vmm.stop_vm(vm_id), timeout=self.stop_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Timeout stopping VM {vm_id}")
            return StopFailed(vm_id, f"timed out after {self.stop_timeout}s")
        except UpdaterError as e:
            logger.warning(f"Failed to stop VM {vm_id}: {e}, will try to remove anyway")
            return StopFailed(vm_id, str(e))

        logger.info(f"VM {vm_id} stop command sent, waiting for VM to stop...")
        await self.sleep(self.stop_settle)
        return Stopped(vm_id)

    async def remove_vm(self, vm_id: str) -> None:
        logger.info(f"Removing VM: {vm_id}")
        await self.remove_policy.run(
            lambda: self.vmm.remove_vm(vm_id), description=f"Remove VM {vm_id}"
        )
        logger.info(f"VM {vm_id} removed successfully")

    async def kill_and_remove_vm(self, vm_id: str) -> StopResult:
        """Stop (best effort), wait out the grace period, then remove with retries.

        Raises:
            UpdaterError: If the final removal attempt fails
        """
        logger.info(f"Killing and removing VM: {vm_id}")

        stop_result = await self.stop_vm(vm_id)
        if isinstance(stop_result, StopFailed):
            logger.info(f"Proceeding to remove VM {vm_id} after failed stop: {stop_result.reason}")

        await self.sleep(self.remove_grace)
        await self.remove_vm(vm_id)

        logger.info(f"VM {vm_id} successfully killed and removed")
        return stop_result
