"""Worker pool - runs probes for due services with bounded concurrency."""
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, List, Optional, Sequence, TypeVar

from ..config import settings
from .prober import ProbeOutcome

logger = logging.getLogger(__name__)

T = TypeVar("T")

ProbeFunc = Callable[[T], Awaitable[ProbeOutcome]]
ResultHook = Callable[[T, ProbeOutcome], Awaitable[Any]]


@dataclass
class PoolResult(Generic[T]):
    """What happened to one target during a cycle."""
    target: T
    outcome: Optional[ProbeOutcome] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.outcome is not None and self.error is None


class WorkerPool:
    """Fixed number of workers pulling targets from a shared queue.

    A failure while probing or handling one target is recorded on that
    target's result and never stops the other workers.
    """

    def __init__(self, size: Optional[int] = None):
        self.size = max(1, size if size is not None else settings.worker_pool_size)

    async def run(
        self,
        targets: Sequence[T],
        probe: ProbeFunc,
        on_result: Optional[ResultHook] = None,
    ) -> List[PoolResult]:
        """Probe every target and collect results in completion order.

        Args:
            targets: Items to probe, each handed to exactly one worker
            probe: Async callable performing the check for a target
            on_result: Optional hook awaited right after a target's probe
                (used to reconcile incidents per target)
        """
        queue: asyncio.Queue = asyncio.Queue()
        for target in targets:
            queue.put_nowait(target)

        results: List[PoolResult] = []

        async def worker():
            while True:
                try:
                    target = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return
                results.append(await self._process(target, probe, on_result))

        workers = min(self.size, len(targets))
        await asyncio.gather(*[worker() for _ in range(workers)])
        return results

    async def _process(
        self,
        target: T,
        probe: ProbeFunc,
        on_result: Optional[ResultHook],
    ) -> PoolResult:
        """Probe one target, then run the result hook."""
        try:
            outcome = await probe(target)
        except Exception as e:
            logger.exception(f"Probe failed for {target!r}")
            return PoolResult(target=target, error=f"Probe failed: {e}")

        if on_result is not None:
            try:
                await on_result(target, outcome)
            except Exception as e:
                logger.exception(f"Handling probe result failed for {target!r}")
                return PoolResult(target=target, outcome=outcome, error=f"Reconciliation failed: {e}")

        return PoolResult(target=target, outcome=outcome)
