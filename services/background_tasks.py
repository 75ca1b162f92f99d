"""
Periodic maintenance for the guard tables.
Sweeper loops run as asyncio tasks owned by the app lifespan.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, List

logger = logging.getLogger(__name__)


@dataclass
class SweepJob:
    name: str
    interval_seconds: float
    sweep: Callable[[], int]


class MaintenanceScheduler:
    """Runs each sweep job on its own interval until stopped."""

    def __init__(self, jobs: List[SweepJob]):
        self.jobs = jobs
        self._tasks: List[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return any(not task.done() for task in self._tasks)

    def run_once(self) -> int:
        """Run every job immediately; returns the total evicted."""
        total = 0
        for job in self.jobs:
            total += self._run_job(job)
        return total

    def _run_job(self, job: SweepJob) -> int:
        try:
            return job.sweep()
        except Exception as e:
            logger.error(f"❌ [MAINTENANCE] Sweep '{job.name}' failed: {e}")
            return 0

    async def _loop(self, job: SweepJob) -> None:
        while True:
            await asyncio.sleep(job.interval_seconds)
            self._run_job(job)

    def start(self) -> None:
        if self.running:
            return
        self._tasks = [asyncio.create_task(self._loop(job), name=f"sweep:{job.name}") for job in self.jobs]
        logger.info(f"✅ [MAINTENANCE] Started {len(self._tasks)} sweeper tasks")

    async def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks = []
        logger.info("👋 [MAINTENANCE] Sweeper tasks stopped")


def build_scheduler(services) -> MaintenanceScheduler:
    settings = services.settings
    return MaintenanceScheduler([
        SweepJob("brute_force", settings.brute_force_sweep_seconds, services.brute_force.sweep),
        SweepJob("auth_rate", settings.brute_force_sweep_seconds, services.auth_limiter.sweep),
        SweepJob("api_rate", settings.brute_force_sweep_seconds, services.api_limiter.sweep),
        SweepJob("ws_connect", settings.ws_sweep_seconds, services.socket_attempts.sweep),
    ])
