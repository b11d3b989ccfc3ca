"""
Job Runner Service
Schedules each accepted job as its own asyncio task and tracks it until it settles.
"""

import asyncio
from typing import Dict, Optional

from ..config import get_settings
from ..models.job import Job
from ..utils.exceptions import EmptyPromptError
from ..utils.logger import get_logger
from .event_broker import EventBroker, get_event_broker
from .orchestrator import GenerationOrchestrator

logger = get_logger()


class JobRunner:
    """Starts jobs without waiting for them and aborts them on request or shutdown."""

    def __init__(
        self,
        broker: Optional[EventBroker] = None,
        orchestrator: Optional[GenerationOrchestrator] = None,
        shutdown_grace: Optional[float] = None
    ):
        self.broker = broker or get_event_broker()
        self._orchestrator = orchestrator
        self.shutdown_grace = get_settings().shutdown_grace if shutdown_grace is None else shutdown_grace
        self._tasks: Dict[str, asyncio.Task] = {}
        self._running = False

    @property
    def orchestrator(self) -> GenerationOrchestrator:
        if self._orchestrator is None:
            self._orchestrator = GenerationOrchestrator(broker=self.broker)
        return self._orchestrator

    def start(self):
        if self._running:
            return
        self._running = True
        logger.info("Job runner started")

    async def stop(self):
        """
        Abort every unsettled job and wait for its task to finish.

        Tasks still blocked in a network call after `shutdown_grace` seconds
        are cancelled outright.
        """
        self._running = False
        if not self._tasks:
            return

        tasks = list(self._tasks.values())
        for job_id in list(self._tasks):
            self.broker.abort(job_id)

        _, pending = await asyncio.wait(tasks, timeout=self.shutdown_grace)
        for task in pending:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
        logger.info("Job runner stopped")

    def submit(self, prompt: Optional[str]) -> Job:
        """
        Validate the prompt, register a job and schedule it.

        Returns immediately; progress is observed through the broker.

        Raises:
            EmptyPromptError: prompt missing or blank (no job is created)
        """
        if not prompt or not prompt.strip():
            raise EmptyPromptError()

        prompt = prompt.strip()
        job = self.broker.create(prompt=prompt)
        task = asyncio.create_task(self.orchestrator.run(job.id, prompt))
        self._tasks[job.id] = task
        task.add_done_callback(lambda _task, job_id=job.id: self._tasks.pop(job_id, None))

        logger.info(f"Job scheduled: {job.id}")
        return job

    def cancel(self, job_id: str) -> bool:
        """Request cancellation; the job settles as cancelled once its current stage stops."""
        return self.broker.abort(job_id)

    def task(self, job_id: str) -> Optional[asyncio.Task]:
        return self._tasks.get(job_id)

    def stats(self) -> dict:
        """Current runner statistics."""
        return {
            "active": len(self._tasks),
            "running": self._running,
        }


_job_runner: Optional[JobRunner] = None


def get_job_runner() -> JobRunner:
    """Return singleton job runner."""
    global _job_runner
    if _job_runner is None:
        _job_runner = JobRunner()
    return _job_runner
