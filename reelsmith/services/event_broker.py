"""
Event Broker Service
In-memory job registry with log buffers, cancellation tokens and per-observer fanout queues.
"""

import asyncio
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import AsyncIterator, Dict, List, Optional, Set

from ..config import get_settings
from ..models.job import Job, JobEvent, JobStatus, VideoResult
from ..utils.cancellation import CancellationToken
from ..utils.logger import get_logger

logger = get_logger()

CANCELLED_MESSAGE = "Video generation was cancelled."
FINISHED_MESSAGE = "Video generation completed!"


def _enqueue_message(queue: asyncio.Queue, event: JobEvent):
    if queue.full():
        try:
            queue.get_nowait()
        except asyncio.QueueEmpty:
            pass
    try:
        queue.put_nowait(event)
    except asyncio.QueueFull:
        pass


class Subscriber:
    """One observer of a job's progress stream"""

    def __init__(self, job_id: str, max_size: int = 0):
        self.job_id = job_id
        self.id = uuid.uuid4().hex
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max_size)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def push(self, event: JobEvent):
        if self._closed:
            return
        _enqueue_message(self._queue, event)
        if event.is_terminal:
            self._closed = True

    def close(self):
        self._closed = True

    def pending(self) -> List[JobEvent]:
        """Drain queued events without waiting"""
        events = []
        while True:
            try:
                events.append(self._queue.get_nowait())
            except asyncio.QueueEmpty:
                return events

    async def __aiter__(self) -> AsyncIterator[JobEvent]:
        while True:
            event = await self._queue.get()
            yield event
            if event.is_terminal:
                return


@dataclass
class JobEntry:
    """Broker-side state for one job"""
    job: Job
    token: CancellationToken
    subscribers: Set[Subscriber] = field(default_factory=set)
    final_event: Optional[JobEvent] = None


class EventBroker:
    """Owns every job's state and fans its events out to observers."""

    def __init__(self, observer_queue_size: int = 0):
        self._jobs: Dict[str, JobEntry] = {}
        self._observer_queue_size = observer_queue_size

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def create(self, job_id: Optional[str] = None, prompt: str = "") -> Job:
        """Register a new job in `progress` with an unarmed token."""
        job = Job(prompt=prompt) if job_id is None else Job(id=job_id, prompt=prompt)
        if job.id in self._jobs:
            raise ValueError(f"Job already exists: {job.id}")

        job.status = JobStatus.PROGRESS
        self._jobs[job.id] = JobEntry(job=job, token=CancellationToken(job.id))
        logger.info(f"Job created: {job.id}")
        return job

    def append_log(self, job_id: str, line: str) -> bool:
        """Buffer a log line and broadcast it to attached observers."""
        entry = self._jobs.get(job_id)
        if entry is None:
            return False
        if entry.job.status.is_terminal:
            return False

        entry.job.logs.append(line)
        entry.job.updated_at = datetime.utcnow()
        self._broadcast(entry, JobEvent(message=line, status=JobStatus.PROGRESS))
        return True

    def finish(self, job_id: str, result: VideoResult) -> bool:
        event = JobEvent(message=FINISHED_MESSAGE, status=JobStatus.FINISHED, video_data=result)
        return self._settle(job_id, JobStatus.FINISHED, event, video_data=result)

    def fail(self, job_id: str, error: str) -> bool:
        event = JobEvent(error=error, status=JobStatus.FAILED)
        return self._settle(job_id, JobStatus.FAILED, event, error=error)

    def cancel(self, job_id: str) -> bool:
        event = JobEvent(message=CANCELLED_MESSAGE, status=JobStatus.CANCELLED)
        return self._settle(job_id, JobStatus.CANCELLED, event, error=CANCELLED_MESSAGE)

    def abort(self, job_id: str) -> bool:
        """Arm the job's cancellation token. Status is left to the orchestrator."""
        entry = self._jobs.get(job_id)
        if entry is None or entry.job.status.is_terminal:
            return False
        if not entry.token.cancel():
            return False
        logger.info(f"Cancellation requested for job {job_id}")
        return True

    # ------------------------------------------------------------------
    # Observers
    # ------------------------------------------------------------------

    def subscribe(self, job_id: str) -> Optional[Subscriber]:
        """Attach an observer; it first receives the whole buffered log."""
        entry = self._jobs.get(job_id)
        if entry is None:
            return None

        subscriber = Subscriber(job_id, max_size=self._observer_queue_size)
        for line in entry.job.logs:
            subscriber.push(JobEvent(message=line, status=JobStatus.PROGRESS))

        if entry.final_event is not None:
            subscriber.push(entry.final_event)
        else:
            entry.subscribers.add(subscriber)
        return subscriber

    def unsubscribe(self, subscriber: Subscriber):
        entry = self._jobs.get(subscriber.job_id)
        if entry is not None:
            entry.subscribers.discard(subscriber)
        subscriber.close()

    def observer_count(self, job_id: str) -> int:
        entry = self._jobs.get(job_id)
        return len(entry.subscribers) if entry else 0

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, job_id: str) -> Optional[Job]:
        entry = self._jobs.get(job_id)
        return entry.job if entry else None

    def token(self, job_id: str) -> Optional[CancellationToken]:
        entry = self._jobs.get(job_id)
        return entry.token if entry else None

    def list_jobs(self) -> List[Job]:
        return sorted(
            (entry.job for entry in self._jobs.values()),
            key=lambda job: job.created_at,
            reverse=True
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _broadcast(self, entry: JobEntry, event: JobEvent):
        for subscriber in list(entry.subscribers):
            subscriber.push(event)

    def _settle(
        self,
        job_id: str,
        status: JobStatus,
        event: JobEvent,
        video_data: Optional[VideoResult] = None,
        error: Optional[str] = None
    ) -> bool:
        entry = self._jobs.get(job_id)
        if entry is None or entry.job.status.is_terminal:
            return False

        now = datetime.utcnow()
        entry.job.status = status
        entry.job.video_data = video_data
        entry.job.error_message = error
        entry.job.updated_at = now
        entry.job.finished_at = now
        entry.final_event = event

        self._broadcast(entry, event)
        for subscriber in list(entry.subscribers):
            subscriber.close()
        entry.subscribers.clear()

        logger.info(f"Job {job_id} {status.value}")
        return True


_event_broker: Optional[EventBroker] = None


def get_event_broker() -> EventBroker:
    """Return singleton event broker."""
    global _event_broker
    if _event_broker is None:
        _event_broker = EventBroker(observer_queue_size=get_settings().observer_queue_size)
    return _event_broker
