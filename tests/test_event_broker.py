"""
Event broker: job lifecycle, log fanout and late-subscriber replay.
"""

import asyncio

import pytest

from reelsmith.models.job import JobStatus
from reelsmith.services.event_broker import CANCELLED_MESSAGE, FINISHED_MESSAGE, EventBroker


def messages(events):
    return [event.message for event in events]


# =============================================================================
# Lifecycle
# =============================================================================

def test_create_starts_in_progress_with_unarmed_token(broker):
    job = broker.create(prompt="cats")

    assert job.status == JobStatus.PROGRESS
    assert broker.get(job.id) is job
    assert broker.token(job.id).cancelled is False


def test_create_rejects_duplicate_id(broker):
    broker.create(job_id="job-1")

    with pytest.raises(ValueError):
        broker.create(job_id="job-1")


def test_terminal_transition_happens_exactly_once(broker, video_result):
    job = broker.create()

    assert broker.finish(job.id, video_result) is True
    assert broker.fail(job.id, "late failure") is False
    assert broker.cancel(job.id) is False
    assert broker.finish(job.id, video_result) is False

    assert job.status == JobStatus.FINISHED
    assert job.error_message is None
    assert job.video_data == video_result
    assert job.finished_at is not None


def test_unknown_ids_never_raise(broker, video_result):
    assert broker.get("missing") is None
    assert broker.token("missing") is None
    assert broker.append_log("missing", "line") is False
    assert broker.finish("missing", video_result) is False
    assert broker.fail("missing", "x") is False
    assert broker.cancel("missing") is False
    assert broker.abort("missing") is False
    assert broker.subscribe("missing") is None


def test_abort_arms_token_without_settling(broker):
    job = broker.create()

    assert broker.abort(job.id) is True
    assert broker.token(job.id).cancelled is True
    assert job.status == JobStatus.PROGRESS
    assert broker.abort(job.id) is False


def test_abort_refused_for_terminal_job(broker):
    job = broker.create()
    broker.fail(job.id, "boom")

    assert broker.abort(job.id) is False
    assert broker.token(job.id).cancelled is False


def test_list_jobs_newest_first(broker):
    first = broker.create()
    second = broker.create()
    second.created_at = first.created_at.replace(year=first.created_at.year + 1)

    assert [job.id for job in broker.list_jobs()] == [second.id, first.id]


# =============================================================================
# Fanout and replay
# =============================================================================

def test_live_subscriber_receives_lines_then_terminal_event(broker, video_result):
    job = broker.create()
    subscriber = broker.subscribe(job.id)

    broker.append_log(job.id, "one")
    broker.append_log(job.id, "two")
    broker.finish(job.id, video_result)

    events = subscriber.pending()
    assert messages(events) == ["one", "two", FINISHED_MESSAGE]
    assert events[-1].status == JobStatus.FINISHED
    assert events[-1].to_wire()["videoData"]["title"] == "Demo"
    assert subscriber.closed is True
    assert broker.observer_count(job.id) == 0


def test_late_subscriber_gets_full_replay_in_order(broker):
    job = broker.create()
    for line in ["a", "b", "c"]:
        broker.append_log(job.id, line)

    late = broker.subscribe(job.id)
    broker.append_log(job.id, "d")

    assert messages(late.pending()) == ["a", "b", "c", "d"]


def test_resubscribing_replays_buffer_again(broker):
    job = broker.create()
    broker.append_log(job.id, "a")

    first = broker.subscribe(job.id)
    second = broker.subscribe(job.id)

    assert messages(first.pending()) == ["a"]
    assert messages(second.pending()) == ["a"]
    assert broker.observer_count(job.id) == 2


def test_subscribe_after_terminal_replays_then_final_event(broker):
    job = broker.create()
    broker.append_log(job.id, "working")
    broker.fail(job.id, "Invalid JSON input")

    subscriber = broker.subscribe(job.id)
    events = subscriber.pending()

    assert [event.status for event in events] == [JobStatus.PROGRESS, JobStatus.FAILED]
    assert events[-1].to_wire() == {"status": "failed", "error": "Invalid JSON input"}
    assert broker.observer_count(job.id) == 0


def test_nothing_is_delivered_after_terminal_event(broker):
    job = broker.create()
    subscriber = broker.subscribe(job.id)

    broker.cancel(job.id)
    assert broker.append_log(job.id, "too late") is False

    events = subscriber.pending()
    assert messages(events) == [CANCELLED_MESSAGE]
    assert events[-1].is_terminal
    assert job.logs == []


def test_unsubscribe_detaches_without_affecting_job(broker):
    job = broker.create()
    subscriber = broker.subscribe(job.id)

    broker.unsubscribe(subscriber)
    broker.append_log(job.id, "still logged")

    assert subscriber.pending() == []
    assert job.logs == ["still logged"]
    assert job.status == JobStatus.PROGRESS


def test_bounded_observer_queue_drops_oldest():
    broker = EventBroker(observer_queue_size=2)
    job = broker.create()
    subscriber = broker.subscribe(job.id)

    for line in ["1", "2", "3"]:
        broker.append_log(job.id, line)

    assert messages(subscriber.pending()) == ["2", "3"]


def test_async_iteration_stops_after_terminal_event(broker):
    async def scenario():
        job = broker.create()
        subscriber = broker.subscribe(job.id)

        async def produce():
            await asyncio.sleep(0)
            broker.append_log(job.id, "rendering")
            await asyncio.sleep(0)
            broker.fail(job.id, "ffmpeg crashed")

        producer = asyncio.create_task(produce())
        received = [event async for event in subscriber]
        await producer
        return received

    received = asyncio.run(scenario())

    assert [event.status for event in received] == [JobStatus.PROGRESS, JobStatus.FAILED]
    assert received[-1].error == "ffmpeg crashed"
