"""
Events Router
Per-job progress streams over Server-Sent Events and WebSocket.
"""

import asyncio
import json
from typing import Any, AsyncIterator, Dict

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from fastapi.responses import StreamingResponse

from ..models.job import JobStatus
from ..services.event_broker import EventBroker, Subscriber, get_event_broker
from ..utils.logger import get_logger

router = APIRouter(tags=["events"])
logger = get_logger()

NOT_FOUND_EVENT = {"status": JobStatus.FAILED.value, "error": "Job not found"}
HELLO_EVENT = {"status": JobStatus.PROGRESS.value}

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def format_sse(payload: Dict[str, Any]) -> str:
    return f"data: {json.dumps(payload)}\n\n"


async def stream_events(broker: EventBroker, job_id: str) -> AsyncIterator[str]:
    """Hello, then the buffered log replay, then live lines until the terminal event."""
    subscriber = broker.subscribe(job_id)
    if subscriber is None:
        yield format_sse(NOT_FOUND_EVENT)
        return

    try:
        yield format_sse(HELLO_EVENT)
        async for event in subscriber:
            yield format_sse(event.to_wire())
    finally:
        broker.unsubscribe(subscriber)


@router.get("/events/{job_id}")
async def job_events(job_id: str, broker: EventBroker = Depends(get_event_broker)):
    """Server-Sent Events stream of one job's progress."""
    return StreamingResponse(
        stream_events(broker, job_id),
        media_type="text/event-stream",
        headers=SSE_HEADERS
    )


@router.websocket("/ws/events/{job_id}")
async def job_events_websocket(
    websocket: WebSocket,
    job_id: str,
    broker: EventBroker = Depends(get_event_broker)
):
    """WebSocket stream of one job's progress; clients may send {"type": "ping"}."""
    await websocket.accept()

    subscriber = broker.subscribe(job_id)
    if subscriber is None:
        await websocket.send_json(NOT_FOUND_EVENT)
        await websocket.close()
        return

    logger.info(f"WebSocket observer attached to job {job_id}")
    try:
        await websocket.send_json(HELLO_EVENT)
        send_task = asyncio.create_task(send_updates(websocket, subscriber))
        receive_task = asyncio.create_task(receive_messages(websocket))

        done, pending = await asyncio.wait(
            [send_task, receive_task],
            return_when=asyncio.FIRST_COMPLETED,
        )

        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)

        for task in done:
            try:
                await task
            except WebSocketDisconnect:
                pass
            except Exception as exc:
                logger.error(f"WebSocket task error: {exc}")

        if send_task in done:
            await websocket.close()

    except WebSocketDisconnect:
        logger.info("WebSocket disconnected")
    finally:
        broker.unsubscribe(subscriber)
        logger.info(f"WebSocket observer detached from job {job_id}")


async def send_updates(websocket: WebSocket, subscriber: Subscriber):
    """Forward the job's events until its terminal event."""
    async for event in subscriber:
        await websocket.send_json(event.to_wire())


async def receive_messages(websocket: WebSocket):
    """Answer pings until the client goes away."""
    while True:
        data = await websocket.receive_text()
        try:
            message = json.loads(data)
        except json.JSONDecodeError:
            continue
        if isinstance(message, dict) and message.get("type") == "ping":
            await websocket.send_json({"type": "pong"})
