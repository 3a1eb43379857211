from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from collections.abc import AsyncIterator

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse, StreamingResponse

from .agent import GenerativeAgent, get_agent
from .config import Settings, get_settings
from .encoder import EventEncoder, QueueEventSink
from .orchestrator import RunOrchestrator
from .schemas import HealthResponse, RunRejection, RunRequest, accept

router = APIRouter()

logger = logging.getLogger(__name__)

_STREAM_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}


def _reject(rejection: RunRejection) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=rejection.to_dict())


async def stream_run(
    orchestrator: RunOrchestrator, run_request: RunRequest, sink: QueueEventSink
) -> AsyncIterator[str]:
    """Run the orchestrator in a task and relay its frames as the response body.

    If the client disconnects the body iterator is closed; the sink is closed
    and the task cancelled so no further writes are attempted.
    """

    async def drive() -> None:
        try:
            await orchestrator.run(run_request, sink)
        finally:
            sink.close()

    task = asyncio.create_task(drive())
    try:
        async for frame in sink.stream():
            yield frame
        await task
    finally:
        sink.close()
        if not task.done():
            logger.info("[RUN] client went away; cancelling run_id=%s", run_request.run_id)
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task


@router.get("/healthz", response_model=HealthResponse)
def healthcheck() -> HealthResponse:
    return HealthResponse()


@router.post("/agent")
@router.post("/mastra-agent", include_in_schema=False)
async def run_agent(
    request: Request,
    settings: Settings = Depends(get_settings),
    agent: GenerativeAgent | None = Depends(get_agent),
):
    try:
        payload = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        logger.error("Invalid AG-UI payload: body is not JSON (%s)", exc)
        return _reject(RunRejection(error="Invalid AG-UI payload", details=[{"msg": "Body must be valid JSON"}]))

    accepted = accept(payload)
    if isinstance(accepted, RunRejection):
        return _reject(accepted)

    encoder = EventEncoder()
    sink = QueueEventSink(encoder)
    orchestrator = RunOrchestrator(agent=agent, settings=settings)
    return StreamingResponse(
        stream_run(orchestrator, accepted, sink),
        media_type=encoder.get_content_type(),
        headers=_STREAM_HEADERS,
    )
