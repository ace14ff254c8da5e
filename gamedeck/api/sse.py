"""Server-Sent Events framing: one JSON object per ``data:`` line."""

from typing import AsyncIterator

from fastapi.responses import StreamingResponse
from pydantic import BaseModel


async def _frames(events: AsyncIterator[BaseModel]) -> AsyncIterator[str]:
    async for event in events:
        yield f"data: {event.model_dump_json()}\n\n"


def sse_response(events: AsyncIterator[BaseModel]) -> StreamingResponse:
    """Stream ``events``; the response ends when the iterator does."""
    return StreamingResponse(
        _frames(events),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
