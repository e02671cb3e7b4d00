"""SSE event streaming endpoint."""

from starlette.requests import Request
from starlette.responses import StreamingResponse
from starlette.routing import Route


async def sse_endpoint(request: Request) -> StreamingResponse:
    """Stream every published event to the client."""
    broadcaster = request.app.state.broadcaster

    async def event_stream():
        yield 'data: {"type": "connected"}\n\n'
        try:
            async for event in broadcaster.stream():
                if await request.is_disconnected():
                    break
                yield f"data: {event.model_dump_json()}\n\n"
        except GeneratorExit:
            pass

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


event_routes = [
    Route("/event", sse_endpoint, methods=["GET"]),
]
