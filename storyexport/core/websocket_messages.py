"""
WebSocket Message Utilities

Centralized WebSocket message sending for export progress, completion and
errors.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import WebSocket

from storyexport.core.models import ExportArtifact
from storyexport.core.progress import ProgressEvent
from storyexport.schemas import ExportResultResponse, WSDoneMessage, WSErrorMessage, WSProgressMessage

logger = logging.getLogger(__name__)


async def send_error(
    websocket: WebSocket,
    message: str,
    details: Optional[str] = None,
) -> None:
    """
    Send an error message via WebSocket.

    Args:
        websocket: WebSocket connection
        message: Error message
        details: Optional error details
    """
    payload = WSErrorMessage(message=message, details=details).model_dump()
    payload["timestamp"] = datetime.now(timezone.utc).isoformat()
    try:
        await websocket.send_json(payload)
    except Exception as e:
        logger.warning(f"Failed to send error message via WebSocket: {e}")


async def send_progress(websocket: WebSocket, event: ProgressEvent) -> None:
    """
    Send a phase-tagged progress event via WebSocket.

    Args:
        websocket: WebSocket connection
        event: Progress event from the export pipeline
    """
    message = WSProgressMessage.model_validate(event.to_message())
    try:
        await websocket.send_json(message.model_dump(exclude_none=True))
    except Exception as e:
        logger.warning(f"Failed to send progress update via WebSocket: {e}")


async def forward_progress(
    websocket: WebSocket,
    queue: "asyncio.Queue[Optional[ProgressEvent]]",
) -> None:
    """Drain queued progress events to the client until a None sentinel."""
    while True:
        event = await queue.get()
        if event is None:
            return
        await send_progress(websocket, event)


async def send_done(websocket: WebSocket, artifact: ExportArtifact) -> None:
    """
    Send the export result, then the archive bytes as one binary frame.

    Args:
        websocket: WebSocket connection
        artifact: Finished export
    """
    data = await asyncio.to_thread(artifact.path.read_bytes)
    message = WSDoneMessage(
        file_name=artifact.file_name,
        size_bytes=len(data),
        result=ExportResultResponse.from_result(artifact.result),
    )
    await websocket.send_json(message.model_dump(by_alias=True))
    await websocket.send_bytes(data)
