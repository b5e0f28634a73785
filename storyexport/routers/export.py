import asyncio
from pathlib import Path

from fastapi import APIRouter, HTTPException, WebSocket, WebSocketDisconnect, status
from fastapi.responses import FileResponse
from pydantic import ValidationError as PydanticValidationError
from starlette.background import BackgroundTask

from storyexport.config import logger
from storyexport.core.archive import ArchiveError
from storyexport.core.exporter import ExportOptions, export_project
from storyexport.core.firebase_client import firebase_configured
from storyexport.core.progress import ProgressReporter, QueueReporter, logging_reporter
from storyexport.core.repositories import load_project_tasks
from storyexport.core.validation import ValidationError, validate_project_id
from storyexport.core.websocket_messages import forward_progress, send_done, send_error
from storyexport.schemas import ExportRequest

router = APIRouter(tags=["Export"])


def build_export_options(request: ExportRequest, progress: ProgressReporter) -> ExportOptions:
    """Map a validated request onto export options."""
    options = ExportOptions(progress=progress, concurrency=request.concurrency)
    if request.tasks is not None:
        options.tasks = request.tasks
    elif request.project.id and firebase_configured():
        try:
            validate_project_id(request.project.id)
        except ValidationError as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)
        options.task_loader = load_project_tasks
    return options


async def _wait_for_disconnect(websocket: WebSocket) -> None:
    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            return


# -----------------------------------------------------------------------------
# WebSocket Endpoint
# -----------------------------------------------------------------------------

@router.websocket("/ws/export")
async def export_websocket(websocket: WebSocket):
    """Export a project with real-time progress; the archive is sent as a binary frame."""
    await websocket.accept()

    try:
        raw_data = await websocket.receive_json()

        try:
            request_data = ExportRequest.model_validate(raw_data)
            queue: "asyncio.Queue" = asyncio.Queue()
            reporter = QueueReporter(queue)
            options = build_export_options(request_data, reporter)
        except PydanticValidationError as e:
            errors = e.errors()
            error_msg = "; ".join(
                f"{'.'.join(str(loc) for loc in err['loc'])}: {err['msg']}" for err in errors[:3]
            )
            await send_error(websocket, f"Invalid request: {error_msg}")
            return
        except HTTPException as e:
            await send_error(websocket, f"Invalid request: {e.detail}")
            return

        sender = asyncio.create_task(forward_progress(websocket, queue))
        export_task = asyncio.create_task(export_project(request_data.project, options))
        disconnect = asyncio.create_task(_wait_for_disconnect(websocket))

        try:
            done, _ = await asyncio.wait(
                {export_task, disconnect},
                return_when=asyncio.FIRST_COMPLETED,
            )
            if export_task not in done:
                logger.info("Client disconnected, cancelling export of %s", request_data.project.id or "project")
                export_task.cancel()
                await asyncio.gather(export_task, return_exceptions=True)
                return

            reporter.close()
            await sender
            artifact = export_task.result()
        finally:
            disconnect.cancel()
            if not sender.done():
                sender.cancel()

        try:
            await send_done(websocket, artifact)
        finally:
            artifact.path.unlink(missing_ok=True)

    except WebSocketDisconnect:
        logger.info("WebSocket disconnected during export")
    except ArchiveError as e:
        logger.error("Archive assembly failed: %s", e)
        await send_error(websocket, "Failed to build the export archive.")
    except Exception as e:
        logger.exception("WebSocket export error: %s", e)
        # Don't expose internal errors to client
        await send_error(websocket, "An error occurred while exporting your project. Please try again.")


# -----------------------------------------------------------------------------
# HTTP Endpoint
# -----------------------------------------------------------------------------

@router.post("/api/projects/export")
async def export_project_archive(request: ExportRequest) -> FileResponse:
    """Export a project and return the archive as a download."""
    options = build_export_options(request, logging_reporter)

    try:
        artifact = await export_project(request.project, options)
    except ArchiveError as e:
        logger.error("Archive assembly failed: %s", e)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to build the export archive",
        )

    result = artifact.result
    headers = {
        "X-Export-Images": str(result.image_count),
        "X-Export-Videos": str(result.video_count),
        "X-Export-Audio": str(result.audio_count),
        "X-Export-Total": str(result.total_count),
        "X-Export-Failed": str(len(result.failures)),
    }
    return FileResponse(
        artifact.path,
        media_type="application/zip",
        filename=artifact.file_name,
        headers=headers,
        background=BackgroundTask(_discard, artifact.path),
    )


def _discard(path: Path) -> None:
    path.unlink(missing_ok=True)
