"""FastAPI entry-point for the liveness scanner."""
from __future__ import annotations

import logging
from typing import Any, AsyncIterator, Dict, Optional, TYPE_CHECKING

import uvicorn
from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse, StreamingResponse

from .config import Settings, get_settings
from .errors import InvalidConfigurationError, PermissionDeniedError
from .logging_config import configure_logging
from .session_manager import ScanManager
from .state import ScannerEvent, ScanPhase

if TYPE_CHECKING:
    from detector.mediapipe_detector import MediaPipeFaceDetector

logger = logging.getLogger(__name__)

MJPEG_BOUNDARY = "frame"


def _mjpeg_part(jpeg: bytes) -> bytes:
    header = f"--{MJPEG_BOUNDARY}\r\nContent-Type: image/jpeg\r\nContent-Length: {len(jpeg)}\r\n\r\n"
    return header.encode("ascii") + jpeg + b"\r\n"


def _event_payload(event: ScannerEvent) -> Dict[str, Any]:
    payload: Dict[str, Any] = {"type": event.type, "phase": event.phase.value, "data": event.data}
    if event.error:
        payload["error"] = event.error
    return payload


def _build_detector(settings: Settings) -> Optional["MediaPipeFaceDetector"]:
    if not settings.camera_enable_hardware:
        return None
    from detector.mediapipe_detector import MediaPipeFaceDetector

    return MediaPipeFaceDetector(
        min_confidence=settings.detector_confidence,
        detector_model_path=settings.face_detector_model_path,
        landmarker_model_path=settings.face_landmarker_model_path,
    )


settings: Settings = get_settings()
configure_logging(settings.log_level)
app = FastAPI(title="liveness-scanner", version="0.1.0")
detector = _build_detector(settings)
manager = ScanManager(settings=settings, detect_face=detector.detect if detector else None)


@app.on_event("startup")
async def on_startup() -> None:
    await manager.start()


@app.on_event("shutdown")
async def on_shutdown() -> None:
    await manager.stop()
    if detector is not None:
        logger.info("Releasing face detector")
        detector.close()


@app.get("/healthz")
async def healthcheck() -> JSONResponse:
    return JSONResponse({"status": "ok", "phase": manager.phase.value})


@app.post("/scan/start")
async def start_scan() -> JSONResponse:
    if manager.phase == ScanPhase.SCANNING:
        return JSONResponse({"status": "already_scanning"}, status_code=409)
    try:
        snapshot = await manager.start_scan()
    except PermissionDeniedError as exc:
        return JSONResponse({"status": "permission_denied", "error": str(exc)}, status_code=403)
    except InvalidConfigurationError as exc:
        return JSONResponse({"status": "invalid_configuration", "error": str(exc)}, status_code=422)
    return JSONResponse({"status": "scanning", "state": snapshot.as_dict()})


@app.post("/scan/stop")
async def stop_scan() -> JSONResponse:
    result = await manager.stop_scan()
    return JSONResponse({"status": manager.phase.value, "result": result.as_dict() if result else None})


@app.get("/scan/state")
async def scan_state() -> JSONResponse:
    return JSONResponse(manager.snapshot().as_dict())


@app.get("/scan/result")
async def scan_result() -> JSONResponse:
    result = manager.latest_result
    if result is None:
        return JSONResponse({"status": "pending"}, status_code=404)
    return JSONResponse(result.as_dict())


@app.get("/preview")
async def preview_stream() -> StreamingResponse:
    async def frame_iterator() -> AsyncIterator[bytes]:
        async for frame in manager.preview_frames():
            yield _mjpeg_part(frame)

    return StreamingResponse(frame_iterator(), media_type=f"multipart/x-mixed-replace; boundary={MJPEG_BOUNDARY}")


@app.websocket("/ws/ui")
async def ui_socket(ws: WebSocket) -> None:
    await ws.accept()
    queue = manager.register_ui()
    try:
        # late joiners get the current state before the live event stream
        snapshot = manager.snapshot()
        await ws.send_json(_event_payload(ScannerEvent(type="state", data=snapshot.as_dict(), phase=snapshot.phase)))
        while True:
            await ws.send_json(_event_payload(await queue.get()))
    except WebSocketDisconnect:
        logger.debug("UI websocket disconnected")
    finally:
        manager.unregister_ui(queue)


def run() -> None:
    uvicorn.run(app, host=settings.scanner_host, port=settings.scanner_port, log_config=None)


if __name__ == "__main__":
    run()
