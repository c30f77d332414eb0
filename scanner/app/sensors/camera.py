"""OpenCV camera capture feeding preview subscribers and the liveness pipeline."""
from __future__ import annotations

import asyncio
from asyncio import QueueEmpty
import logging
import time
from typing import Any, AsyncIterator, Optional, Tuple

import cv2
import numpy as np

from ..errors import PermissionDeniedError

logger = logging.getLogger(__name__)

Frame = Tuple[np.ndarray, float]


def _placeholder_jpeg(width: int, height: int) -> bytes:
    image = np.full((height, width, 3), 48, dtype=np.uint8)
    cv2.putText(image, "camera offline", (20, height // 2), cv2.FONT_HERSHEY_SIMPLEX, 0.8, (200, 200, 200), 2)
    ok, encoded = cv2.imencode(".jpg", image)
    return encoded.tobytes() if ok else b""


class CameraService:
    """Coordinates preview streaming and frame delivery for detection."""

    def __init__(
        self,
        *,
        camera_index: int = 0,
        enable_hardware: bool = True,
        frame_width: int = 640,
        frame_height: int = 480,
        fps: float = 15.0,
    ) -> None:
        self.camera_index = camera_index
        self.enable_hardware = enable_hardware
        self.frame_width = frame_width
        self.frame_height = frame_height
        self.fps = fps
        self._capture: Optional[Any] = None
        self._lock = asyncio.Lock()
        self._preview_subscribers: list[asyncio.Queue[bytes]] = []
        self._frame_subscribers: list[asyncio.Queue[Frame]] = []
        self._loop_task: Optional[asyncio.Task[None]] = None
        self._stop_event = asyncio.Event()
        self._placeholder: Optional[bytes] = None

    async def start(self) -> None:
        if self._loop_task:
            return
        if not self.enable_hardware:
            logger.warning("Camera hardware disabled, using placeholder frames")
        else:
            try:
                await self.ensure_access()
            except PermissionDeniedError:
                logger.warning("Camera unavailable at startup; preview will show placeholder frames")
        self._stop_event.clear()
        self._loop_task = asyncio.create_task(self._preview_loop(), name="camera-preview-loop")

    async def stop(self) -> None:
        if not self._loop_task:
            return
        self._stop_event.set()
        await self._loop_task
        self._loop_task = None
        if self._capture is not None:
            self._capture.release()
            self._capture = None

    async def ensure_access(self) -> None:
        """Open the capture device; raises PermissionDeniedError when it is refused."""

        if not self.enable_hardware:
            raise PermissionDeniedError("camera_hardware_disabled")
        async with self._lock:
            if self._capture is not None and self._capture.isOpened():
                return
            loop = asyncio.get_running_loop()
            capture = await loop.run_in_executor(None, cv2.VideoCapture, self.camera_index)
            if not capture.isOpened():
                capture.release()
                raise PermissionDeniedError(f"camera_unavailable index={self.camera_index}")
            capture.set(cv2.CAP_PROP_FRAME_WIDTH, self.frame_width)
            capture.set(cv2.CAP_PROP_FRAME_HEIGHT, self.frame_height)
            self._capture = capture
            logger.info("Opened camera index=%s", self.camera_index)

    async def preview_stream(self) -> AsyncIterator[bytes]:
        queue: asyncio.Queue[bytes] = asyncio.Queue(maxsize=2)
        self._preview_subscribers.append(queue)
        try:
            while True:
                frame = await queue.get()
                yield frame
        finally:
            self._preview_subscribers.remove(queue)

    async def frames(self) -> AsyncIterator[Frame]:
        """Yield ``(image, timestamp)`` pairs until the consumer stops iterating."""

        queue: asyncio.Queue[Frame] = asyncio.Queue(maxsize=2)
        self._frame_subscribers.append(queue)
        try:
            while True:
                yield await queue.get()
        finally:
            self._frame_subscribers.remove(queue)

    async def _preview_loop(self) -> None:
        try:
            while not self._stop_event.is_set():
                image = await self._read_frame()
                if image is not None:
                    self._broadcast_frame((image, time.monotonic()))
                    frame_bytes = self._serialize_frame(image)
                else:
                    frame_bytes = self._placeholder_frame()
                self._broadcast_preview(frame_bytes)
                await asyncio.sleep(1 / max(self.fps, 1.0))
        except asyncio.CancelledError:  # pragma: no cover - cooperative cancel
            raise
        except Exception:  # pragma: no cover
            logger.exception("Camera preview loop crashed")
        finally:
            self._stop_event.clear()
            logger.info("Camera preview loop stopped")

    async def _read_frame(self) -> Optional[np.ndarray]:
        if not self.enable_hardware or self._capture is None:
            return None
        async with self._lock:
            loop = asyncio.get_running_loop()
            ok, image = await loop.run_in_executor(None, self._capture.read)
        if not ok:
            logger.debug("Camera read returned no frame")
            return None
        # Front camera preview is mirrored, as users expect.
        return cv2.flip(image, 1)

    def _serialize_frame(self, image: np.ndarray) -> bytes:
        ret, encoded = cv2.imencode(".jpg", image)
        if not ret:
            return self._placeholder_frame()
        return encoded.tobytes()

    def _placeholder_frame(self) -> bytes:
        if self._placeholder is None:
            self._placeholder = _placeholder_jpeg(self.frame_width, self.frame_height)
        return self._placeholder

    def _broadcast_preview(self, frame: bytes) -> None:
        for queue in list(self._preview_subscribers):
            _put_latest(queue, frame)

    def _broadcast_frame(self, frame: Frame) -> None:
        for queue in list(self._frame_subscribers):
            _put_latest(queue, frame)


def _put_latest(queue: asyncio.Queue, item: Any) -> None:
    if queue.full():
        try:
            queue.get_nowait()
        except QueueEmpty:
            pass
    queue.put_nowait(item)


__all__ = ["CameraService", "Frame"]
