"""Scan orchestration for the liveness scanner."""
from __future__ import annotations

import asyncio
from asyncio import QueueEmpty
from contextlib import aclosing
import logging
import time
from typing import Any, AsyncIterator, Callable, Dict, List, Optional

from .config import Settings, get_settings
from .errors import ScanError
from .liveness.models import FaceDetection, LivenessResult
from .liveness.session import ScanSession, ScanSnapshot
from .sensors.camera import CameraService
from .state import ScannerEvent, ScanPhase

logger = logging.getLogger(__name__)

DetectFace = Callable[[Any], Optional[FaceDetection]]


def no_face_detector(image: Any) -> Optional[FaceDetection]:
    """Detector used when no camera hardware is enabled; never finds a face."""

    return None


def detect_or_none(detect_face: DetectFace, image: Any) -> Optional[FaceDetection]:
    """Run one detector call; a failing detector counts as a frame with no face."""

    try:
        return detect_face(image)
    except Exception:
        logger.exception("Face detection failed; treating frame as no detection")
        return None


class ScanManager:
    """Owns one ScanSession and serializes every mutation of it.

    Frame delivery and the progress tick run as separate tasks on the same
    event loop; both take ``_lock`` before touching the session so there is a
    single writer at any time.
    """

    def __init__(
        self,
        *,
        settings: Optional[Settings] = None,
        camera: Optional[CameraService] = None,
        detect_face: Optional[DetectFace] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.settings = settings or get_settings()
        self._lock = asyncio.Lock()
        self._ui_subscribers: List[asyncio.Queue[ScannerEvent]] = []
        self._camera = camera or CameraService(
            camera_index=self.settings.camera_index,
            enable_hardware=self.settings.camera_enable_hardware,
            frame_width=self.settings.preview_frame_width,
            frame_height=self.settings.preview_frame_height,
            fps=self.settings.preview_fps,
        )
        self._detect_face: DetectFace = detect_face or no_face_detector
        self._session = ScanSession(self.settings.scan_config(), clock=clock)

        self._tick_task: Optional[asyncio.Task[None]] = None
        self._frame_task: Optional[asyncio.Task[None]] = None
        self._last_face_detected = False

    @property
    def phase(self) -> ScanPhase:
        return self._session.phase

    @property
    def latest_result(self) -> Optional[LivenessResult]:
        return self._session.result

    @property
    def session(self) -> ScanSession:
        return self._session

    def snapshot(self) -> ScanSnapshot:
        return self._session.snapshot()

    async def start(self) -> None:
        logger.info("Starting scan manager")
        await self._camera.start()

    async def stop(self) -> None:
        logger.info("Stopping scan manager")
        await self.stop_scan()
        await self._camera.stop()

    def register_ui(self) -> asyncio.Queue[ScannerEvent]:
        queue: asyncio.Queue[ScannerEvent] = asyncio.Queue(maxsize=8)
        self._ui_subscribers.append(queue)
        return queue

    def unregister_ui(self, queue: asyncio.Queue[ScannerEvent]) -> None:
        if queue in self._ui_subscribers:
            self._ui_subscribers.remove(queue)

    async def preview_frames(self) -> AsyncIterator[bytes]:
        async for frame in self._camera.preview_stream():
            yield frame

    async def start_scan(self) -> ScanSnapshot:
        """Begin a scan; PermissionDeniedError / InvalidConfigurationError leave the session idle."""

        async with self._lock:
            if self._session.is_scanning:
                logger.info("Scan already running; ignoring new start request")
                return self._session.snapshot()
            # loops left over from a finished scan must be gone before new ones start
            await self._cancel_tasks()
            try:
                await self._camera.ensure_access()
                self._session.start()
            except ScanError as exc:
                logger.warning("Scan start refused: %s", exc)
                await self._broadcast(
                    ScannerEvent(
                        type="error",
                        data=self._session.snapshot().as_dict(),
                        phase=self._session.phase,
                        error=str(exc),
                    )
                )
                raise
            self._last_face_detected = False
            snapshot = self._session.snapshot()
            self._tick_task = asyncio.create_task(self._tick_loop(), name="scan-tick")
            self._frame_task = asyncio.create_task(self._frame_loop(), name="scan-frames")

        await self._broadcast(ScannerEvent(type="state", data=snapshot.as_dict(), phase=snapshot.phase))
        return snapshot

    async def stop_scan(self) -> Optional[LivenessResult]:
        """Cancel a running scan early. Safe to call repeatedly and from any phase."""

        async with self._lock:
            await self._cancel_tasks()
            result = self._session.stop()
        if result is not None:
            await self._publish_result(result)
        return self._session.result

    async def _broadcast(self, event: ScannerEvent) -> None:
        logger.debug("Broadcasting event: %s", event.type)
        for queue in list(self._ui_subscribers):
            if queue.full():
                try:
                    queue.get_nowait()
                except QueueEmpty:
                    pass
            queue.put_nowait(event)

    async def _publish_result(self, result: LivenessResult) -> None:
        data: Dict[str, Any] = result.as_dict()
        if self._session.breakdown is not None:
            data["breakdown"] = self._session.breakdown.as_dict()
        await self._broadcast(ScannerEvent(type="result", data=data, phase=self._session.phase))

    async def _tick_loop(self) -> None:
        interval = self._session.config.tick_interval_s
        while True:
            await asyncio.sleep(interval)
            async with self._lock:
                if not self._session.is_scanning:
                    return
                result = self._session.tick()
                snapshot = self._session.snapshot()
            await self._broadcast(ScannerEvent(type="progress", data=snapshot.as_dict(), phase=snapshot.phase))
            if result is not None:
                await self._publish_result(result)
                await self._cancel_tasks()
                return

    async def _frame_loop(self) -> None:
        try:
            async with aclosing(self._camera.frames()) as frames:
                async for image, timestamp in frames:
                    detection = await self._run_detection(image)
                    async with self._lock:
                        if not self._session.is_scanning:
                            return
                        self._session.process_detection(detection, timestamp)
                        face_detected = self._session.face_detected
                        phase = self._session.phase
                    if face_detected != self._last_face_detected:
                        self._last_face_detected = face_detected
                        await self._broadcast(
                            ScannerEvent(type="face", data={"face_detected": face_detected}, phase=phase)
                        )
        except asyncio.CancelledError:
            logger.debug("Frame loop cancelled")
            raise

    async def _run_detection(self, image: Any) -> Optional[FaceDetection]:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, detect_or_none, self._detect_face, image)

    async def _cancel_tasks(self) -> None:
        current = asyncio.current_task()
        tasks = [task for task in (self._tick_task, self._frame_task) if task is not None and task is not current]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        if self._tick_task is not current:
            self._tick_task = None
        if self._frame_task is not current:
            self._frame_task = None


__all__ = ["DetectFace", "ScanManager", "detect_or_none", "no_face_detector"]
