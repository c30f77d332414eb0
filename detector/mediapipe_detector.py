#!/usr/bin/env python3
"""MediaPipe face detector adapter plus a webcam liveness scan demo."""

from __future__ import annotations

import argparse
import logging
import signal
import sys
import time
from pathlib import Path
from typing import Callable, Optional, Sequence, Tuple

import cv2
import mediapipe as mp
import numpy as np
from mediapipe.tasks.python import BaseOptions
from mediapipe.tasks.python.vision import (
    FaceDetector,
    FaceDetectorOptions,
    FaceLandmarker,
    FaceLandmarkerOptions,
    RunningMode,
)

from scanner.app.errors import InvalidConfigurationError, PermissionDeniedError
from scanner.app.liveness.models import BoundingBox, FaceDetection, HeadPose, Landmarks, Point, clamp
from scanner.app.liveness.session import ScanSession, ScanSnapshot
from scanner.app.liveness.thresholds import ScanConfig
from scanner.app.logging_config import configure_logging
from scanner.app.session_manager import DetectFace, detect_or_none

logger = logging.getLogger(__name__)

MODEL_DIR = Path(__file__).resolve().parents[1] / "models"
DEFAULT_FACE_DETECTOR_MODEL = MODEL_DIR / "blaze_face_short_range.tflite"
DEFAULT_FACE_LANDMARKER_MODEL = MODEL_DIR / "face_landmarker.task"

# Face-mesh indices ordered the way the feature extractor expects:
# eyes start at the outer corner (p0) with p3 the inner corner; lips start at
# one mouth corner (p0) with p4 the opposite corner.
LEFT_EYE = (33, 160, 158, 133, 153, 144)
RIGHT_EYE = (263, 387, 385, 362, 380, 373)
OUTER_LIPS = (61, 40, 37, 267, 291, 314, 84, 91)
NOSE = (168, 6, 197, 195, 5, 4, 1)
LEFT_EYEBROW = (70, 63, 105, 66, 107)
RIGHT_EYEBROW = (300, 293, 334, 296, 336)

# Generic 3-D head model (arbitrary units) for solvePnP.
_MODEL_POINTS = np.array(
    [
        (0.0, 0.0, 0.0),  # nose tip
        (0.0, -330.0, -65.0),  # chin
        (-225.0, 170.0, -135.0),  # left eye outer corner
        (225.0, 170.0, -135.0),  # right eye outer corner
        (-150.0, -150.0, -125.0),  # left mouth corner
        (150.0, -150.0, -125.0),  # right mouth corner
    ],
    dtype=np.float64,
)
_POSE_INDICES = (1, 152, 33, 263, 61, 291)


def _score(det) -> float:
    return float(det.categories[0].score) if det.categories else 0.0


def bbox_from_detection(det, width: int, height: int) -> Optional[BoundingBox]:
    """Pixel-space Tasks bounding box to a frame-normalized, clipped BoundingBox."""

    bbox = det.bounding_box
    if bbox.width <= 0 or bbox.height <= 0 or width <= 0 or height <= 0:
        return None
    x0 = clamp(bbox.origin_x / width)
    y0 = clamp(bbox.origin_y / height)
    x1 = clamp((bbox.origin_x + bbox.width) / width)
    y1 = clamp((bbox.origin_y + bbox.height) / height)
    if x1 <= x0 or y1 <= y0:
        return None
    return BoundingBox(x=x0, y=y0, width=x1 - x0, height=y1 - y0)


def _face_points(face_landmarks, indices: Sequence[int], box: BoundingBox) -> Tuple[Point, ...]:
    """Mesh points normalized to the face box so ratios are not skewed by the frame shape."""

    points = []
    for idx in indices:
        lm = face_landmarks[idx]
        points.append(((lm.x - box.x) / box.width, (lm.y - box.y) / box.height))
    return tuple(points)


def extract_landmarks(face_landmarks, box: BoundingBox) -> Landmarks:
    return Landmarks(
        left_eye=_face_points(face_landmarks, LEFT_EYE, box),
        right_eye=_face_points(face_landmarks, RIGHT_EYE, box),
        nose=_face_points(face_landmarks, NOSE, box),
        mouth=_face_points(face_landmarks, OUTER_LIPS, box),
        left_eyebrow=_face_points(face_landmarks, LEFT_EYEBROW, box),
        right_eyebrow=_face_points(face_landmarks, RIGHT_EYEBROW, box),
    )


def _wrap_degrees(angle: float) -> float:
    if angle > 90.0:
        return angle - 180.0
    if angle < -90.0:
        return angle + 180.0
    return angle


def estimate_head_pose(face_landmarks, width: int, height: int) -> Optional[HeadPose]:
    image_points = np.array(
        [(face_landmarks[idx].x * width, face_landmarks[idx].y * height) for idx in _POSE_INDICES],
        dtype=np.float64,
    )
    focal = float(width)
    camera_matrix = np.array(
        [[focal, 0.0, width / 2.0], [0.0, focal, height / 2.0], [0.0, 0.0, 1.0]],
        dtype=np.float64,
    )
    ok, rvec, _ = cv2.solvePnP(
        _MODEL_POINTS, image_points, camera_matrix, np.zeros((4, 1)), flags=cv2.SOLVEPNP_ITERATIVE
    )
    if not ok:
        return None
    rmat, _ = cv2.Rodrigues(rvec)
    angles = cv2.RQDecomp3x3(rmat)[0]
    pitch, yaw, roll = (np.radians(_wrap_degrees(a)) for a in angles)
    return HeadPose(pitch=float(pitch), yaw=float(yaw), roll=float(roll))


def _require_model(path: Path) -> str:
    if not path.is_file():
        raise FileNotFoundError(f"MediaPipe model asset not found: {path}")
    return str(path)


class MediaPipeFaceDetector:
    """Detector collaborator: one BGR frame in, zero-or-one FaceDetection out.

    Boxes and confidence come from the Tasks ``FaceDetector``; the landmark
    mesh used for features and head pose comes from ``FaceLandmarker``.
    """

    def __init__(
        self,
        min_confidence: float = 0.5,
        detector_model_path: Path = DEFAULT_FACE_DETECTOR_MODEL,
        landmarker_model_path: Path = DEFAULT_FACE_LANDMARKER_MODEL,
    ) -> None:
        self.min_confidence = min_confidence
        self.face_detector = FaceDetector.create_from_options(
            FaceDetectorOptions(
                base_options=BaseOptions(model_asset_path=_require_model(Path(detector_model_path))),
                running_mode=RunningMode.IMAGE,
                min_detection_confidence=min_confidence,
            )
        )
        self.face_landmarker = FaceLandmarker.create_from_options(
            FaceLandmarkerOptions(
                base_options=BaseOptions(model_asset_path=_require_model(Path(landmarker_model_path))),
                running_mode=RunningMode.IMAGE,
                num_faces=1,
                min_face_detection_confidence=min_confidence,
                output_face_blendshapes=False,
                output_facial_transformation_matrixes=False,
            )
        )
        self._closed = False

    def close(self) -> None:
        if self._closed:
            return
        self.face_detector.close()
        self.face_landmarker.close()
        self._closed = True

    def __enter__(self) -> "MediaPipeFaceDetector":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def detect(self, image: np.ndarray) -> Optional[FaceDetection]:
        if self._closed:
            raise RuntimeError("MediaPipeFaceDetector instance already closed")
        height, width = image.shape[:2]
        rgb_image = cv2.cvtColor(image, cv2.COLOR_BGR2RGB)
        mp_image = mp.Image(image_format=mp.ImageFormat.SRGB, data=rgb_image)

        detection_result = self.face_detector.detect(mp_image)
        detections = detection_result.detections if detection_result and detection_result.detections else []
        if not detections:
            return None
        det = max(detections, key=_score)
        box = bbox_from_detection(det, width, height)
        if box is None:
            logger.debug("face_detected score=%.3f bbox=None reason=invalid_bbox", _score(det))
            return None

        mesh_result = self.face_landmarker.detect(mp_image)
        landmarks: Optional[Landmarks] = None
        head_pose: Optional[HeadPose] = None
        if mesh_result is not None and mesh_result.face_landmarks:
            face_landmarks = mesh_result.face_landmarks[0]
            landmarks = extract_landmarks(face_landmarks, box)
            head_pose = estimate_head_pose(face_landmarks, width, height)

        return FaceDetection(
            confidence=_score(det),
            bounding_box=box,
            landmarks=landmarks,
            head_pose=head_pose,
        )


def draw_overlay(image: np.ndarray, snapshot: ScanSnapshot, detection: Optional[FaceDetection]) -> None:
    height, width = image.shape[:2]
    color = (0, 230, 0) if snapshot.face_detected else (0, 0, 220)
    if detection is not None:
        box = detection.bounding_box
        x0, y0 = int(box.x * width), int(box.y * height)
        x1, y1 = int((box.x + box.width) * width), int((box.y + box.height) * height)
        cv2.rectangle(image, (x0, y0), (x1, y1), color, 2)

    text_lines = [
        snapshot.guidance_instruction,
        f"step={snapshot.guidance_progress:.2f} scan={snapshot.scan_progress:.2f} samples={snapshot.sample_count}",
    ]
    if snapshot.result:
        text_lines.append(
            f"liveness={snapshot.result.liveness_score:.2f} quality={snapshot.result.quality.value}"
        )
    for idx, line in enumerate(text_lines):
        cv2.putText(image, line, (10, 30 + idx * 25), cv2.FONT_HERSHEY_SIMPLEX, 0.6, color, 2, cv2.LINE_AA)



def run_scan(
    capture,
    detect: DetectFace,
    session: ScanSession,
    *,
    display: bool = False,
    clock: Callable[[], float] = time.monotonic,
) -> None:
    """Drive one scan from a cv2.VideoCapture-like source until the session finalizes.

    Ticks follow ``clock`` whether or not a frame was read, so a camera that
    stops delivering frames still runs the scan to its deadline.
    """

    session.start()
    tick_interval = session.config.tick_interval_s
    next_tick = clock() + tick_interval
    while session.is_scanning:
        ok, frame = capture.read()
        detection: Optional[FaceDetection] = None
        if ok:
            frame = cv2.flip(frame, 1)
            detection = detect_or_none(detect, frame)
            session.process_detection(detection, clock())
        else:
            logger.warning("Camera read returned no frame")

        now = clock()
        while session.is_scanning and now >= next_tick:
            session.tick()
            next_tick += tick_interval

        if display and ok:
            draw_overlay(frame, session.snapshot(), detection)
            cv2.imshow("Liveness scan", frame)
            if cv2.waitKey(1) & 0xFF == 27:
                session.stop()


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--camera", type=int, default=0, help="OpenCV camera index")
    parser.add_argument("--confidence", type=float, default=0.5, help="Mediapipe detection confidence")
    parser.add_argument("--duration", type=float, default=5.0, help="Scan duration in seconds")
    parser.add_argument(
        "--detector-model", type=Path, default=DEFAULT_FACE_DETECTOR_MODEL, help="Face detector .tflite asset"
    )
    parser.add_argument(
        "--landmarker-model", type=Path, default=DEFAULT_FACE_LANDMARKER_MODEL, help="Face landmarker .task asset"
    )
    parser.add_argument("--no-display", action="store_true", help="Disable OpenCV preview window")
    parser.add_argument("--log-level", default="INFO", help="Logging level")
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    configure_logging(args.log_level)
    session = ScanSession(ScanConfig(scan_duration_s=args.duration))

    signal.signal(signal.SIGINT, lambda *_: sys.exit(0))

    capture = cv2.VideoCapture(args.camera)
    try:
        if not capture.isOpened():
            raise PermissionDeniedError(f"camera_unavailable index={args.camera}")
        with MediaPipeFaceDetector(
            min_confidence=args.confidence,
            detector_model_path=args.detector_model,
            landmarker_model_path=args.landmarker_model,
        ) as detector:
            run_scan(capture, detector.detect, session, display=not args.no_display)
    except (PermissionDeniedError, InvalidConfigurationError, FileNotFoundError) as err:
        logger.error("Cannot start scan: %s", err)
        sys.exit(1)
    finally:
        capture.release()
        if not args.no_display:
            cv2.destroyAllWindows()

    result = session.result
    if result is not None:
        logger.info(
            "result liveness=%.2f confidence=%.2f quality=%s frames=%s",
            result.liveness_score,
            result.confidence,
            result.quality.value,
            result.sample_count,
        )


if __name__ == "__main__":
    main()
