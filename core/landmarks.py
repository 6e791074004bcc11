"""
Landmark camera loop: MediaPipe FaceMesh over the live video track.
"""
from __future__ import annotations

import logging
import threading
import time
from typing import Callable, List, Optional

import cv2

from core.config import Settings
from core.expression import Point

logger = logging.getLogger(__name__)


class FaceMeshLoop:
    """
    Emits on_frame(points) for each processed frame, or on_frame(None) when no
    face is found. Frames are throttled to LANDMARK_MAX_FPS.
    """
    def __init__(self, track, settings: Settings, on_frame: Callable[[Optional[List[Point]]], None]):
        self.track = track
        self.s = settings
        self.on_frame = on_frame
        self._mesh = None
        self._running = False
        self._last_t = 0.0
        self._lock = threading.Lock()

    def start(self) -> None:
        if self._running:
            return
        # lazy import: MediaPipe pulls in its graph runtime on import
        import mediapipe as mp

        self._mesh = mp.solutions.face_mesh.FaceMesh(
            max_num_faces=1,
            refine_landmarks=True,
            min_detection_confidence=self.s.FACE_MIN_DETECTION_CONFIDENCE,
            min_tracking_confidence=self.s.FACE_MIN_TRACKING_CONFIDENCE,
        )
        self._running = True
        self.track.subscribe(self._on_video_frame)
        logger.debug("[landmarks] face mesh loop started")

    def stop(self) -> None:
        self.track.unsubscribe(self._on_video_frame)
        with self._lock:
            if not self._running:
                return
            self._running = False
            if self._mesh is not None:
                self._mesh.close()
                self._mesh = None
        logger.debug("[landmarks] face mesh loop stopped")

    def _on_video_frame(self, frame) -> None:
        with self._lock:
            if not self._running or frame is None:
                return
            now = time.time()
            if (now - self._last_t) < 1.0 / max(self.s.LANDMARK_MAX_FPS, 0.1):
                return
            self._last_t = now
            rgb = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
            res = self._mesh.process(rgb)

        faces = getattr(res, "multi_face_landmarks", None)
        if faces:
            self.on_frame([Point(lm.x, lm.y) for lm in faces[0].landmark])
        else:
            self.on_frame(None)
