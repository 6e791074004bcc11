# core/media.py
"""
Local capture devices.

- CameraTrack: OpenCV VideoCapture with a reader thread fanning frames out to subscribers
- MicrophoneTrack: sounddevice InputStream fanning float32 blocks out to subscribers
- MediaStream: a bundle of tracks acquired together
- MediaDevices: factory for streams, recorders, the recognizer and the landmark loop
"""
from __future__ import annotations

import logging
import os
import threading
import time
from typing import Callable, List, Optional

import cv2
import numpy as np

from core.config import Settings
from core.errors import AcquisitionError

logger = logging.getLogger(__name__)


class MediaTrack:
    """One live capture source. stop() is idempotent."""
    kind = ""

    def __init__(self):
        self.ready_state = "live"
        self._subscribers: List[Callable] = []
        self._sub_lock = threading.Lock()

    def subscribe(self, fn: Callable) -> None:
        with self._sub_lock:
            if fn not in self._subscribers:
                self._subscribers.append(fn)

    def unsubscribe(self, fn: Callable) -> None:
        with self._sub_lock:
            if fn in self._subscribers:
                self._subscribers.remove(fn)

    def _emit(self, item) -> None:
        with self._sub_lock:
            subs = list(self._subscribers)
        for fn in subs:
            try:
                fn(item)
            except Exception:
                logger.exception(f"[media] {self.kind} subscriber failed")

    def stop(self) -> None:
        if self.ready_state == "ended":
            return
        self.ready_state = "ended"
        with self._sub_lock:
            self._subscribers.clear()
        self._close()

    def _close(self) -> None:
        pass


def _camera_denied(index: int) -> bool:
    node = f"/dev/video{index}"
    return os.path.exists(node) and not os.access(node, os.R_OK)


class CameraTrack(MediaTrack):
    kind = "video"

    def __init__(self, settings: Settings):
        super().__init__()
        idx = settings.CAMERA_INDEX
        self._cap = cv2.VideoCapture(idx)
        if not self._cap.isOpened():
            self._cap.release()
            reason = "denied" if _camera_denied(idx) else "unavailable"
            raise AcquisitionError(f"Could not open camera index {idx}", reason=reason)

        self.fps = float(self._cap.get(cv2.CAP_PROP_FPS) or 0.0) or settings.VIDEO_FPS
        w = int(self._cap.get(cv2.CAP_PROP_FRAME_WIDTH) or 0)
        h = int(self._cap.get(cv2.CAP_PROP_FRAME_HEIGHT) or 0)
        self.frame_size = (w, h)
        logger.debug(f"[media] camera {idx} opened fps={self.fps} size={self.frame_size}")

        self._run = True
        self._thread = threading.Thread(target=self._read_loop, daemon=True)
        self._thread.start()

    def _read_loop(self) -> None:
        while self._run:
            ok, frame = self._cap.read()
            if not ok:
                time.sleep(0.05)
                continue
            self._emit(frame)
        self._cap.release()

    def _close(self) -> None:
        self._run = False
        if threading.current_thread() is not self._thread:
            self._thread.join(timeout=1.0)
        logger.debug("[media] camera track stopped")


class MicrophoneTrack(MediaTrack):
    kind = "audio"

    def __init__(self, settings: Settings):
        super().__init__()
        # lazy import: PortAudio is loaded on import
        import sounddevice as sd

        self.sample_rate = settings.AUDIO_SAMPLE_RATE
        blocksize = max(1, int(self.sample_rate * settings.AUDIO_BLOCK_SECONDS))
        try:
            self._stream = sd.InputStream(
                callback=self._callback,
                channels=1,
                samplerate=self.sample_rate,
                blocksize=blocksize,
                dtype="float32",
            )
            self._stream.start()
        except PermissionError as e:
            raise AcquisitionError(f"Microphone access denied: {e}", reason="denied") from e
        except Exception as e:
            raise AcquisitionError(f"Could not open microphone: {e}") from e
        logger.debug(f"[media] microphone opened sr={self.sample_rate} blocksize={blocksize}")

    def _callback(self, indata, frames, time_info, status):
        self._emit(np.asarray(indata, dtype=np.float32).copy().reshape(-1))

    def _close(self) -> None:
        try:
            self._stream.stop()
        finally:
            self._stream.close()
        logger.debug("[media] microphone track stopped")


class MediaStream:
    def __init__(self, tracks: List[MediaTrack]):
        self._tracks = list(tracks)

    def get_tracks(self) -> List[MediaTrack]:
        return list(self._tracks)

    def get_video_tracks(self) -> List[MediaTrack]:
        return [t for t in self._tracks if t.kind == "video"]

    def get_audio_tracks(self) -> List[MediaTrack]:
        return [t for t in self._tracks if t.kind == "audio"]

    def stop(self) -> None:
        for t in self._tracks:
            t.stop()


class MediaDevices:
    """Builds every producer a capture session needs."""
    def __init__(self, settings: Settings):
        self.s = settings

    def get_user_media(self, video: bool = False, audio: bool = False) -> MediaStream:
        if not (video or audio):
            raise ValueError("At least one of video/audio must be requested")
        tracks: List[MediaTrack] = []
        try:
            if video:
                tracks.append(CameraTrack(self.s))
            if audio:
                tracks.append(MicrophoneTrack(self.s))
        except Exception:
            for t in tracks:
                t.stop()
            raise
        return MediaStream(tracks)

    def create_recorder(self, stream: MediaStream, on_data: Callable[[bytes], None],
                        on_stop: Callable[[], None], on_error: Optional[Callable] = None):
        from core.recorder import AudioRecorder, VideoRecorder

        if stream.get_video_tracks():
            return VideoRecorder(stream.get_video_tracks()[0], self.s, on_data, on_stop, on_error)
        return AudioRecorder(stream.get_audio_tracks()[0], self.s, on_data, on_stop, on_error)

    def create_recognizer(self, stream: MediaStream, on_result: Callable[[str], None],
                          on_end: Callable[[], None], on_error: Optional[Callable] = None):
        from core.asr import WhisperRecognizer

        return WhisperRecognizer(stream.get_audio_tracks()[0], self.s, on_result, on_end, on_error)

    def create_landmark_loop(self, stream: MediaStream, on_frame: Callable):
        from core.landmarks import FaceMeshLoop

        return FaceMeshLoop(stream.get_video_tracks()[0], self.s, on_frame)
