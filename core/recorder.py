"""
Recorders that turn a live track into one encoded blob.

A recorder emits its data through on_data when stopped and then acknowledges
with on_stop. Both callbacks fire from the thread that called stop().
"""
from __future__ import annotations

import io
import logging
import os
import tempfile
import threading
from typing import Callable, List, Optional

import cv2
import numpy as np
import soundfile as sf

from core.config import Settings

logger = logging.getLogger(__name__)


class MediaRecorder:
    mime_type = "application/octet-stream"

    def __init__(self, track, settings: Settings,
                 on_data: Callable[[bytes], None],
                 on_stop: Callable[[], None],
                 on_error: Optional[Callable[[Exception], None]] = None):
        self.track = track
        self.s = settings
        self.on_data = on_data
        self.on_stop = on_stop
        self.on_error = on_error
        self.state = "inactive"
        self._lock = threading.Lock()

    def start(self) -> None:
        if self.state != "inactive":
            raise RuntimeError(f"{type(self).__name__} already started")
        with self._lock:
            self._open()
            self.state = "recording"
        self.track.subscribe(self._write)

    def stop(self) -> None:
        if self.state == "inactive":
            return
        self.track.unsubscribe(self._write)
        with self._lock:
            self.state = "inactive"
            try:
                blob = self._flush()
            except Exception as e:
                logger.exception(f"[recorder] {type(self).__name__} flush failed")
                blob = b""
                if self.on_error is not None:
                    self.on_error(e)
        if blob:
            self.on_data(blob)
        self.on_stop()

    def _write(self, item) -> None:
        with self._lock:
            if self.state != "recording":
                return
            try:
                self._append(item)
            except Exception as e:
                logger.exception(f"[recorder] {type(self).__name__} write failed")
                if self.on_error is not None:
                    self.on_error(e)

    # subclass hooks, called under self._lock
    def _open(self) -> None: ...
    def _append(self, item) -> None: ...
    def _flush(self) -> bytes:
        return b""


class VideoRecorder(MediaRecorder):
    """Writes BGR frames to a temporary MP4 via cv2.VideoWriter."""
    mime_type = "video/mp4"

    def _open(self) -> None:
        self._writer = None
        self._frames = 0
        fd, self._path = tempfile.mkstemp(suffix=".mp4", prefix="recording-")
        os.close(fd)

    def _append(self, frame: np.ndarray) -> None:
        if frame is None:
            return
        if self._writer is None:
            h, w = frame.shape[:2]
            fourcc = cv2.VideoWriter_fourcc(*self.s.VIDEO_FOURCC)
            fps = float(getattr(self.track, "fps", 0.0) or self.s.VIDEO_FPS)
            self._writer = cv2.VideoWriter(self._path, fourcc, fps, (w, h))
            if not self._writer.isOpened():
                raise RuntimeError(f"VideoWriter failed to open {self._path}")
            logger.debug(f"[recorder] video writer opened path={self._path} fps={fps} size=({w},{h})")
        self._writer.write(frame)
        self._frames += 1

    def _flush(self) -> bytes:
        try:
            if self._writer is None:
                return b""
            self._writer.release()
            with open(self._path, "rb") as f:
                data = f.read()
            logger.debug(f"[recorder] video flushed frames={self._frames} bytes={len(data)}")
            return data
        finally:
            try:
                os.unlink(self._path)
            except OSError:
                logger.warning(f"[recorder] failed to cleanup tmp file: {self._path}")


class AudioRecorder(MediaRecorder):
    """Buffers mono float32 blocks and encodes them as WAV on stop."""
    mime_type = "audio/wav"

    def _open(self) -> None:
        self._blocks: List[np.ndarray] = []

    def _append(self, block: np.ndarray) -> None:
        self._blocks.append(np.asarray(block, dtype=np.float32).reshape(-1))

    def _flush(self) -> bytes:
        if not self._blocks:
            return b""
        audio = np.concatenate(self._blocks, axis=0)
        self._blocks = []
        sr = int(getattr(self.track, "sample_rate", 0) or self.s.AUDIO_SAMPLE_RATE)
        buf = io.BytesIO()
        sf.write(buf, audio, sr, format="WAV", subtype="PCM_16")
        logger.debug(f"[recorder] audio flushed samples={audio.shape[0]} sr={sr}")
        return buf.getvalue()
