"""
Whisper ASR wrapper (lazy-loaded) and an utterance-at-a-time recognizer.
"""
from __future__ import annotations

import logging
import threading
from typing import Callable, List, Optional, Union

import librosa
import numpy as np

from core.config import Settings

logger = logging.getLogger(__name__)

_model = None

def _ensure_model(settings: Settings):
    global _model
    if _model is None:
        # lazy import to avoid loading torch at module import time
        import whisper
        _model = whisper.load_model(settings.WHISPER_MODEL, device=settings.DEVICE)
    return _model

def transcribe_audio(audio: Union[str, np.ndarray], settings: Settings) -> tuple[str, str]:
    """
    Transcribe a file path or a mono float32 array (AUDIO_SAMPLE_RATE) with Whisper.

    - Uses device from Settings (cpu/cuda)
    - Disables fp16 on CPU to avoid the 'FP16 is not supported on CPU' warning
    """
    model = _ensure_model(settings)

    use_fp16 = settings.DEVICE == "cuda"  # FP16 only makes sense on GPU
    result = model.transcribe(audio, fp16=use_fp16, language=settings.RECOGNITION_LANGUAGE)

    return result.get("text", ""), result.get("language", settings.RECOGNITION_LANGUAGE)


def _block_rms(block: np.ndarray) -> float:
    """RMS energy of one capture block, taken as a single frame."""
    if block.size == 0:
        return 0.0
    n = block.shape[0]
    rms = librosa.feature.rms(y=block, frame_length=n, hop_length=n, center=False)[0]
    return float(rms[0])


class WhisperRecognizer:
    """
    Listens to a microphone track until one utterance is complete, transcribes it,
    emits on_result(text) and then on_end(). It does not restart itself.

    Utterance boundary: RMS above SPEECH_RMS_THRESHOLD marks speech; the utterance
    closes after UTTERANCE_END_SILENCE seconds of trailing silence or once
    MAX_UTTERANCE_SECONDS of audio has been buffered.
    """
    def __init__(self, track, settings: Settings,
                 on_result: Callable[[str], None],
                 on_end: Callable[[], None],
                 on_error: Optional[Callable[[Exception], None]] = None):
        self.track = track
        self.s = settings
        self.on_result = on_result
        self.on_end = on_end
        self.on_error = on_error
        self.sample_rate = int(getattr(track, "sample_rate", 0) or settings.AUDIO_SAMPLE_RATE)
        self._lock = threading.Lock()
        self._listening = False
        self._reset_buffer()

    @property
    def listening(self) -> bool:
        return self._listening

    def _reset_buffer(self) -> None:
        self._blocks: List[np.ndarray] = []
        self._voiced = False
        self._silent_for = 0.0
        self._buffered = 0.0

    def start(self) -> None:
        with self._lock:
            if self._listening:
                raise RuntimeError("recognizer already started")
            self._reset_buffer()
            self._listening = True
        self.track.subscribe(self._feed)
        logger.debug("[asr] listening for next utterance")

    def stop(self) -> None:
        with self._lock:
            was_listening = self._listening
            self._listening = False
            self._reset_buffer()
        self.track.unsubscribe(self._feed)
        if was_listening:
            self.on_end()

    def _feed(self, block: np.ndarray) -> None:
        with self._lock:
            if not self._listening:
                return
            block = np.asarray(block, dtype=np.float32).reshape(-1)
            dur = block.shape[0] / float(self.sample_rate)
            rms = _block_rms(block)

            if rms >= self.s.SPEECH_RMS_THRESHOLD:
                self._voiced = True
                self._silent_for = 0.0
            elif self._voiced:
                self._silent_for += dur
            elif self._buffered + dur > self.s.UTTERANCE_END_SILENCE:
                # leading silence only: keep a short pre-roll
                self._blocks = self._blocks[-2:]
                self._buffered = sum(b.shape[0] for b in self._blocks) / float(self.sample_rate)

            self._blocks.append(block)
            self._buffered += dur

            done = self._voiced and (
                self._silent_for >= self.s.UTTERANCE_END_SILENCE
                or self._buffered >= self.s.MAX_UTTERANCE_SECONDS
            )
            if not done:
                return
            audio = np.concatenate(self._blocks, axis=0)
            self._listening = False
            self._reset_buffer()

        self.track.unsubscribe(self._feed)
        logger.debug(f"[asr] utterance closed seconds={audio.shape[0] / self.sample_rate:.2f}")
        threading.Thread(target=self._transcribe, args=(audio,), daemon=True).start()

    def _transcribe(self, audio: np.ndarray) -> None:
        try:
            text, _lang = transcribe_audio(audio, self.s)
            text = (text or "").strip()
            if text:
                self.on_result(text)
        except Exception as e:
            logger.exception("[asr] transcription failed")
            if self.on_error is not None:
                self.on_error(e)
        finally:
            self.on_end()
