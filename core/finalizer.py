"""
Payload assembly and the report hand-off slot.
"""
from __future__ import annotations
import threading
from typing import Iterable, List, Optional

from core.models import EmotionEntry, SpeechSummary, SubmissionPayload


def assemble_payload(
    video_chunks: Iterable[bytes],
    audio_chunks: Iterable[bytes],
    expression_log: List[EmotionEntry],
    speech: SpeechSummary,
    video_mime: str = "video/mp4",
    audio_mime: str = "audio/wav",
) -> SubmissionPayload:
    """Join each modality's chunks in arrival order into one blob."""
    return SubmissionPayload(
        video=b"".join(video_chunks),
        audio=b"".join(audio_chunks),
        video_mime=video_mime,
        audio_mime=audio_mime,
        emotions=list(expression_log),
        speech=speech,
    )


class ReportStore:
    """Holds the last report until the next step picks it up."""
    def __init__(self):
        self._report: Optional[dict] = None
        self._lock = threading.Lock()

    def put(self, report: Optional[dict]) -> None:
        with self._lock:
            self._report = report

    def peek(self) -> Optional[dict]:
        with self._lock:
            return self._report

    def take(self) -> Optional[dict]:
        with self._lock:
            report, self._report = self._report, None
            return report
