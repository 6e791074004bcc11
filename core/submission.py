"""
Multipart upload of a finished session to the analysis backend.
"""
from __future__ import annotations
import json
import logging

import requests
from pydantic import ValidationError

from core.config import Settings
from core.errors import SubmissionError
from core.models import SubmissionEnvelope, SubmissionPayload

logger = logging.getLogger(__name__)

_EXTENSIONS = {
    "video/mp4": "mp4",
    "video/webm": "webm",
    "audio/wav": "wav",
    "audio/x-wav": "wav",
    "audio/webm": "webm",
    "audio/mp3": "mp3",
}


def encode_form(payload: SubmissionPayload) -> tuple[dict, dict]:
    """Build (files, data) for requests.post."""
    video_ext = _EXTENSIONS.get(payload.video_mime, "bin")
    audio_ext = _EXTENSIONS.get(payload.audio_mime, "bin")
    files = {
        "videoFile": (f"recording.{video_ext}", payload.video, payload.video_mime),
        "audioFile": (f"audio.{audio_ext}", payload.audio, payload.audio_mime),
    }
    data = {
        "emotionData": json.dumps([e.model_dump(by_alias=True) for e in payload.emotions]),
        "speechData": json.dumps(payload.speech.model_dump(by_alias=True)),
        "wpm": str(payload.speech.wpm),
    }
    return files, data


class RemoteSubmitter:
    def __init__(self, settings: Settings):
        self.url = settings.SUBMIT_URL
        self.timeout = settings.SUBMIT_TIMEOUT

    def submit(self, payload: SubmissionPayload) -> SubmissionEnvelope:
        """
        POST the payload once. No retry.

        Raises:
            SubmissionError: transport failure, unreadable envelope, success=false, or no report.
        """
        files, data = encode_form(payload)
        logger.debug(
            f"[submit] POST {self.url} video_bytes={len(payload.video)} "
            f"audio_bytes={len(payload.audio)} emotions={len(payload.emotions)}"
        )
        try:
            resp = requests.post(self.url, files=files, data=data, timeout=self.timeout)
        except requests.RequestException as e:
            logger.exception("[submit] request failed")
            raise SubmissionError(f"Upload failed: {e}") from e

        try:
            envelope = SubmissionEnvelope.model_validate(resp.json())
        except (ValueError, ValidationError) as e:
            logger.error(f"[submit] unreadable response status={resp.status_code} body={resp.text[:400]}")
            raise SubmissionError(f"Unexpected response from server (HTTP {resp.status_code})") from e

        logger.debug(f"[submit] status={resp.status_code} success={envelope.success}")
        if not envelope.success:
            raise SubmissionError(envelope.message or "Processing failed")
        if envelope.report is None:
            logger.error("[submit] success without a report")
            raise SubmissionError("Server returned no report")
        return envelope
