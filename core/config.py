"""
Configuration for the capture session and the upload backend.
"""
from pydantic import BaseModel
import os

class Settings(BaseModel):
    """
    Runtime settings with environment-variable overrides.
    """
    DEVICE: str = (os.getenv("DEVICE", "cpu") or "cpu")

    # Session timing
    SESSION_BUDGET_SECONDS: int = int(os.getenv("SESSION_BUDGET_SECONDS", "120"))
    TIMER_TICK_SECONDS: float = float(os.getenv("TIMER_TICK_SECONDS", "1"))
    EXPRESSION_SAMPLE_INTERVAL: float = float(os.getenv("EXPRESSION_SAMPLE_INTERVAL", "1"))
    MIN_ELAPSED_SECONDS: float = float(os.getenv("MIN_ELAPSED_SECONDS", "1"))

    # Capture devices
    CAMERA_INDEX: int = int(os.getenv("CAMERA_INDEX", "0"))
    VIDEO_FPS: float = float(os.getenv("VIDEO_FPS", "20"))
    VIDEO_FOURCC: str = os.getenv("VIDEO_FOURCC", "mp4v")
    AUDIO_SAMPLE_RATE: int = int(os.getenv("AUDIO_SAMPLE_RATE", "16000"))
    AUDIO_BLOCK_SECONDS: float = float(os.getenv("AUDIO_BLOCK_SECONDS", "0.1"))

    # Speech recognition
    WHISPER_MODEL: str = os.getenv("WHISPER_MODEL", "base")
    RECOGNITION_LANGUAGE: str = os.getenv("RECOGNITION_LANGUAGE", "en")
    SPEECH_RMS_THRESHOLD: float = float(os.getenv("SPEECH_RMS_THRESHOLD", "0.01"))
    UTTERANCE_END_SILENCE: float = float(os.getenv("UTTERANCE_END_SILENCE", "0.8"))
    MAX_UTTERANCE_SECONDS: float = float(os.getenv("MAX_UTTERANCE_SECONDS", "15"))

    # Facial landmarks
    LANDMARK_MAX_FPS: float = float(os.getenv("LANDMARK_MAX_FPS", "15"))
    FACE_MIN_DETECTION_CONFIDENCE: float = float(os.getenv("FACE_MIN_DETECTION_CONFIDENCE", "0.7"))
    FACE_MIN_TRACKING_CONFIDENCE: float = float(os.getenv("FACE_MIN_TRACKING_CONFIDENCE", "0.7"))

    # Submission (client side)
    SUBMIT_URL: str = os.getenv("SUBMIT_URL", "http://127.0.0.1:8000/upload")
    SUBMIT_TIMEOUT: float = float(os.getenv("SUBMIT_TIMEOUT", "120"))

    # Upload validation (backend side)
    MAX_UPLOAD_BYTES: int = int(os.getenv("MAX_UPLOAD_BYTES", str(50 * 1024 * 1024)))
    ALLOWED_MEDIA_TYPES: tuple[str, ...] = (
        "video/webm", "audio/webm", "video/mp4", "audio/mp3", "audio/wav", "audio/x-wav",
    )

    def __init__(self, **data):
        super().__init__(**data)
        # Normalize DEVICE: strip comments/extra words, lower-case, validate
        dev = (self.DEVICE or "cpu").strip().split()[0].lower()
        if dev not in ("cpu", "cuda"):
            dev = "cpu"
        object.__setattr__(self, "DEVICE", dev)
