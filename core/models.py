"""
Pydantic data models for session state and the upload wire format.
"""
from __future__ import annotations
from enum import Enum
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class SessionStatus(str, Enum):
    IDLE = "Idle"
    AWAITING_PERMISSION = "AwaitingPermission"
    AWAITING_CONSENT = "AwaitingConsent"
    RECORDING = "Recording"
    FINALIZING = "Finalizing"
    TERMINATED = "Terminated"


class WireModel(BaseModel):
    """Snake-case in Python, camelCase on the wire. Dump with by_alias=True."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# wire models (request)

class EmotionEntry(WireModel):
    timestamp: int
    emotion: str

class SpeechSummary(WireModel):
    transcripts: List[str] = Field(default_factory=list)
    duration: int = 0
    wpm: int = 0
    total_words: int = 0


# wire models (response)

class ReportSummary(WireModel):
    total_duration: str
    words_per_minute: int
    total_words: int

class GrammarAnalysis(WireModel):
    score: int
    feedback: str

class SentimentAnalysis(WireModel):
    confidence_score: int
    clarity_score: int
    overall_impression: str
    sentiment: str

class ProfessionalAnalysis(WireModel):
    communication_score: int
    organization_score: int
    recommendations: List[str] = Field(default_factory=list)

class Report(WireModel):
    summary: ReportSummary
    grammar_analysis: GrammarAnalysis
    sentiment_analysis: SentimentAnalysis
    professional_analysis: ProfessionalAnalysis
    emotion_analysis: Dict[str, str] = Field(default_factory=dict)

class SubmissionEnvelope(WireModel):
    success: bool
    message: Optional[str] = None
    # opaque to the capture side
    report: Optional[dict] = None


# session-side models

class SpeechLedger(BaseModel):
    total_words: int = 0
    wpm: int = 0
    transcripts: List[str] = Field(default_factory=list)

class SubmissionPayload(BaseModel):
    video: bytes
    audio: bytes
    video_mime: str = "video/mp4"
    audio_mime: str = "audio/wav"
    emotions: List[EmotionEntry] = Field(default_factory=list)
    speech: SpeechSummary

class PermissionResult(BaseModel):
    granted: bool
    reason: Optional[Literal["denied", "unavailable"]] = None
    message: Optional[str] = None

class Notification(BaseModel):
    ts: float
    title: str
    text: str
    level: Literal["info", "success", "warning", "error"] = "info"

class SessionSnapshot(BaseModel):
    status: SessionStatus
    started_at: float | None = None
    elapsed_seconds: float = 0.0
    remaining_seconds: int
    total_words: int = 0
    wpm: int = 0
    expression: Optional[str] = None
    logged_expressions: int = 0
    stop_trigger: Optional[Literal["user", "timeout", "error"]] = None
