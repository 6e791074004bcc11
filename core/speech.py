"""
Speech metrics accumulated from recognition results.
"""
from __future__ import annotations
import math
from core.models import SpeechLedger, SpeechSummary


def count_words(transcript: str) -> int:
    """Whitespace-delimited token count; blank text counts zero."""
    return len(transcript.split())


def round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


class SpeechAggregator:
    """
    Owns the SpeechLedger for one session.

    Args:
        started_at: Session start (epoch seconds).
        min_elapsed_seconds: Floor on elapsed time so WPM never divides by ~0.
    """
    def __init__(self, started_at: float, min_elapsed_seconds: float = 1.0):
        self.started_at = float(started_at)
        self.min_elapsed_minutes = max(float(min_elapsed_seconds), 1e-6) / 60.0
        self.ledger = SpeechLedger()

    def add(self, transcript: str, now: float) -> SpeechLedger:
        """Append one finalized utterance and recompute WPM."""
        self.ledger.transcripts.append(transcript)
        self.ledger.total_words += count_words(transcript)
        minutes = max((now - self.started_at) / 60.0, self.min_elapsed_minutes)
        self.ledger.wpm = round_half_up(self.ledger.total_words / minutes)
        return self.ledger

    def summary(self, ended_at: float) -> SpeechSummary:
        return SpeechSummary(
            transcripts=list(self.ledger.transcripts),
            duration=int(max(0.0, ended_at - self.started_at)),
            wpm=self.ledger.wpm,
            total_words=self.ledger.total_words,
        )

    def clear(self) -> None:
        self.ledger = SpeechLedger()
