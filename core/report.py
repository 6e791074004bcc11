"""
Report assembly on the upload backend.

Scores other than the summary and emotion breakdown are fixed placeholders:
no language model is consulted.
"""
from __future__ import annotations
from collections import Counter
from typing import Dict, List

from core.models import (
    EmotionEntry,
    GrammarAnalysis,
    ProfessionalAnalysis,
    Report,
    ReportSummary,
    SentimentAnalysis,
    SpeechSummary,
)


def emotion_percentages(emotions: List[EmotionEntry]) -> Dict[str, str]:
    """Share of samples per label, as percentage strings with one decimal."""
    total = len(emotions)
    if total == 0:
        return {}
    counts = Counter(e.emotion for e in emotions)
    return {label: f"{100.0 * n / total:.1f}" for label, n in counts.items()}


def build_report(speech: SpeechSummary, emotions: List[EmotionEntry]) -> Report:
    return Report(
        summary=ReportSummary(
            total_duration=f"{speech.duration} seconds",
            words_per_minute=speech.wpm,
            total_words=speech.total_words,
        ),
        grammar_analysis=GrammarAnalysis(score=8, feedback="Good grammar usage"),
        sentiment_analysis=SentimentAnalysis(
            confidence_score=7,
            clarity_score=8,
            overall_impression="Positive and clear presentation",
            sentiment="Positive",
        ),
        professional_analysis=ProfessionalAnalysis(
            communication_score=8,
            organization_score=7,
            recommendations=["Maintain good pace", "Continue clear articulation"],
        ),
        emotion_analysis=emotion_percentages(emotions),
    )
