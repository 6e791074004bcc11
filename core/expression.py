"""
Coarse expression labels from facial landmark geometry.

Indices follow the MediaPipe FaceMesh topology (468 points, 478 with refined
iris landmarks). Coordinates are normalized to the frame.
"""
from __future__ import annotations

import math
from typing import List, NamedTuple, Optional, Sequence

from core.models import EmotionEntry

SPEAKING = "Speaking"
ENGAGED = "Engaged"
BLINKING = "Blinking"
NEUTRAL = "Neutral"
EXPRESSION_LABELS = (SPEAKING, ENGAGED, BLINKING, NEUTRAL)

# live display only, never logged
FACE_NOT_DETECTED = "Face not detected"

LANDMARK_COUNT = 468

MOUTH_OPEN_THRESHOLD = 0.5
BROW_RAISE_THRESHOLD = 1.2
EYE_CLOSED_THRESHOLD = 0.5


class Point(NamedTuple):
    x: float
    y: float


class ExpressionRatios(NamedTuple):
    eye_openness: float
    brow_raise: float
    mouth_openness: float


def distance_ratio(p1, p2, p3, p4) -> float:
    """|p1 p2| / |p3 p4|; 0.0 for a degenerate reference segment."""
    d1 = math.hypot(p2.x - p1.x, p2.y - p1.y)
    d2 = math.hypot(p4.x - p3.x, p4.y - p3.y)
    return d1 / d2 if d2 > 0 else 0.0


def expression_ratios(landmarks: Sequence) -> ExpressionRatios:
    if len(landmarks) < LANDMARK_COUNT:
        raise ValueError(f"expected at least {LANDMARK_COUNT} landmarks, got {len(landmarks)}")
    lm = landmarks
    return ExpressionRatios(
        eye_openness=distance_ratio(lm[159], lm[145], lm[386], lm[374]),
        brow_raise=distance_ratio(lm[70], lm[159], lm[300], lm[386]),
        mouth_openness=distance_ratio(lm[13], lm[14], lm[61], lm[291]),
    )


def classify_expression(ratios: ExpressionRatios) -> str:
    # first match wins
    if ratios.mouth_openness > MOUTH_OPEN_THRESHOLD:
        return SPEAKING
    if ratios.brow_raise > BROW_RAISE_THRESHOLD:
        return ENGAGED
    if ratios.eye_openness < EYE_CLOSED_THRESHOLD:
        return BLINKING
    return NEUTRAL


def classify_landmarks(landmarks: Optional[Sequence]) -> str:
    if not landmarks:
        return FACE_NOT_DETECTED
    return classify_expression(expression_ratios(landmarks))


class ExpressionAggregator:
    """Tracks the live label per frame and logs it on a fixed sampling cadence."""
    def __init__(self):
        self.current: Optional[str] = None
        self.log: List[EmotionEntry] = []

    def observe(self, label: str) -> None:
        self.current = label

    def sample(self, timestamp_ms: int) -> Optional[EmotionEntry]:
        if self.current is None or self.current == FACE_NOT_DETECTED:
            return None
        entry = EmotionEntry(timestamp=int(timestamp_ms), emotion=self.current)
        self.log.append(entry)
        return entry

    def clear(self) -> None:
        self.current = None
        self.log = []
