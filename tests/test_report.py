from core.models import EmotionEntry, SpeechSummary
from core.report import build_report, emotion_percentages

def test_emotion_percentages():
    ems = [EmotionEntry(timestamp=i, emotion=e) for i, e in enumerate(["Neutral", "Neutral", "Speaking"])]
    assert emotion_percentages(ems) == {"Neutral": "66.7", "Speaking": "33.3"}
    assert emotion_percentages([]) == {}

def test_build_report_wire_shape():
    speech = SpeechSummary(transcripts=["a b c"], duration=42, wpm=4, total_words=3)
    body = build_report(speech, []).model_dump(by_alias=True)
    assert body["summary"] == {"totalDuration": "42 seconds", "wordsPerMinute": 4, "totalWords": 3}
    assert set(body) == {"summary", "grammarAnalysis", "sentimentAnalysis",
                         "professionalAnalysis", "emotionAnalysis"}
    assert body["sentimentAnalysis"]["confidenceScore"] == 7
