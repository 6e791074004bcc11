# core/session.py
"""
Capture session state machine.

One CaptureSession per attempt:

    Idle -> AwaitingPermission -> AwaitingConsent -> Recording -> Finalizing -> Terminated

Producers (two recorders, the speech recognizer, the landmark loop, the budget
timer and the expression sampler) never call into the session directly: their
callbacks are posted onto the EventLoop, so every handler below runs on the
loop thread and guards itself with a status check instead of a lock.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional

from core.config import Settings
from core.errors import AcquisitionError, SessionStateError
from core.expression import FACE_NOT_DETECTED, ExpressionAggregator, classify_landmarks
from core.finalizer import ReportStore, assemble_payload
from core.models import SessionSnapshot, SessionStatus, SubmissionEnvelope
from core.notify import Notifier
from core.permissions import check_permissions
from core.speech import SpeechAggregator

logger = logging.getLogger(__name__)

RESTARTABLE = (SessionStatus.IDLE, SessionStatus.TERMINATED)


@dataclass
class MediaTrackSet:
    """Stream, recorder and accumulated chunks for one modality."""
    kind: str
    stream: Any
    recorder: Any = None
    chunks: List[bytes] = field(default_factory=list)
    recording: bool = False
    stop_requested: bool = False
    stop_acknowledged: bool = False

    def start_recorder(self) -> None:
        self.recorder.start()
        self.recording = True

    def stop_recorder(self) -> None:
        if not self.recording or self.stop_requested:
            return
        self.stop_requested = True
        self.recorder.stop()

    @property
    def settled(self) -> bool:
        return self.stop_acknowledged or not self.recording

    @property
    def mime_type(self) -> str:
        return getattr(self.recorder, "mime_type", "application/octet-stream")


def _format_mmss(seconds: float) -> str:
    seconds = int(max(0, seconds))
    return f"{seconds // 60}:{seconds % 60:02d}"


class CaptureSession:
    def __init__(
        self,
        settings: Settings,
        devices,
        submitter,
        loop,
        notifier: Optional[Notifier] = None,
        report_store: Optional[ReportStore] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.s = settings
        self._devices = devices
        self._submitter = submitter
        self._loop = loop
        self._notifier = notifier or Notifier()
        self._report_store = report_store if report_store is not None else ReportStore()
        self._clock = clock

        self.status = SessionStatus.IDLE
        self.budget_seconds = int(settings.SESSION_BUDGET_SECONDS)
        self.remaining = self.budget_seconds
        self.consent_given = False
        self.started_at: Optional[float] = None
        self.ended_at: Optional[float] = None
        self.stop_trigger: Optional[str] = None
        self.submission_error: Optional[str] = None
        self.report_stored = False
        self.recognizer_restarts = 0

        self.video: Optional[MediaTrackSet] = None
        self.audio: Optional[MediaTrackSet] = None
        self.speech: Optional[SpeechAggregator] = None
        self.expression = ExpressionAggregator()
        self._recognizer = None
        self._landmarks = None
        self._timer = None
        self._sampler = None
        self._submitted = False
        self._abandoned = False

    # ---- helpers ----
    def _set(self, status: SessionStatus) -> None:
        logger.debug(f"[session] {self.status.value} -> {status.value}")
        self.status = status

    def _require(self, expected: SessionStatus, op: str) -> None:
        if self.status != expected:
            raise SessionStateError(f"{op} requires {expected.value}, session is {self.status.value}")

    def _post(self, fn: Callable, *bound: Any) -> Callable:
        """Wrap a handler so producer threads enqueue it instead of calling it."""
        def _callback(*args):
            self._loop.post(fn, *bound, *args)
        return _callback

    def _track_set(self, kind: str) -> Optional[MediaTrackSet]:
        return self.video if kind == "video" else self.audio

    # ---- user actions ----
    def begin(self) -> bool:
        """Idle -> AwaitingConsent when camera and microphone can be opened."""
        self._require(SessionStatus.IDLE, "begin")
        self._set(SessionStatus.AWAITING_PERMISSION)
        result = check_permissions(self._devices)
        if not result.granted:
            title = "Permission Required" if result.reason == "denied" else "Device Unavailable"
            self._notifier.notify(title, result.message or "", "warning")
            self._set(SessionStatus.IDLE)
            return False
        self._set(SessionStatus.AWAITING_CONSENT)
        return True

    def consent(self, given: bool = True) -> bool:
        """Start all producers on consent; any failure leaves nothing running."""
        self._require(SessionStatus.AWAITING_CONSENT, "consent")
        if not given:
            logger.debug("[session] consent declined")
            self._set(SessionStatus.IDLE)
            return False
        self.consent_given = True
        try:
            self._start_capture()
        except Exception as e:
            err = e if isinstance(e, AcquisitionError) else AcquisitionError(str(e))
            logger.exception(f"[session] capture start failed reason={err.reason}")
            self._shutdown()
            self.video = self.audio = None
            self.started_at = None
            self._notifier.notify(
                "Recording Error",
                f"Failed to start recording. Please try again. ({err})",
                "error",
            )
            self._set(SessionStatus.IDLE)
            return False
        self._set(SessionStatus.RECORDING)
        self._notifier.notify(
            "Recording Started",
            "You can stop recording at any time using the Stop button",
            "success",
        )
        return True

    def request_stop(self, confirmed: bool = True) -> bool:
        if self.status != SessionStatus.RECORDING or not confirmed:
            return False
        return self._finalize("user")

    def abandon(self) -> None:
        """Release everything and end without submitting. Late results are ignored."""
        if self.status == SessionStatus.TERMINATED:
            return
        self._abandoned = True
        self._shutdown()
        self._clear_data()
        self._set(SessionStatus.TERMINATED)

    # ---- start / stop ----
    def _start_capture(self) -> None:
        self.started_at = self._clock()
        self.remaining = self.budget_seconds
        self.speech = SpeechAggregator(self.started_at, self.s.MIN_ELAPSED_SECONDS)
        self.expression = ExpressionAggregator()

        video_stream = self._devices.get_user_media(video=True)
        self.video = MediaTrackSet("video", video_stream)
        audio_stream = self._devices.get_user_media(audio=True)
        self.audio = MediaTrackSet("audio", audio_stream)

        for ts in (self.video, self.audio):
            ts.recorder = self._devices.create_recorder(
                ts.stream,
                on_data=self._post(self._on_chunk, ts.kind),
                on_stop=self._post(self._on_recorder_stop, ts.kind),
                on_error=self._post(self._on_recorder_error, ts.kind),
            )
        recognizer = self._devices.create_recognizer(
            audio_stream,
            on_result=self._post(self._on_recognition_result),
            on_end=self._post(self._on_recognition_end),
            on_error=self._post(self._on_recognition_error),
        )
        landmarks = self._devices.create_landmark_loop(
            video_stream, on_frame=self._post(self._on_landmarks)
        )

        self.video.start_recorder()
        self.audio.start_recorder()
        recognizer.start()
        self._recognizer = recognizer
        self._timer = self._loop.call_every(self.s.TIMER_TICK_SECONDS, self._on_tick)
        self._sampler = self._loop.call_every(self.s.EXPRESSION_SAMPLE_INTERVAL, self._on_sample)
        landmarks.start()
        self._landmarks = landmarks
        logger.info(f"[session] recording started budget={self.budget_seconds}s")

    def _safely(self, step: str, fn: Callable[[], Any]) -> bool:
        try:
            fn()
            return True
        except Exception:
            logger.exception(f"[session] {step} failed during shutdown")
            return False

    def _shutdown(self) -> None:
        """Stop every producer that is still running. Safe to call repeatedly.

        A failing step is logged and the remaining steps still run; track
        release always comes last.
        """
        if self._timer is not None:
            timer, self._timer = self._timer, None
            self._safely("timer cancel", timer.cancel)
        if self._sampler is not None:
            sampler, self._sampler = self._sampler, None
            self._safely("sampler cancel", sampler.cancel)
        if self._recognizer is not None:
            recognizer, self._recognizer = self._recognizer, None
            self._safely("recognizer stop", recognizer.stop)
        for ts in (self.video, self.audio):
            if ts is not None and not self._safely(f"{ts.kind} recorder stop", ts.stop_recorder):
                # no acknowledgement will follow
                ts.stop_acknowledged = True
        if self._landmarks is not None:
            landmarks, self._landmarks = self._landmarks, None
            self._safely("landmark loop stop", landmarks.stop)
        for ts in (self.video, self.audio):
            if ts is None:
                continue
            for track in ts.stream.get_tracks():
                if track.ready_state != "ended":
                    self._safely(f"{ts.kind} track stop", track.stop)

    def _finalize(self, trigger: str) -> bool:
        if self.status != SessionStatus.RECORDING:
            return False
        self._set(SessionStatus.FINALIZING)
        self.stop_trigger = trigger
        self.ended_at = self._clock()
        logger.info(f"[session] finalizing trigger={trigger} remaining={self.remaining}s")
        self._shutdown()
        self._maybe_submit()
        return True

    def _maybe_submit(self) -> None:
        if self.status != SessionStatus.FINALIZING or self._submitted:
            return
        if not all(ts.settled for ts in (self.video, self.audio) if ts is not None):
            return
        self._submitted = True
        payload = assemble_payload(
            self.video.chunks,
            self.audio.chunks,
            self.expression.log,
            self.speech.summary(self.ended_at),
            video_mime=self.video.mime_type,
            audio_mime=self.audio.mime_type,
        )
        logger.debug(
            f"[session] submitting video_bytes={len(payload.video)} audio_bytes={len(payload.audio)} "
            f"emotions={len(payload.emotions)} words={payload.speech.total_words}"
        )
        self._loop.run_in_background(self._submitter.submit, payload, self._on_submitted)

    def _clear_data(self) -> None:
        for ts in (self.video, self.audio):
            if ts is not None:
                ts.chunks = []
        if self.speech is not None:
            self.speech.clear()
        self.expression.clear()

    # ---- event handlers (loop thread) ----
    def _on_tick(self) -> None:
        if self.status != SessionStatus.RECORDING:
            return
        self.remaining -= 1
        if self.remaining <= 0:
            self.remaining = 0
            self._finalize("timeout")

    def _on_sample(self) -> None:
        if self.status != SessionStatus.RECORDING:
            return
        self.expression.sample(int(self._clock() * 1000))

    def _on_landmarks(self, landmarks) -> None:
        if self.status != SessionStatus.RECORDING:
            return
        try:
            label = classify_landmarks(landmarks)
        except ValueError:
            logger.debug("[session] incomplete landmark frame treated as no face")
            label = FACE_NOT_DETECTED
        self.expression.observe(label)

    def _on_recognition_result(self, transcript: str) -> None:
        if self.status != SessionStatus.RECORDING:
            return
        ledger = self.speech.add(transcript, self._clock())
        logger.debug(f"[session] utterance words={ledger.total_words} wpm={ledger.wpm}")

    def _on_recognition_end(self) -> None:
        # resume iff still recording; a concurrent stop must not resurrect it
        if self.status != SessionStatus.RECORDING or self._recognizer is None:
            return
        try:
            self._recognizer.start()
            self.recognizer_restarts += 1
        except Exception:
            logger.exception("[session] recognizer restart failed")

    def _on_recognition_error(self, err) -> None:
        logger.warning(f"[session] recognition error (continuing): {err!r}")

    def _on_chunk(self, kind: str, data: bytes) -> None:
        ts = self._track_set(kind)
        if ts is None or ts.stop_acknowledged:
            return
        if self.status in (SessionStatus.RECORDING, SessionStatus.FINALIZING):
            ts.chunks.append(data)

    def _on_recorder_stop(self, kind: str) -> None:
        ts = self._track_set(kind)
        if ts is None:
            return
        ts.stop_acknowledged = True
        if self.status == SessionStatus.RECORDING:
            # already stopped; shutdown must not stop it again
            ts.stop_requested = True
            logger.warning(f"[session] {kind} recorder stopped on its own")
            self._finalize("error")
            return
        self._maybe_submit()

    def _on_recorder_error(self, kind: str, err) -> None:
        if self.status != SessionStatus.RECORDING:
            return
        logger.error(f"[session] {kind} recorder error: {err!r}")
        self._notifier.notify("Recording Error", f"The {kind} recorder failed: {err}", "error")
        self._finalize("error")

    def _on_submitted(self, envelope: Optional[SubmissionEnvelope], error: Optional[BaseException]) -> None:
        if self._abandoned or self.status != SessionStatus.FINALIZING:
            logger.info("[session] late submission result discarded")
            return
        if error is not None:
            self.submission_error = str(error)
            self._notifier.notify("Processing Failed", str(error), "error")
        else:
            self._report_store.put(envelope.report)
            self.report_stored = True
            ledger = self.speech.ledger
            self._notifier.notify(
                "Assessment Complete",
                f"Words per minute: {ledger.wpm}\n"
                f"Total words: {ledger.total_words}\n"
                f"Recording duration: {_format_mmss(self.ended_at - self.started_at)}",
                "success",
            )
            self._clear_data()
        self._set(SessionStatus.TERMINATED)

    # ---- views ----
    def snapshot(self) -> SessionSnapshot:
        elapsed = 0.0
        if self.started_at is not None:
            end = self.ended_at if self.ended_at is not None else self._clock()
            elapsed = max(0.0, end - self.started_at)
        ledger = self.speech.ledger if self.speech is not None else None
        return SessionSnapshot(
            status=self.status,
            started_at=self.started_at,
            elapsed_seconds=round(elapsed, 2),
            remaining_seconds=self.remaining,
            total_words=ledger.total_words if ledger else 0,
            wpm=ledger.wpm if ledger else 0,
            expression=self.expression.current,
            logged_expressions=len(self.expression.log),
            stop_trigger=self.stop_trigger,
        )


class SessionController:
    """Single "current session" slot. Every call runs on the event loop."""
    def __init__(self, factory: Callable[[], CaptureSession], loop):
        self._factory = factory
        self._loop = loop
        self.current: Optional[CaptureSession] = None

    def _require_current(self) -> CaptureSession:
        if self.current is None:
            raise SessionStateError("No session has been started")
        return self.current

    def start(self) -> SessionSnapshot:
        return self._loop.call(self._start)

    def _start(self) -> SessionSnapshot:
        cur = self.current
        if cur is not None and cur.status not in RESTARTABLE:
            raise SessionStateError(f"A session is already {cur.status.value}")
        session = self._factory()
        self.current = session
        session.begin()
        return session.snapshot()

    def consent(self, given: bool = True) -> SessionSnapshot:
        def _consent():
            session = self._require_current()
            session.consent(given)
            return session.snapshot()
        return self._loop.call(_consent)

    def stop(self, confirmed: bool = True) -> SessionSnapshot:
        def _stop():
            session = self._require_current()
            session.request_stop(confirmed)
            return session.snapshot()
        return self._loop.call(_stop)

    def reset(self) -> None:
        def _reset():
            if self.current is not None:
                self.current.abandon()
            self.current = None
        self._loop.call(_reset)

    def snapshot(self) -> Optional[SessionSnapshot]:
        def _snap():
            return self.current.snapshot() if self.current is not None else None
        return self._loop.call(_snap)
