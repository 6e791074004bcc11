import pytest
from collections import deque

from core.config import Settings
from core.errors import AcquisitionError
from core.expression import Point
from core.finalizer import ReportStore
from core.models import SubmissionEnvelope
from core.notify import Notifier
from core.session import CaptureSession


# ---------------------------------------------------------------------------
# Manually driven stand-ins for the event loop and the capture devices
# ---------------------------------------------------------------------------

class FakeClock:
    def __init__(self, t: float = 1_000.0):
        self.t = t
    def __call__(self) -> float:
        return self.t
    def advance(self, seconds: float) -> None:
        self.t += seconds


class FakeRepeater:
    def __init__(self, loop, interval, fn):
        self.loop, self.interval, self.fn = loop, interval, fn
        self.cancelled = False
        self.cancel_calls = 0
    def cancel(self):
        self.cancel_calls += 1
        self.cancelled = True
    def fire(self):
        # same guard as the real Repeater: nothing is queued once cancelled
        self.loop.post(lambda: None if self.cancelled else self.fn())


class FakeLoop:
    """post() queues; drain() dispatches in order; background work runs on drain."""
    def __init__(self):
        self.queue = deque()
        self.repeaters = []
        self.background = []
        self.hold_background = False
    def post(self, fn, *args):
        self.queue.append((fn, args))
    def call(self, fn, *args, timeout=None):
        return fn(*args)
    def call_every(self, interval, fn):
        r = FakeRepeater(self, interval, fn)
        self.repeaters.append(r)
        return r
    def run_in_background(self, fn, arg, on_done):
        self.background.append((fn, arg, on_done))
        if not self.hold_background:
            self.release_background()
    def release_background(self):
        while self.background:
            fn, arg, on_done = self.background.pop(0)
            try:
                result = fn(arg)
            except Exception as e:
                self.post(on_done, None, e)
            else:
                self.post(on_done, result, None)
    def drain(self):
        while self.queue:
            fn, args = self.queue.popleft()
            fn(*args)


class FakeTrack:
    def __init__(self, kind):
        self.kind = kind
        self.ready_state = "live"
        self.stop_calls = 0
    def stop(self):
        self.stop_calls += 1
        self.ready_state = "ended"


class FakeStream:
    def __init__(self, video=False, audio=False):
        self.tracks = []
        if video:
            self.tracks.append(FakeTrack("video"))
        if audio:
            self.tracks.append(FakeTrack("audio"))
    def get_tracks(self):
        return list(self.tracks)


class FakeRecorder:
    def __init__(self, kind, on_data, on_stop, on_error):
        self.kind = kind
        self.mime_type = "video/mp4" if kind == "video" else "audio/wav"
        self.on_data, self.on_stop, self.on_error = on_data, on_stop, on_error
        self.state = "inactive"
        self.start_calls = 0
        self.stop_calls = 0
        self.final_chunk = f"{kind}-final".encode()
    def start(self):
        self.start_calls += 1
        self.state = "recording"
    def emit(self, data: bytes):
        self.on_data(data)
    def stop(self):
        self.stop_calls += 1
        if self.state == "inactive":
            return
        self.state = "inactive"
        self.on_data(self.final_chunk)
        self.on_stop()


class FakeRecognizer:
    def __init__(self, on_result, on_end, on_error):
        self.on_result, self.on_end, self.on_error = on_result, on_end, on_error
        self.listening = False
        self.start_calls = 0
        self.stop_calls = 0
    def start(self):
        self.start_calls += 1
        self.listening = True
    def stop(self):
        self.stop_calls += 1
        was = self.listening
        self.listening = False
        if was:
            self.on_end()
    def hear(self, text):
        """One utterance: result then self-termination."""
        self.on_result(text)
        self.listening = False
        self.on_end()


class FakeLandmarkLoop:
    def __init__(self, on_frame):
        self.on_frame = on_frame
        self.running = False
        self.start_calls = 0
        self.stop_calls = 0
    def start(self):
        self.start_calls += 1
        self.running = True
    def stop(self):
        self.stop_calls += 1
        self.running = False


class FakeDevices:
    """
    fail_on: None, "probe", "probe-denied", "video", "audio", "recognizer", "landmarks"
    """
    def __init__(self, fail_on=None):
        self.fail_on = fail_on
        self.streams = []
        self.recorders = {}
        self.recognizer = None
        self.landmarks = None
        self.probe = None

    def get_user_media(self, video=False, audio=False):
        if video and audio:
            if self.fail_on == "probe-denied":
                raise AcquisitionError("Permission denied", reason="denied")
            if self.fail_on == "probe":
                raise AcquisitionError("No camera found")
            self.probe = FakeStream(video=True, audio=True)
            return self.probe
        if video and self.fail_on == "video":
            raise AcquisitionError("camera busy")
        if audio and self.fail_on == "audio":
            raise AcquisitionError("microphone busy")
        s = FakeStream(video=video, audio=audio)
        self.streams.append(s)
        return s

    def create_recorder(self, stream, on_data, on_stop, on_error=None):
        kind = stream.get_tracks()[0].kind
        r = FakeRecorder(kind, on_data, on_stop, on_error)
        self.recorders[kind] = r
        return r

    def create_recognizer(self, stream, on_result, on_end, on_error=None):
        self.recognizer = FakeRecognizer(on_result, on_end, on_error)
        if self.fail_on == "recognizer":
            def _boom():
                raise RuntimeError("speech service not allowed")
            self.recognizer.start = _boom
        return self.recognizer

    def create_landmark_loop(self, stream, on_frame):
        self.landmarks = FakeLandmarkLoop(on_frame)
        if self.fail_on == "landmarks":
            def _boom():
                raise RuntimeError("face mesh failed to load")
            self.landmarks.start = _boom
        return self.landmarks

    def all_tracks(self):
        tracks = []
        for s in self.streams:
            tracks.extend(s.get_tracks())
        return tracks


class FakeSubmitter:
    def __init__(self, envelope=None, error=None):
        self.envelope = envelope or SubmissionEnvelope(success=True, message="ok", report={"summary": {}})
        self.error = error
        self.payloads = []
    def submit(self, payload):
        self.payloads.append(payload)
        if self.error is not None:
            raise self.error
        return self.envelope


def make_landmarks(mouth=0.1, brow=1.0, eye=1.0):
    """468 points where the three ratios come out as given."""
    pts = [Point(0.5, 0.5)] * 468
    pts = list(pts)
    # reference segments of length 0.1
    pts[386], pts[374] = Point(0.6, 0.40), Point(0.6, 0.50)
    pts[61], pts[291] = Point(0.40, 0.7), Point(0.50, 0.7)
    pts[300] = Point(0.6, 0.30)
    # eye: |159 145| = eye * |386 374|
    pts[159], pts[145] = Point(0.4, 0.40), Point(0.4, 0.40 + 0.1 * eye)
    # brow: |70 159| = brow * |300 386|
    pts[70] = Point(0.4, 0.40 - 0.1 * brow)
    # mouth: |13 14| = mouth * |61 291|
    pts[13], pts[14] = Point(0.45, 0.75), Point(0.45, 0.75 + 0.1 * mouth)
    return pts


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def settings():
    return Settings(SESSION_BUDGET_SECONDS=120)

@pytest.fixture
def clock():
    return FakeClock()

@pytest.fixture
def loop():
    return FakeLoop()

@pytest.fixture
def devices():
    return FakeDevices()

@pytest.fixture
def submitter():
    return FakeSubmitter()

@pytest.fixture
def notifier():
    return Notifier()

@pytest.fixture
def report_store():
    return ReportStore()

@pytest.fixture
def make_session(settings, loop, clock, notifier, report_store):
    def _make(devices=None, submitter=None):
        return CaptureSession(
            settings,
            devices if devices is not None else FakeDevices(),
            submitter if submitter is not None else FakeSubmitter(),
            loop,
            notifier=notifier,
            report_store=report_store,
            clock=clock,
        )
    return _make

@pytest.fixture
def recording(make_session, devices, submitter, loop):
    """A session that has reached Recording."""
    session = make_session(devices, submitter)
    assert session.begin()
    assert session.consent(True)
    loop.drain()
    return session
