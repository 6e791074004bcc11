"""
REST endpoints: upload analysis backend and local capture-session control.
"""
import json
import logging
from typing import List, Optional

from fastapi import APIRouter, File, Form, HTTPException, UploadFile
from fastapi.responses import JSONResponse
from pydantic import TypeAdapter, ValidationError

from core.config import Settings
from core.errors import SessionStateError
from core.finalizer import ReportStore
from core.loop import EventLoop
from core.models import EmotionEntry, SpeechSummary
from core.notify import Notifier
from core.report import build_report
from core.session import CaptureSession, SessionController

router = APIRouter()
settings = Settings()
logger = logging.getLogger(__name__)

report_store = ReportStore()
notifier = Notifier()
controller: Optional[SessionController] = None
capture_loop: Optional[EventLoop] = None

_emotion_list = TypeAdapter(List[EmotionEntry])


def _envelope(status_code: int, success: bool, message: str, report: Optional[dict] = None) -> JSONResponse:
    body = {"success": success, "message": message}
    if report is not None:
        body["report"] = report
    return JSONResponse(body, status_code=status_code)


def _get_controller() -> SessionController:
    """Build the local capture controller on first use."""
    global controller, capture_loop
    if controller is None:
        from core.media import MediaDevices
        from core.submission import RemoteSubmitter

        loop = capture_loop = EventLoop().start()
        devices = MediaDevices(settings)
        submitter = RemoteSubmitter(settings)

        def factory() -> CaptureSession:
            return CaptureSession(settings, devices, submitter, loop,
                                  notifier=notifier, report_store=report_store)

        controller = SessionController(factory, loop)
    return controller


def shutdown_capture() -> None:
    """Abandon any active session and stop the capture loop."""
    global controller, capture_loop
    if controller is not None:
        controller.reset()
        controller = None
    if capture_loop is not None:
        capture_loop.close()
        capture_loop = None


async def _read_upload(file: UploadFile, field: str) -> bytes:
    if file.content_type not in settings.ALLOWED_MEDIA_TYPES:
        raise ValueError(f"Invalid file type for {field}: {file.content_type}")
    # declared size when the multipart parser knows it; checked again after reading
    if file.size is not None and file.size > settings.MAX_UPLOAD_BYTES:
        raise ValueError(f"{field} exceeds {settings.MAX_UPLOAD_BYTES} bytes")
    data = await file.read()
    if len(data) > settings.MAX_UPLOAD_BYTES:
        raise ValueError(f"{field} exceeds {settings.MAX_UPLOAD_BYTES} bytes")
    return data


@router.post("/upload")
async def upload(
    videoFile: Optional[UploadFile] = File(None),
    audioFile: Optional[UploadFile] = File(None),
    emotionData: Optional[str] = Form(None),
    speechData: Optional[str] = Form(None),
):
    """
    Receive one finished session: two media files plus JSON-encoded emotion and speech data.

    Returns:
        JSONResponse: {success, message, report} envelope.
    """
    logger.debug(
        f"[api] /upload video={getattr(videoFile, 'filename', None)} "
        f"audio={getattr(audioFile, 'filename', None)}"
    )
    if videoFile is None or audioFile is None:
        logger.error("[api] upload missing required files")
        return _envelope(500, False, "Missing required files")

    try:
        video = await _read_upload(videoFile, "videoFile")
        audio = await _read_upload(audioFile, "audioFile")
    except ValueError as e:
        logger.warning(f"[api] upload rejected: {e}")
        return _envelope(400, False, str(e))

    try:
        emotions = _emotion_list.validate_python(json.loads(emotionData or ""))
        speech = SpeechSummary.model_validate(json.loads(speechData or ""))
    except (ValueError, ValidationError) as e:
        logger.exception("[api] upload form data invalid")
        return _envelope(500, False, f"Error processing recording: {e}")

    logger.debug(
        f"[api] upload parsed video_bytes={len(video)} audio_bytes={len(audio)} "
        f"emotions={len(emotions)} words={speech.total_words} wpm={speech.wpm}"
    )
    report = build_report(speech, emotions)
    return _envelope(200, True, "Upload and analysis complete", report.model_dump(by_alias=True))


@router.get("/report")
async def take_report():
    """Hand the stored report to the caller once."""
    report = report_store.take()
    if report is None:
        raise HTTPException(status_code=404, detail="No report available")
    return JSONResponse(report)


def _status_body(snapshot) -> dict:
    return {
        "session": snapshot.model_dump(mode="json") if snapshot is not None else None,
        "notifications": [n.model_dump(mode="json") for n in notifier.recent()],
    }


@router.post("/session/start")
def session_start():
    ctl = _get_controller()
    try:
        snap = ctl.start()
    except SessionStateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return _status_body(snap)


@router.post("/session/consent")
def session_consent(given: bool = Form(True)):
    ctl = _get_controller()
    try:
        snap = ctl.consent(given)
    except SessionStateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return _status_body(snap)


@router.post("/session/stop")
def session_stop(confirmed: bool = Form(True)):
    ctl = _get_controller()
    try:
        snap = ctl.stop(confirmed)
    except SessionStateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return _status_body(snap)


@router.post("/session/reset")
def session_reset():
    _get_controller().reset()
    return {"status": "reset"}


@router.get("/session/status")
def session_status():
    return _status_body(_get_controller().snapshot())
