"""
Camera + microphone permission probe.
"""
from __future__ import annotations
import logging

from core.errors import AcquisitionError
from core.models import PermissionResult

logger = logging.getLogger(__name__)

DENIED_MESSAGE = (
    "Please enable camera and microphone access.\n"
    "How to enable:\n"
    "1. Allow this application to use the camera and microphone in your system privacy settings\n"
    "2. Make sure no other application holds the devices\n"
    "3. Start the assessment again"
)


def check_permissions(devices) -> PermissionResult:
    """
    Acquire a combined video+audio stream and release it straight away.

    Returns:
        PermissionResult: granted, or the failure reason with remediation text.
    """
    stream = None
    try:
        stream = devices.get_user_media(video=True, audio=True)
        logger.debug("[permissions] probe stream acquired")
        return PermissionResult(granted=True)
    except AcquisitionError as e:
        logger.warning(f"[permissions] probe failed reason={e.reason} err={e}")
        if e.denied:
            return PermissionResult(granted=False, reason="denied", message=DENIED_MESSAGE)
        return PermissionResult(
            granted=False,
            reason="unavailable",
            message=f"Could not start camera or microphone: {e}",
        )
    except Exception as e:
        logger.exception("[permissions] probe failed")
        return PermissionResult(
            granted=False,
            reason="unavailable",
            message=f"Could not start camera or microphone: {e}",
        )
    finally:
        if stream is not None:
            for track in stream.get_tracks():
                track.stop()
