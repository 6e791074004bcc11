from core.permissions import DENIED_MESSAGE, check_permissions
from tests.conftest import FakeDevices

def test_granted_probe_released():
    devices = FakeDevices()
    result = check_permissions(devices)
    assert result.granted and result.reason is None
    assert [t.ready_state for t in devices.probe.get_tracks()] == ["ended", "ended"]

def test_denied():
    result = check_permissions(FakeDevices(fail_on="probe-denied"))
    assert not result.granted
    assert result.reason == "denied"
    assert result.message == DENIED_MESSAGE

def test_unavailable():
    result = check_permissions(FakeDevices(fail_on="probe"))
    assert result.reason == "unavailable"
    assert result.message == "Could not start camera or microphone: No camera found"

def test_unexpected_failure_is_unavailable():
    class Broken:
        def get_user_media(self, video=False, audio=False):
            raise OSError("device node vanished")
    result = check_permissions(Broken())
    assert not result.granted and result.reason == "unavailable"
