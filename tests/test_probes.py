import subprocess
from unittest import mock

import pytest

from weaklink.errors import ProbeUnavailable
from weaklink.probes import UNKNOWN_APP, AdbForegroundProbe, parse_resumed_package

pytestmark = pytest.mark.unit

DUMPSYS = """
ACTIVITY MANAGER ACTIVITIES (dumpsys activity activities)
Display #0 (activities from top to bottom):
  * Task{9a1 #42 type=standard A=10123:com.instagram.android U=0 visible=true}
    mResumedActivity: ActivityRecord{1a2b3c u0 com.instagram.android/.activity.MainTabActivity t42}
"""

DUMPSYS_NEW = "  topResumedActivity=ActivityRecord{77f u0 com.zhiliaoapp.musically/com.ss.android.ugc.aweme.splash.SplashActivity t9}"


def test_parse_resumed_package():
    assert parse_resumed_package(DUMPSYS) == "com.instagram.android"
    assert parse_resumed_package(DUMPSYS_NEW) == "com.zhiliaoapp.musically"


def test_parse_without_resumed_activity_is_unknown():
    assert parse_resumed_package("") == UNKNOWN_APP
    assert parse_resumed_package("nothing interesting") == UNKNOWN_APP


def _completed(stdout="", returncode=0):
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr="")


def test_adb_probe_reads_foreground_app():
    probe = AdbForegroundProbe(serial="emulator-5554")
    with mock.patch("weaklink.probes.subprocess.run", return_value=_completed(DUMPSYS)) as run:
        assert probe() == "com.instagram.android"
    cmd = run.call_args[0][0]
    assert cmd[:3] == ["adb", "-s", "emulator-5554"]


def test_adb_probe_failure_is_unknown():
    probe = AdbForegroundProbe()
    with mock.patch("weaklink.probes.subprocess.run", return_value=_completed(returncode=1)):
        assert probe() == UNKNOWN_APP


def test_adb_probe_timeout_is_unknown():
    probe = AdbForegroundProbe(timeout=0.1)
    with mock.patch(
        "weaklink.probes.subprocess.run",
        side_effect=subprocess.TimeoutExpired(cmd="adb", timeout=0.1),
    ):
        assert probe() == UNKNOWN_APP


def test_missing_adb_is_probe_unavailable():
    probe = AdbForegroundProbe(adb_path="/nowhere/adb")
    with mock.patch("weaklink.probes.subprocess.run", side_effect=FileNotFoundError()):
        with pytest.raises(ProbeUnavailable):
            probe()
