# backend/weaklink/probes.py
"""
Foreground-app probes.

A probe is any zero-argument callable returning the identifier of the app
currently in the foreground, or UNKNOWN_APP when that cannot be told.
Raising ProbeUnavailable means the platform API itself is missing.
"""
import logging
import re
import subprocess
from typing import Callable, Optional

from .errors import ProbeUnavailable

logger = logging.getLogger(__name__)

UNKNOWN_APP = "unknown"

Probe = Callable[[], str]

# mResumedActivity: ActivityRecord{1a2b3c u0 com.instagram.android/.MainActivity t42}
_RESUMED_RE = re.compile(
    r"(?:mResumedActivity|topResumedActivity|ResumedActivity)\s*[:=]\s*"
    r"ActivityRecord\{\S+\s+\S+\s+([A-Za-z0-9_.]+)/"
)


def parse_resumed_package(dumpsys_output: str) -> str:
    if not dumpsys_output:
        return UNKNOWN_APP
    match = _RESUMED_RE.search(dumpsys_output)
    if not match:
        return UNKNOWN_APP
    return match.group(1)


class AdbForegroundProbe:
    """
    Reads the resumed activity of a USB/TCP attached Android device through
    `adb shell dumpsys activity activities`.
    """

    def __init__(self, serial: Optional[str] = None, adb_path: str = "adb", timeout: float = 3.0):
        self.serial = serial
        self.adb_path = adb_path
        self.timeout = timeout

    def _command(self) -> list:
        cmd = [self.adb_path]
        if self.serial:
            cmd += ["-s", self.serial]
        return cmd + ["shell", "dumpsys", "activity", "activities"]

    def __call__(self) -> str:
        try:
            result = subprocess.run(
                self._command(),
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except FileNotFoundError as e:
            raise ProbeUnavailable(f"{self.adb_path} not found") from e
        except subprocess.TimeoutExpired:
            logger.debug("adb dumpsys timed out")
            return UNKNOWN_APP

        if result.returncode != 0:
            logger.debug("adb dumpsys failed: %s", result.stderr.strip())
            return UNKNOWN_APP
        return parse_resumed_package(result.stdout)
