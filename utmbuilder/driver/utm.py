# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# utmbuilder/driver/utm.py
"""
UTM driver: runs the bundled AppleScript automation files through osascript.
"""

from __future__ import annotations

import logging
import os
import subprocess
from pathlib import Path
from typing import List, Optional, Sequence

from ..core.exceptions import DriverError, wrap_driver
from ..core.utils import U
from .base import Driver

LOG = logging.getLogger(__name__)

DEFAULT_APP_PATH = Path("/Applications/UTM.app")
GUEST_TOOLS_ISO_NAME = "utm-guest-tools-latest.iso"


class UtmDriver(Driver):
    def __init__(
        self,
        scripts_dir: Path,
        *,
        app_path: Path = DEFAULT_APP_PATH,
        osascript: str = "osascript",
        timeout: Optional[int] = 300,
        guest_tools_dirs: Optional[Sequence[Path]] = None,
    ) -> None:
        self.scripts_dir = Path(scripts_dir)
        self.app_path = Path(app_path)
        self.osascript = osascript
        self.timeout = timeout
        self.guest_tools_dirs = list(guest_tools_dirs) if guest_tools_dirs is not None else self._default_tools_dirs()

    def _default_tools_dirs(self) -> List[Path]:
        home = Path(os.path.expanduser("~"))
        return [
            home / "Library/Containers/com.utmapp.UTM/Data/Library/Application Support/GuestSupportTools",
            self.app_path / "Contents/Resources",
        ]

    def _osascript(self, argv: List[str]) -> str:
        cmd = [self.osascript] + argv
        try:
            cp = U.run_cmd(LOG, cmd, check=True, capture=True, timeout=self.timeout)
        except subprocess.CalledProcessError as e:
            detail = (e.stderr or e.stdout or "").strip() or f"exit status {e.returncode}"
            raise wrap_driver(f"{argv[0]} failed: {detail}", e, argv=argv) from e
        except subprocess.TimeoutExpired as e:
            raise wrap_driver(f"{argv[0]} timed out after {self.timeout}s", e) from e
        except OSError as e:
            raise wrap_driver(f"cannot run {self.osascript}: {e}", e) from e
        return (cp.stdout or "").strip()

    def execute_osa_script(self, *args: str) -> str:
        if not args:
            raise DriverError(code=40, msg="no automation script given")
        script = self.scripts_dir / args[0]
        if not script.is_file():
            raise DriverError(code=40, msg=f"automation script not found: {script}")
        return self._osascript([str(script), *args[1:]])

    def version(self) -> str:
        out = self._osascript(["-e", 'get version of application "UTM"'])
        if not out:
            raise DriverError(code=40, msg="UTM reported an empty version")
        return out

    def guest_tools_iso_path(self) -> str:
        for d in self.guest_tools_dirs:
            candidate = Path(d) / GUEST_TOOLS_ISO_NAME
            if candidate.is_file():
                LOG.debug("Found bundled guest tools: %s", candidate)
                return str(candidate)
        searched = ", ".join(str(d) for d in self.guest_tools_dirs)
        raise DriverError(code=40, msg=f"guest tools ISO not found (searched: {searched})")
