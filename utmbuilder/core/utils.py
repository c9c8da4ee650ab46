# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# utmbuilder/core/utils.py
from __future__ import annotations

import hashlib
import logging
import shlex
import subprocess
import sys
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

from rich.progress import (
    BarColumn,
    Progress,
    TextColumn,
    TimeElapsedColumn,
    TimeRemainingColumn,
    TransferSpeedColumn,
)


class U:
    @staticmethod
    def ensure_dir(p: Path) -> None:
        p.mkdir(parents=True, exist_ok=True)

    @staticmethod
    def human_bytes(n: Optional[int]) -> str:
        if n is None:
            return "unknown"
        x = float(n)
        for unit in ["B", "KiB", "MiB", "GiB", "TiB"]:
            if x < 1024 or unit == "TiB":
                return f"{x:.2f} {unit}" if unit != "B" else f"{int(x)} {unit}"
            x /= 1024
        return f"{n} B"

    @staticmethod
    def _pretty_cmd(cmd: List[str]) -> str:
        return " ".join(shlex.quote(x) for x in cmd)

    @staticmethod
    def run_cmd(
        logger: logging.Logger,
        cmd: List[str],
        *,
        check: bool = True,
        capture: bool = False,
        env: Optional[Dict[str, str]] = None,
        timeout: Optional[int] = None,
        cwd: Optional[Union[str, Path]] = None,
    ) -> subprocess.CompletedProcess:
        """
        Run a command, logging the exact argv at debug level and the
        captured output on failure. Subprocess exceptions are re-raised.
        """
        pretty = U._pretty_cmd(cmd)
        logger.debug("Running: %s", pretty)

        try:
            return subprocess.run(
                cmd,
                check=check,
                capture_output=capture,
                text=True,
                env=env,
                timeout=timeout,
                cwd=str(cwd) if cwd is not None else None,
            )
        except subprocess.CalledProcessError as e:
            stdout = (e.stdout or e.output or "").strip()
            stderr = (e.stderr or "").strip()
            if stdout or stderr:
                logger.error(
                    "Command failed: %s%s%s",
                    pretty,
                    f"\nstdout:\n{stdout}" if stdout else "",
                    f"\nstderr:\n{stderr}" if stderr else "",
                )
            else:
                logger.error("Command failed: %s (no output)", pretty)
            raise
        except subprocess.TimeoutExpired:
            logger.error("Command timed out: %s (timeout=%ss)", pretty, timeout)
            raise

    @staticmethod
    def checksum(path: Path, algo: str = "sha256") -> str:
        h = hashlib.new(algo)
        total_size = path.stat().st_size
        chunk = 1024 * 1024

        def _iter_blocks(f) -> Iterable[bytes]:
            while True:
                b = f.read(chunk)
                if not b:
                    break
                yield b

        # Not a TTY: hash quietly.
        rich_ok = getattr(sys.stderr, "isatty", lambda: False)()

        if not rich_ok:
            with open(path, "rb") as f:
                for blk in _iter_blocks(f):
                    h.update(blk)
            return h.hexdigest()

        with Progress(
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
            TransferSpeedColumn(),
            TimeElapsedColumn(),
            TimeRemainingColumn(),
        ) as progress:
            task = progress.add_task("Computing checksum", total=total_size)
            with open(path, "rb") as f:
                for blk in _iter_blocks(f):
                    h.update(blk)
                    progress.update(task, advance=len(blk))
        return h.hexdigest()

    @staticmethod
    def safe_unlink(p: Path) -> None:
        try:
            p.unlink()
        except FileNotFoundError:
            pass
