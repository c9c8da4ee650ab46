# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# utmbuilder/common/step_download.py
"""
Artifact retrieval.

Fetcher is the capability steps depend on; HttpFetcher is the stock
implementation (local paths, file:// and http(s):// sources, cache
directory, resumable .part downloads, retry, checksum verification).
StepDownload adapts a Fetcher to the step contract.
"""

from __future__ import annotations

import hashlib
import logging
import sys
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence, Tuple
from urllib.parse import unquote, urlparse

import requests
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    TextColumn,
    TimeRemainingColumn,
    TransferSpeedColumn,
)

from ..core.exceptions import BuildCancelled, ChecksumError, DownloadError, UtmBuilderError, wrap_download
from ..core.logger import Log
from ..core.retry import retry_operation
from ..core.utils import U
from ..multistep.state import StateBag
from ..multistep.step import BuildContext, Step, StepAction

LOG = logging.getLogger(__name__)

CHECKSUM_NONE = "none"
_SUPPORTED_CHECKSUMS = ("md5", "sha1", "sha256", "sha512")


def parse_checksum(checksum: str) -> Tuple[Optional[str], Optional[str]]:
    """
    "sha256:abcd..." -> ("sha256", "abcd..."); "", "none" -> (None, None).
    A bare hex digest is taken as sha256.
    """
    raw = (checksum or "").strip()
    if not raw or raw.lower() == CHECKSUM_NONE:
        return None, None
    if ":" in raw:
        algo, value = raw.split(":", 1)
        algo = algo.strip().lower()
        if algo == CHECKSUM_NONE:
            return None, None
        if algo not in _SUPPORTED_CHECKSUMS:
            raise ChecksumError(code=50, msg=f"unsupported checksum type: {algo}")
        return algo, value.strip().lower()
    return "sha256", raw.lower()


def verify_checksum(path: Path, checksum: str) -> None:
    algo, expected = parse_checksum(checksum)
    if algo is None:
        return
    actual = U.checksum(path, algo)
    if actual != expected:
        raise ChecksumError(
            code=50,
            msg=f"checksum mismatch for {path}: expected {algo}:{expected}, got {algo}:{actual}",
        )


class Fetcher(ABC):
    @abstractmethod
    def fetch(
        self,
        ctx: BuildContext,
        urls: Sequence[str],
        checksum: str,
        target_path: str,
        extension: str,
    ) -> Path:
        """
        Retrieve the first usable source in `urls` and return its local path.
        Raises DownloadError / ChecksumError on failure and BuildCancelled
        when ctx is cancelled mid-transfer.
        """


@dataclass
class HttpFetcher(Fetcher):
    cache_dir: Path = Path("packer_cache")
    retries: int = 3
    chunk_bytes: int = 1024 * 1024
    connect_timeout_s: int = 30
    read_timeout_s: int = 300
    session: requests.Session = field(default_factory=requests.Session)

    def target_for(self, url: str, checksum: str, target_path: str, extension: str) -> Path:
        if target_path:
            return Path(target_path).expanduser()
        # Same URL + checksum always lands on the same cache file.
        key = hashlib.sha1(f"{url}|{checksum}".encode("utf-8")).hexdigest()
        suffix = f".{extension.lstrip('.')}" if extension else ""
        return Path(self.cache_dir) / f"{key}{suffix}"

    def fetch(
        self,
        ctx: BuildContext,
        urls: Sequence[str],
        checksum: str,
        target_path: str,
        extension: str,
    ) -> Path:
        if not urls:
            raise wrap_download("no source URLs given")
        parse_checksum(checksum)

        errors: List[str] = []
        for url in urls:
            ctx.check()
            try:
                return self._fetch_one(ctx, url, checksum, target_path, extension)
            except (BuildCancelled, ChecksumError):
                raise
            except UtmBuilderError as e:
                LOG.warning("Source %s failed: %s", url, e)
                errors.append(f"{url}: {e}")

        raise wrap_download("all sources failed: " + "; ".join(errors), urls=list(urls))

    def _fetch_one(self, ctx: BuildContext, url: str, checksum: str, target_path: str, extension: str) -> Path:
        parsed = urlparse(url)
        if parsed.scheme in ("", "file") or len(parsed.scheme) == 1:
            # Local sources are used in place; a single-letter scheme is a Windows drive.
            local = Path(unquote(parsed.path) if parsed.scheme == "file" else url).expanduser()
            if not local.is_file():
                raise wrap_download(f"local file not found: {local}", path=str(local))
            verify_checksum(local, checksum)
            return local.resolve()

        if parsed.scheme not in ("http", "https"):
            raise wrap_download(f"unsupported URL scheme: {parsed.scheme}", url=url)

        dest = self.target_for(url, checksum, target_path, extension)
        algo, _ = parse_checksum(checksum)
        if dest.is_file() and algo is not None:
            try:
                verify_checksum(dest, checksum)
                LOG.info("Using cached download: %s", dest)
                return dest
            except ChecksumError:
                LOG.info("Cached file %s does not match checksum; downloading again", dest)
                U.safe_unlink(dest)

        U.ensure_dir(dest.parent)

        def _pause(seconds: float) -> None:
            if ctx.wait(seconds):
                ctx.check()

        try:
            retry_operation(
                lambda: self._download(ctx, url, dest),
                max_attempts=self.retries,
                exceptions=(requests.RequestException, OSError),
                operation_name=f"download {url}",
                logger=LOG,
                sleep=_pause,
            )
        except (requests.RequestException, OSError) as e:
            raise wrap_download(f"download failed: {e}", e, url=url, dest=str(dest)) from e

        try:
            verify_checksum(dest, checksum)
        except ChecksumError:
            U.safe_unlink(dest)
            raise
        return dest

    def _download(self, ctx: BuildContext, url: str, dest: Path) -> None:
        part = dest.parent / f"{dest.name}.part"
        start = part.stat().st_size if part.exists() else 0
        headers = {"Range": f"bytes={start}-"} if start > 0 else {}
        if start:
            LOG.info("Resuming download from byte %d", start)

        restart = False
        with self.session.get(
            url,
            headers=headers,
            stream=True,
            timeout=(self.connect_timeout_s, self.read_timeout_s),
            allow_redirects=True,
        ) as resp:
            if start and resp.status_code == 416:
                if _content_range_total(resp.headers.get("Content-Range")) == start:
                    LOG.info("Partial download %s is already complete", part)
                    part.replace(dest)
                    return
                LOG.info("Server rejected resume from byte %d; restarting", start)
                U.safe_unlink(part)
                restart = True
            else:
                written, total = self._stream(ctx, resp, part, dest, start)

        if restart:
            # The .part is gone, so this attempt sends no Range header.
            self._download(ctx, url, dest)
            return

        if total is not None and written != total:
            raise OSError(f"short read: expected {total} bytes, got {written}")

        part.replace(dest)
        LOG.info("Downloaded %s (%s)", dest, U.human_bytes(written))

    def _stream(
        self, ctx: BuildContext, resp: requests.Response, part: Path, dest: Path, start: int
    ) -> Tuple[int, Optional[int]]:
        resp.raise_for_status()
        if start and resp.status_code != 206:
            # Server ignored the range request; start over.
            start = 0

        total: Optional[int] = None
        length = resp.headers.get("Content-Length")
        if length and length.isdigit():
            total = start + int(length)

        written = start
        with Progress(
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            DownloadColumn(),
            TransferSpeedColumn(),
            TimeRemainingColumn(),
            disable=not getattr(sys.stderr, "isatty", lambda: False)(),
        ) as progress:
            task = progress.add_task(dest.name, total=total, completed=start)
            with open(part, "ab" if start else "wb") as f:
                for chunk in resp.iter_content(chunk_size=self.chunk_bytes):
                    ctx.check()
                    if chunk:
                        f.write(chunk)
                        written += len(chunk)
                        progress.update(task, completed=written)
        return written, total


def _content_range_total(value: Optional[str]) -> Optional[int]:
    """Total size from a 'bytes */1234' or 'bytes 0-9/1234' header."""
    if not value or "/" not in value:
        return None
    total = value.rsplit("/", 1)[1].strip()
    return int(total) if total.isdigit() else None


@dataclass
class StepDownload(Step):
    """
    Retrieve one artifact and publish its local path under `result_key`.

    Produces:
      <result_key> str - local path of the artifact
    """
    checksum: str
    description: str
    result_key: str
    urls: List[str]
    target_path: str = ""
    extension: str = ""
    fetcher: Fetcher = field(default_factory=HttpFetcher)

    def run(self, ctx: BuildContext, state: StateBag) -> StepAction:
        Log.step(LOG, f"Retrieving {self.description}...")
        try:
            path = self.fetcher.fetch(ctx, self.urls, self.checksum, self.target_path, self.extension)
        except BuildCancelled:
            raise
        except UtmBuilderError as e:
            err = DownloadError(
                code=e.code, msg=f"error downloading {self.description}: {e}", cause=e
            ).with_context(**(e.context or {}))
            state.put_error(err)
            Log.fail(LOG, str(err), **err.to_dict()["context"])
            return StepAction.HALT

        state.put(self.result_key, str(path))
        Log.ok(LOG, f"{self.description} ready: {path}")
        return StepAction.CONTINUE
