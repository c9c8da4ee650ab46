# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# utmbuilder/builder.py
from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

from .common.config import BuildConfig
from .common.step_attach_isos import StepAttachISOs
from .common.step_configure_qemu_args import StepConfigureQemuArgs
from .common.step_download import Fetcher, HttpFetcher
from .common.step_download_guest_additions import StepDownloadGuestAdditions
from .core.exceptions import Fatal
from .core.logger import Log
from .driver.base import Driver
from .driver.utm import UtmDriver
from .multistep.runner import BasicRunner
from .multistep.state import CANCELLED, CD_PATH, DRIVER, HALTED, ISO_PATH, VM_ID, StateBag
from .multistep.step import BuildContext, Step


class Builder:
    """
    Assembles the provisioning steps for one VM and runs them.
    """

    def __init__(
        self,
        logger: logging.Logger,
        cfg: BuildConfig,
        *,
        driver: Optional[Driver] = None,
        fetcher: Optional[Fetcher] = None,
    ) -> None:
        self.logger = logger
        self.cfg = cfg
        self.driver = driver or UtmDriver(Path(cfg.scripts_dir))
        self.fetcher = fetcher or HttpFetcher(cache_dir=Path(cfg.cache_dir), retries=cfg.download_retries)
        self.runner: Optional[BasicRunner] = None

    def steps(self) -> List[Step]:
        cfg = self.cfg
        return [
            StepDownloadGuestAdditions(
                guest_additions_mode=cfg.guest_additions_mode,
                guest_additions_url=cfg.guest_additions_url,
                guest_additions_sha256=cfg.guest_additions_sha256,
                guest_additions_target_path=cfg.guest_additions_path,
                fetcher=self.fetcher,
            ),
            StepAttachISOs(
                attach_boot_iso=cfg.attach_boot_iso,
                iso_interface=cfg.iso_interface,
                guest_additions_mode=cfg.guest_additions_mode,
                guest_additions_interface=cfg.guest_additions_interface,
            ),
            StepConfigureQemuArgs(qemu_args=cfg.qemuargs),
        ]

    def initial_state(self) -> StateBag:
        state = StateBag({DRIVER: self.driver, VM_ID: self.cfg.vm_id})
        if self.cfg.iso_path:
            state.put(ISO_PATH, self.cfg.iso_path)
        if self.cfg.cd_path:
            state.put(CD_PATH, self.cfg.cd_path)
        return state

    def run(self, ctx: Optional[BuildContext] = None) -> StateBag:
        """
        Run the build. Raises Fatal with the first recorded error once every
        started step has been cleaned up.
        """
        Log.banner(self.logger, f"Provisioning VM {self.cfg.vm_id}")
        state = self.initial_state()
        self.runner = BasicRunner(self.steps())
        self.runner.run(ctx, state)

        for failure in self.runner.cleanup_errors:
            Log.warn(self.logger, f"cleanup of {failure.step} failed: {failure.error}")

        err = state.error
        if err is not None:
            code = getattr(err, "code", 1)
            raise Fatal(code=code if isinstance(code, int) else 1, msg=str(err), cause=err)

        # A step may halt without recording why.
        _, cancelled = state.get_ok(CANCELLED)
        if cancelled:
            raise Fatal(code=130, msg="build was cancelled")
        _, halted = state.get_ok(HALTED)
        if halted:
            raise Fatal(code=1, msg="build was halted")

        Log.ok(self.logger, "Build steps complete")
        return state
