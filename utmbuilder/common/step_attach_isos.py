# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# utmbuilder/common/step_attach_isos.py
from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List

from ..core.exceptions import ConfigError, UtmBuilderError, wrap_config, wrap_driver
from ..core.logger import Log
from ..driver.base import Driver, get_controller_enum_code
from ..multistep.state import (
    CD_PATH,
    DETACHED_ISOS,
    DISK_UNMOUNT_COMMANDS,
    DRIVER,
    GUEST_ADDITIONS_PATH,
    ISO_PATH,
    VM_ID,
    StateBag,
)
from ..multistep.step import BuildContext, Step, StepAction
from .config import GUEST_ADDITIONS_MODE_ATTACH

LOG = logging.getLogger(__name__)

ATTACH_ISO_SCRIPT = "attach_iso.applescript"
REMOVE_DRIVE_SCRIPT = "remove_drive.applescript"

CATEGORY_BOOT_ISO = "boot_iso"
CATEGORY_CD_FILES = "cd_files"
CATEGORY_GUEST_ADDITIONS = "guest_additions"

CD_FILES_INTERFACE = "usb"

_UUID_RE = re.compile(r"[0-9a-fA-F-]{36}")

_LABELS = {
    CATEGORY_BOOT_ISO: "boot ISO",
    CATEGORY_CD_FILES: "cd_files ISO",
    CATEGORY_GUEST_ADDITIONS: "guest additions ISO",
}


@dataclass(frozen=True)
class DiskToMount:
    category: str
    iso_path: str


@dataclass
class StepAttachISOs(Step):
    """
    Attach the boot ISO, the cd_files ISO and the guest additions ISO.

    Windows hands out drive letters in attachment order and unattended
    install scripts hard-code them, so the order is fixed:
      1. boot_iso         installation media
      2. cd_files         user files (usually D:)
      3. guest_additions  UTM guest tools (usually E:)

    Uses:
      driver               Driver
      vmId                 str
      iso_path             str (when attach_boot_iso)
      cd_path              str (optional)
      guest_additions_path str (when mode is attach)
    Produces:
      disk_unmount_commands dict[str, list[str]]
    """
    attach_boot_iso: bool = False
    iso_interface: str = "usb"
    guest_additions_mode: str = ""
    guest_additions_interface: str = "usb"
    disk_unmount_commands: Dict[str, List[str]] = field(default_factory=dict, init=False, repr=False)

    def _candidates(self, state: StateBag) -> List[DiskToMount]:
        disks: List[DiskToMount] = []

        if self.attach_boot_iso:
            disks.append(DiskToMount(CATEGORY_BOOT_ISO, state.get(ISO_PATH, str)))

        cd_path, ok = state.get_ok(CD_PATH)
        if ok:
            disks.append(DiskToMount(CATEGORY_CD_FILES, cd_path))

        if self.guest_additions_mode == GUEST_ADDITIONS_MODE_ATTACH:
            disks.append(DiskToMount(CATEGORY_GUEST_ADDITIONS, state.get(GUEST_ADDITIONS_PATH, str)))
        else:
            LOG.debug("Not attaching guest additions (mode=%r).", self.guest_additions_mode)

        return disks

    def _interface_for(self, category: str) -> str:
        if category == CATEGORY_BOOT_ISO:
            return self.iso_interface
        if category == CATEGORY_GUEST_ADDITIONS:
            return self.guest_additions_interface
        return CD_FILES_INTERFACE

    def run(self, ctx: BuildContext, state: StateBag) -> StepAction:
        Log.step(LOG, "Mounting ISOs...")
        self.disk_unmount_commands = {}

        disks = self._candidates(state)
        if not disks:
            LOG.info("No ISOs to mount; continuing...")
            return StepAction.CONTINUE

        driver: Driver = state.get(DRIVER, Driver)
        vm_id: str = state.get(VM_ID, str)

        for disk in disks:
            ctx.check()
            log = Log.bind(LOG, vm=vm_id, category=disk.category)
            try:
                iso_path = _canonical_path(disk.iso_path)
            except OSError as e:
                return self._halt(state, wrap_config(
                    f"error resolving {disk.category} path {disk.iso_path!r}: {e}", e
                ).with_context(category=disk.category))

            log.info("Mounting %s...", _LABELS[disk.category])
            try:
                controller = get_controller_enum_code(self._interface_for(disk.category))
            except ConfigError as e:
                return self._halt(state, e.with_context(category=disk.category))

            try:
                output = driver.execute_osa_script(
                    ATTACH_ISO_SCRIPT, vm_id,
                    "--interface", controller,
                    "--source", iso_path,
                )
            except UtmBuilderError as e:
                return self._halt(state, wrap_driver(
                    f"error attaching ISO: {e}", e, code=e.code, category=disk.category, iso=iso_path
                ))

            # Without the drive id there is no way to detach it later.
            m = _UUID_RE.search(output or "")
            if not m:
                return self._halt(state, wrap_driver(
                    f"error extracting UUID from output: {output}", category=disk.category
                ))
            self.disk_unmount_commands[disk.category] = [REMOVE_DRIVE_SCRIPT, vm_id, m.group(0)]
            log.debug("Attached as drive %s", m.group(0))

        state.put(DISK_UNMOUNT_COMMANDS, dict(self.disk_unmount_commands))
        return StepAction.CONTINUE

    def cleanup(self, state: StateBag) -> None:
        if not self.disk_unmount_commands:
            return

        _, detached = state.get_ok(DETACHED_ISOS)
        if detached:
            LOG.debug("ISOs already detached; nothing to do.")
            return

        driver: Driver = state.get(DRIVER, Driver)
        for category, command in self.disk_unmount_commands.items():
            try:
                driver.execute_osa_script(*command)
            except Exception as e:
                Log.bind(LOG, category=category).warning("error detaching drive: %s", e)

    def _halt(self, state: StateBag, err: UtmBuilderError) -> StepAction:
        state.put_error(err)
        Log.fail(LOG, str(err), **err.to_dict()["context"])
        return StepAction.HALT


def _canonical_path(p: str) -> str:
    """Absolute path with symlinks resolved; the file must exist."""
    return os.fspath(Path(os.path.abspath(p)).resolve(strict=True))
