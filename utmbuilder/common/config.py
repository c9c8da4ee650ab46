# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# utmbuilder/common/config.py
from __future__ import annotations

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from ..core.exceptions import wrap_config
from ..driver.base import CONTROLLER_ENUM_CODES, controller_name

GUEST_ADDITIONS_MODE_DISABLE = "disable"
GUEST_ADDITIONS_MODE_UPLOAD = "upload"
GUEST_ADDITIONS_MODE_ATTACH = "attach"

GUEST_ADDITIONS_MODES = (
    GUEST_ADDITIONS_MODE_DISABLE,
    GUEST_ADDITIONS_MODE_UPLOAD,
    GUEST_ADDITIONS_MODE_ATTACH,
)


@dataclass
class QemuConfig:
    """
    Extra QEMU arguments stored in the VM definition. Each inner list is
    joined with single spaces into one argument, e.g.

        qemuargs:
          - ["-accel", "hvf"]
          - ["-cpu", "host"]

    These persist in the exported VM.
    """
    qemuargs: List[List[str]] = field(default_factory=list)

    def prepare(self) -> List[str]:
        errs: List[str] = []
        for i, args in enumerate(self.qemuargs):
            if not args:
                errs.append(f"qemuargs[{i}]: empty argument list")
                continue
            if not " ".join(str(a) for a in args).strip():
                errs.append(f"qemuargs[{i}]: argument resolves to empty string")
        return errs


@dataclass
class BuildConfig:
    vm_id: str = ""
    iso_path: Optional[str] = None
    cd_path: Optional[str] = None
    attach_boot_iso: bool = True
    iso_interface: str = "usb"

    qemuargs: List[List[str]] = field(default_factory=list)

    guest_additions_mode: str = GUEST_ADDITIONS_MODE_ATTACH
    guest_additions_url: str = ""
    guest_additions_sha256: str = ""
    guest_additions_interface: str = "usb"
    guest_additions_path: str = ""

    scripts_dir: str = "scripts"
    cache_dir: str = "packer_cache"
    download_retries: int = 3

    @property
    def qemu(self) -> QemuConfig:
        return QemuConfig(qemuargs=self.qemuargs)

    def prepare(self) -> List[str]:
        """Validate the whole configuration; returns every problem found."""
        errs: List[str] = []
        if not str(self.vm_id or "").strip():
            errs.append("vm_id must be set")

        errs.extend(self.qemu.prepare())

        if self.guest_additions_mode not in GUEST_ADDITIONS_MODES:
            errs.append(
                f"guest_additions_mode is invalid: {self.guest_additions_mode!r} "
                f"(must be one of {', '.join(GUEST_ADDITIONS_MODES)})"
            )

        for key in ("iso_interface", "guest_additions_interface"):
            value = getattr(self, key)
            if controller_name(value) not in CONTROLLER_ENUM_CODES:
                errs.append(f"{key} is invalid: {value!r}")

        if self.attach_boot_iso and not self.iso_path:
            errs.append("iso_path is required when attach_boot_iso is true")

        if self.download_retries < 1:
            errs.append("download_retries must be at least 1")

        return errs

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BuildConfig":
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise wrap_config(f"unknown configuration keys: {', '.join(unknown)}", keys=unknown)

        cfg = cls(**data)
        cfg.qemuargs = [[str(a) for a in group] for group in (cfg.qemuargs or [])]
        cfg.iso_interface = controller_name(cfg.iso_interface)
        cfg.guest_additions_interface = controller_name(cfg.guest_additions_interface)
        return cfg


def load_config(source: Union[str, Path, Dict[str, Any]]) -> BuildConfig:
    """Load a BuildConfig from a YAML file or a dict and validate it."""
    if isinstance(source, dict):
        data = source
    else:
        path = Path(source)
        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        except OSError as e:
            raise wrap_config(f"cannot read config {path}: {e}", e, path=str(path)) from e
        except yaml.YAMLError as e:
            raise wrap_config(f"invalid YAML in {path}: {e}", e, path=str(path)) from e
        if not isinstance(data, dict):
            raise wrap_config(f"config {path} must be a mapping, got {type(data).__name__}", path=str(path))

    try:
        cfg = BuildConfig.from_dict(data)
    except TypeError as e:
        raise wrap_config(f"invalid configuration: {e}", e) from e

    errs = cfg.prepare()
    if errs:
        raise wrap_config("invalid configuration:\n  * " + "\n  * ".join(errs), problems=len(errs))
    return cfg
