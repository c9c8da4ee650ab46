# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# utmbuilder/driver/base.py
from __future__ import annotations

from abc import ABC, abstractmethod
from types import MappingProxyType
from typing import Mapping

from ..core.exceptions import ConfigError


class Driver(ABC):
    """
    Control surface of the hypervisor.

    Implementations raise DriverError on any failure. Retrying a flaky
    automation call, if wanted, is the implementation's business.
    """

    @abstractmethod
    def execute_osa_script(self, *args: str) -> str:
        """Run automation script args[0] with the remaining args; return its stdout."""

    @abstractmethod
    def version(self) -> str:
        """Hypervisor version string, e.g. "4.6.4"."""

    @abstractmethod
    def guest_tools_iso_path(self) -> str:
        """Local path of the guest tools ISO shipped with the hypervisor."""


# UTM's QEMU drive interface enum, as its scripting dictionary spells it.
CONTROLLER_ENUM_CODES: Mapping[str, str] = MappingProxyType(
    {
        "none": "QdIn",
        "ide": "QdIi",
        "scsi": "QdIs",
        "sd": "QdId",
        "mtd": "QdIm",
        "floppy": "QdIf",
        "pflash": "QdIp",
        "virtio": "QdIv",
        "nvme": "QdIN",
        "usb": "QdIu",
    }
)


def controller_name(name: str) -> str:
    """Canonical spelling of a drive interface name ("USB " -> "usb")."""
    return str(name or "").strip().lower()


def get_controller_enum_code(name: str) -> str:
    code = CONTROLLER_ENUM_CODES.get(controller_name(name))
    if code is None:
        raise ConfigError(
            code=2,
            msg=(
                f"unknown controller name {name!r}; "
                f"expected one of: {', '.join(sorted(CONTROLLER_ENUM_CODES))}"
            ),
        )
    return code
