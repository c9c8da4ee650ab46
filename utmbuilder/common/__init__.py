# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# utmbuilder/common/__init__.py
"""Build steps shared by the UTM builders, and their configuration."""

from .config import BuildConfig, QemuConfig, load_config
from .step_attach_isos import StepAttachISOs
from .step_configure_qemu_args import StepConfigureQemuArgs
from .step_download import Fetcher, HttpFetcher, StepDownload
from .step_download_guest_additions import StepDownloadGuestAdditions

__all__ = [
    "BuildConfig",
    "Fetcher",
    "HttpFetcher",
    "QemuConfig",
    "StepAttachISOs",
    "StepConfigureQemuArgs",
    "StepDownload",
    "StepDownloadGuestAdditions",
    "load_config",
]
