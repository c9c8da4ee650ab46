# SPDX-License-Identifier: LGPL-3.0-or-later
# utmbuilder/core/__init__.py
from .exceptions import (
    BuildCancelled,
    ChecksumError,
    ConfigError,
    DownloadError,
    DriverError,
    Fatal,
    StateError,
    UtmBuilderError,
)
from .logger import Log

__all__ = [
    "BuildCancelled",
    "ChecksumError",
    "ConfigError",
    "DownloadError",
    "DriverError",
    "Fatal",
    "Log",
    "StateError",
    "UtmBuilderError",
]
