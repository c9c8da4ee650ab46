# SPDX-License-Identifier: LGPL-3.0-or-later
# utmbuilder/driver/__init__.py
from .base import CONTROLLER_ENUM_CODES, Driver, get_controller_enum_code
from .utm import UtmDriver

__all__ = ["CONTROLLER_ENUM_CODES", "Driver", "UtmDriver", "get_controller_enum_code"]
