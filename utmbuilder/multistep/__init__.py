# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# utmbuilder/multistep/__init__.py
"""Step pipeline: shared state, step contract and the runner."""

from .runner import BasicRunner, CleanupFailure
from .state import StateBag
from .step import BuildContext, Step, StepAction

__all__ = [
    "BasicRunner",
    "BuildContext",
    "CleanupFailure",
    "StateBag",
    "Step",
    "StepAction",
]
