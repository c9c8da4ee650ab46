# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# utmbuilder/multistep/step.py
from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from enum import Enum
from typing import Optional

from ..core.exceptions import BuildCancelled
from .state import StateBag


class StepAction(Enum):
    CONTINUE = "continue"
    HALT = "halt"


class BuildContext:
    """
    Cancellable execution context for one build.

    cancel() is safe to call from another thread or a signal handler;
    long-running collaborators poll `cancelled` or call check().
    """

    def __init__(self, event: Optional[threading.Event] = None) -> None:
        self._event = event or threading.Event()
        self.reason: Optional[str] = None

    def cancel(self, reason: str = "build cancelled") -> None:
        if not self._event.is_set():
            self.reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def check(self) -> None:
        if self._event.is_set():
            raise BuildCancelled(code=130, msg=self.reason or "build cancelled")

    def wait(self, timeout: float) -> bool:
        """Sleep up to `timeout` seconds; returns True if cancelled meanwhile."""
        return self._event.wait(timeout)


class Step(ABC):
    """
    Atomic unit of work in a build.

    run() performs provisioning and returns CONTINUE or HALT. A step halts
    by recording one descriptive error with state.put_error() first.
    cleanup() undoes what run() did, best effort. It is called for every
    step whose run() was invoked, even if that run halted, and must not
    raise for expected failures.
    """

    @property
    def name(self) -> str:
        return type(self).__name__

    @abstractmethod
    def run(self, ctx: BuildContext, state: StateBag) -> StepAction:
        raise NotImplementedError

    def cleanup(self, state: StateBag) -> None:
        return None
