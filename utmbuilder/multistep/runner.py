# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# utmbuilder/multistep/runner.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from ..core.exceptions import BuildCancelled, RunnerError
from ..core.logger import Log
from .state import CANCELLED, HALTED, StateBag
from .step import BuildContext, Step, StepAction

LOG = logging.getLogger(__name__)


@dataclass(frozen=True)
class CleanupFailure:
    step: str
    error: BaseException


class BasicRunner:
    """
    Runs steps strictly in order, then unwinds.

    Forward progress stops at the first HALT, at cancellation of the build
    context, or when a step raises. Every step whose run() was invoked,
    including the one that stopped the build, then gets cleanup() in
    reverse order. Cleanup failures are logged and collected, never raised.
    There is no retry at this level.
    """

    def __init__(self, steps: Sequence[Step]) -> None:
        self.steps: Tuple[Step, ...] = tuple(steps)
        self.cleanup_errors: List[CleanupFailure] = []
        self._started = False

    def run(self, ctx: Optional[BuildContext], state: StateBag) -> StepAction:
        if self._started:
            raise RunnerError(msg="runner already used; build a new runner per pipeline")
        self._started = True
        ctx = ctx or BuildContext()

        ran: List[Step] = []
        action = StepAction.CONTINUE

        for step in self.steps:
            if ctx.cancelled:
                self._mark_cancelled(ctx, state)
                action = StepAction.HALT
                break

            ran.append(step)
            Log.trace(LOG, "Running step %s", step.name)
            action = self._run_one(ctx, step, state)

            if action is StepAction.CONTINUE and ctx.cancelled:
                self._mark_cancelled(ctx, state)
                action = StepAction.HALT

            if action is StepAction.HALT:
                state.put(HALTED, True)
                LOG.debug("Step %s halted the build", step.name)
                break

        self._unwind(ran, state)
        return action

    def _run_one(self, ctx: BuildContext, step: Step, state: StateBag) -> StepAction:
        try:
            action = step.run(ctx, state)
        except BuildCancelled as e:
            state.put(CANCELLED, True)
            state.put_error(e)
            return StepAction.HALT
        except Exception as e:
            LOG.error("Step %s raised %s: %s", step.name, type(e).__name__, e, exc_info=True)
            state.put_error(e)
            return StepAction.HALT

        if not isinstance(action, StepAction):
            state.put_error(RunnerError(msg=f"step {step.name} returned {action!r} instead of a StepAction"))
            return StepAction.HALT
        return action

    def _mark_cancelled(self, ctx: BuildContext, state: StateBag) -> None:
        state.put(CANCELLED, True)
        state.put(HALTED, True)
        state.put_error(BuildCancelled(code=130, msg=ctx.reason or "build cancelled"))

    def _unwind(self, ran: List[Step], state: StateBag) -> None:
        for step in reversed(ran):
            Log.trace(LOG, "Cleaning up step %s", step.name)
            try:
                step.cleanup(state)
            except Exception as e:
                LOG.warning("Cleanup of %s failed: %s", step.name, e)
                self.cleanup_errors.append(CleanupFailure(step=step.name, error=e))
