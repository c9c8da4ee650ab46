# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# utmbuilder/common/step_configure_qemu_args.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List

from ..core.exceptions import DriverError, UtmBuilderError
from ..core.logger import Log
from ..driver.base import Driver
from ..multistep.state import DRIVER, USER_QEMU_ARGS, VM_ID, StateBag
from ..multistep.step import BuildContext, Step, StepAction

LOG = logging.getLogger(__name__)

ADD_QEMU_ARGS_SCRIPT = "add_qemu_additional_args.applescript"


@dataclass
class StepConfigureQemuArgs(Step):
    """
    Add the user's QEMU arguments to the VM definition.

    The arguments are intended configuration and stay in the exported VM,
    so cleanup leaves them alone.

    Uses:
      driver Driver
      vmId   str
    Produces:
      userQemuArgs list[str] - the joined arguments, for later steps that
                               re-issue add_qemu_additional_args (it
                               replaces rather than appends)
    """
    qemu_args: List[List[str]] = field(default_factory=list)

    def run(self, ctx: BuildContext, state: StateBag) -> StepAction:
        if not self.qemu_args:
            LOG.info("No user QEMU args to configure, skipping...")
            return StepAction.CONTINUE

        driver: Driver = state.get(DRIVER, Driver)
        vm_id: str = state.get(VM_ID, str)

        joined = [" ".join(args) for args in self.qemu_args]

        Log.step(LOG, f"Adding {len(joined)} user QEMU additional argument(s)...")
        for arg in joined:
            LOG.info("QEMU arg: %s", arg)

        try:
            driver.execute_osa_script(ADD_QEMU_ARGS_SCRIPT, vm_id, "--args", *joined)
        except UtmBuilderError as e:
            err = DriverError(code=e.code, msg=f"error adding user QEMU additional arguments: {e}", cause=e)
            state.put_error(err)
            Log.fail(LOG, str(err))
            return StepAction.HALT

        state.put(USER_QEMU_ARGS, joined)
        return StepAction.CONTINUE
