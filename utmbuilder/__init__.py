# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# utmbuilder/__init__.py
"""
utmbuilder - provisioning steps for building UTM virtual machine images

Usage as a library:

    from utmbuilder import Builder, load_config
    from utmbuilder.core.logger import Log

    logger = Log.setup(verbose=1)
    cfg = load_config("build.yaml")
    state = Builder(logger, cfg).run()
"""

__version__ = "0.1.0"

from .builder import Builder
from .common import BuildConfig, load_config
from .multistep import BasicRunner, BuildContext, StateBag, Step, StepAction

__all__ = [
    "__version__",
    "BasicRunner",
    "BuildConfig",
    "BuildContext",
    "Builder",
    "StateBag",
    "Step",
    "StepAction",
    "load_config",
]
