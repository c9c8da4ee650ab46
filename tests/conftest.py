# SPDX-License-Identifier: LGPL-3.0-or-later
import os
import sys
from pathlib import Path

import pytest

_THIS_DIR = Path(__file__).resolve().parent
_REPO_ROOT = _THIS_DIR.parent

for _p in (_REPO_ROOT, _THIS_DIR):
    if str(_p) not in sys.path:
        sys.path.insert(0, str(_p))

os.environ.setdefault("PYTHONPATH", str(_REPO_ROOT))

from fakes.fake_driver import FakeDriver  # noqa: E402
from utmbuilder.multistep.state import DRIVER, VM_ID, StateBag  # noqa: E402


@pytest.fixture
def driver():
    return FakeDriver()


@pytest.fixture
def state(driver):
    return StateBag({DRIVER: driver, VM_ID: "test-vm-id"})
