# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# utmbuilder/multistep/state.py
"""
Shared build state.

One StateBag exists per build. Steps run one at a time, so the bag does no
locking; parallel builds must each own their own bag.
"""

from __future__ import annotations

from typing import Any, Dict, Iterator, Optional, Tuple, Type, Union

from ..core.exceptions import StateKeyError, StateTypeError

# Well-known keys
DRIVER = "driver"
VM_ID = "vmId"
ISO_PATH = "iso_path"
CD_PATH = "cd_path"
GUEST_ADDITIONS_PATH = "guest_additions_path"
USER_QEMU_ARGS = "userQemuArgs"
DISK_UNMOUNT_COMMANDS = "disk_unmount_commands"
DETACHED_ISOS = "detached_isos"
ERROR = "error"
CANCELLED = "cancelled"
HALTED = "halted"

_MISSING = object()


class StateBag:
    def __init__(self, initial: Optional[Dict[str, Any]] = None) -> None:
        self._data: Dict[str, Any] = dict(initial or {})

    def put(self, key: str, value: Any) -> None:
        self._data[key] = value

    def get(self, key: str, expected: Optional[Union[Type, Tuple[Type, ...]]] = None) -> Any:
        """
        Return the value for `key`.

        An absent key, or a value that is not an instance of `expected`,
        means an earlier step did not do its job; both raise.
        """
        value = self._data.get(key, _MISSING)
        if value is _MISSING:
            raise StateKeyError(msg=f"state key {key!r} is not set")
        if expected is not None and not isinstance(value, expected):
            raise StateTypeError(
                msg=f"state key {key!r} holds {type(value).__name__}, expected {_type_names(expected)}"
            )
        return value

    def get_ok(self, key: str) -> Tuple[Any, bool]:
        value = self._data.get(key, _MISSING)
        if value is _MISSING:
            return None, False
        return value, True

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def put_error(self, err: BaseException) -> bool:
        """
        Record the terminal failure. Only the first error sticks; returns
        False when an error was already recorded.
        """
        if ERROR in self._data:
            return False
        self._data[ERROR] = err
        return True

    @property
    def error(self) -> Optional[BaseException]:
        return self._data.get(ERROR)

    def __contains__(self, key: object) -> bool:
        return key in self._data

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._data))

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return f"StateBag(keys={sorted(self._data)!r})"


def _type_names(expected: Union[Type, Tuple[Type, ...]]) -> str:
    if isinstance(expected, tuple):
        return " | ".join(t.__name__ for t in expected)
    return expected.__name__
