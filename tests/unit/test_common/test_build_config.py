# SPDX-License-Identifier: LGPL-3.0-or-later
from __future__ import annotations

import textwrap

import pytest

from utmbuilder.common.config import BuildConfig, QemuConfig, load_config
from utmbuilder.core.exceptions import ConfigError


def _valid(**over):
    data = {"vm_id": "3F2504E0-4F89-11D3-9A0C-0305E82C3301", "iso_path": "/isos/win11.iso"}
    data.update(over)
    return data


class TestQemuConfig:
    def test_ok(self):
        assert QemuConfig([["-cpu", "host"]]).prepare() == []

    def test_empty_group(self):
        assert QemuConfig([["-cpu", "host"], []]).prepare() == ["qemuargs[1]: empty argument list"]

    def test_blank_group(self):
        assert "qemuargs[0]" in QemuConfig([["  ", ""]]).prepare()[0]


class TestBuildConfig:
    def test_defaults(self):
        cfg = BuildConfig.from_dict(_valid())

        assert cfg.prepare() == []
        assert cfg.guest_additions_mode == "attach"
        assert cfg.iso_interface == "usb"
        assert cfg.guest_additions_interface == "usb"
        assert cfg.download_retries == 3

    def test_collects_every_problem(self):
        cfg = BuildConfig(
            vm_id="",
            attach_boot_iso=True,
            guest_additions_mode="mount",
            iso_interface="sata",
            download_retries=0,
        )

        errs = cfg.prepare()

        assert len(errs) == 5
        assert any("vm_id" in e for e in errs)
        assert any("guest_additions_mode" in e for e in errs)
        assert any("iso_interface" in e for e in errs)
        assert any("iso_path is required" in e for e in errs)

    def test_boot_iso_optional_when_not_attached(self):
        assert BuildConfig(vm_id="x", attach_boot_iso=False).prepare() == []

    def test_unknown_keys_rejected(self):
        with pytest.raises(ConfigError, match="unknown configuration keys: boot_wait") as ei:
            BuildConfig.from_dict(_valid(boot_wait="10s"))
        assert ei.value.context == {"keys": ["boot_wait"]}

    def test_interface_names_are_case_insensitive(self):
        cfg = BuildConfig.from_dict(_valid(iso_interface="USB", guest_additions_interface=" VirtIO "))

        assert cfg.prepare() == []
        assert cfg.iso_interface == "usb"
        assert cfg.guest_additions_interface == "virtio"

    def test_prepare_accepts_mixed_case_without_from_dict(self):
        assert BuildConfig(vm_id="x", attach_boot_iso=False, iso_interface="NVMe").prepare() == []

    def test_qemuargs_stringified(self):
        cfg = BuildConfig.from_dict(_valid(qemuargs=[["-smp", 4]]))

        assert cfg.qemuargs == [["-smp", "4"]]


class TestLoadConfig:
    def test_from_yaml(self, tmp_path):
        p = tmp_path / "build.yaml"
        p.write_text(
            textwrap.dedent(
                """
                vm_id: 3F2504E0-4F89-11D3-9A0C-0305E82C3301
                iso_path: /isos/win11.iso
                cd_path: /isos/unattend.iso
                iso_interface: virtio
                qemuargs:
                  - ["-accel", "hvf"]
                  - ["-cpu", "host"]
                guest_additions_mode: attach
                guest_additions_url: https://mirror.local/utm-guest-tools-{Version}.iso
                """
            ),
            encoding="utf-8",
        )

        cfg = load_config(p)

        assert cfg.cd_path == "/isos/unattend.iso"
        assert cfg.iso_interface == "virtio"
        assert cfg.qemuargs == [["-accel", "hvf"], ["-cpu", "host"]]

    def test_from_dict(self):
        assert load_config(_valid()).vm_id.startswith("3F2504E0")

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="cannot read config") as ei:
            load_config(tmp_path / "nope.yaml")
        assert ei.value.code == 2
        assert ei.value.context["path"] == str(tmp_path / "nope.yaml")

    def test_invalid_yaml(self, tmp_path):
        p = tmp_path / "bad.yaml"
        p.write_text("vm_id: [unclosed\n", encoding="utf-8")

        with pytest.raises(ConfigError, match="invalid YAML"):
            load_config(p)

    def test_not_a_mapping(self, tmp_path):
        p = tmp_path / "list.yaml"
        p.write_text("- a\n- b\n", encoding="utf-8")

        with pytest.raises(ConfigError, match="must be a mapping"):
            load_config(p)

    def test_validation_errors_are_joined(self):
        with pytest.raises(ConfigError) as ei:
            load_config({"vm_id": "", "iso_path": "/x.iso", "guest_additions_mode": "mount"})

        msg = str(ei.value)
        assert "vm_id must be set" in msg
        assert "guest_additions_mode is invalid" in msg
        assert ei.value.code == 2
