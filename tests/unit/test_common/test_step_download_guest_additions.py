# SPDX-License-Identifier: LGPL-3.0-or-later
from __future__ import annotations

import pytest

from fakes.fake_fetcher import FakeFetcher
from utmbuilder.common.step_download_guest_additions import (
    ADDITIONS_VERSION_MAP,
    DEFAULT_ADDITIONS_URL,
    StepDownloadGuestAdditions,
    render_url_template,
)
from utmbuilder.core.exceptions import ConfigError, DownloadError, DriverError
from utmbuilder.multistep.runner import BasicRunner
from utmbuilder.multistep.state import GUEST_ADDITIONS_PATH
from utmbuilder.multistep.step import BuildContext, StepAction


def _step(fetcher, **kw):
    kw.setdefault("guest_additions_mode", "attach")
    return StepDownloadGuestAdditions(fetcher=fetcher, **kw)


class TestRenderUrlTemplate:
    def test_empty(self):
        assert render_url_template("", "1.0") == ""

    @pytest.mark.parametrize(
        "template",
        [
            "https://example.com/{Version}/tools.iso",
            "https://example.com/{version}/tools.iso",
            "https://example.com/{{ .Version }}/tools.iso",
            "https://example.com/{{.Version}}/tools.iso",
        ],
    )
    def test_spellings(self, template):
        assert render_url_template(template, "0.229.2") == "https://example.com/0.229.2/tools.iso"

    def test_unknown_variable(self):
        with pytest.raises(ConfigError, match="error preparing guest additions url"):
            render_url_template("https://example.com/{Build}.iso", "1.0")

    def test_malformed(self):
        with pytest.raises(ConfigError):
            render_url_template("https://example.com/{Version", "1.0")

    @pytest.mark.parametrize(
        "template",
        [
            "https://example.com/{Version.major}/tools.iso",
            "https://example.com/{Version[a]}.iso",
            "https://example.com/{Version[0]}.iso",
            "https://example.com/{Version!r}.iso",
            "https://example.com/{Version:>10}.iso",
            "https://example.com/{}.iso",
        ],
    )
    def test_only_bare_version_fields(self, template):
        with pytest.raises(ConfigError, match="error preparing guest additions url") as ei:
            render_url_template(template, "0.229.2")
        assert ei.value.context["template"] == template


def test_field_access_in_template_halts_with_config_error(state):
    fetcher = FakeFetcher()
    step = _step(fetcher, guest_additions_url="https://example.com/{Version.major}/tools.iso")

    assert BasicRunner([step]).run(BuildContext(), state) is StepAction.HALT
    assert isinstance(state.error, ConfigError)
    assert str(state.error).startswith("error preparing guest additions url")
    assert fetcher.calls == []


def test_disabled_does_nothing(state, driver):
    fetcher = FakeFetcher()
    step = _step(fetcher, guest_additions_mode="disable")

    assert step.run(BuildContext(), state) is StepAction.CONTINUE
    assert driver.version_calls == 0
    assert driver.tools_path_calls == 0
    assert fetcher.calls == []
    assert GUEST_ADDITIONS_PATH not in state


def test_version_error_halts(state, driver):
    driver.version_error = DriverError(msg="UTM not running")
    fetcher = FakeFetcher()

    assert _step(fetcher).run(BuildContext(), state) is StepAction.HALT
    assert "error reading version for guest additions download" in str(state.error)
    assert fetcher.calls == []


def test_remapped_version_used_in_template(state, driver):
    driver.version_result = "4.6.4"
    fetcher = FakeFetcher()
    step = _step(fetcher, guest_additions_url="https://mirror.local/utm-guest-tools-{Version}.iso")

    assert step.run(BuildContext(), state) is StepAction.CONTINUE
    assert ADDITIONS_VERSION_MAP["4.6.4"] == "0.229.2"
    assert fetcher.calls[0]["urls"] == ["https://mirror.local/utm-guest-tools-0.229.2.iso"]


def test_unmapped_version_used_as_is(state, driver):
    driver.version_result = "4.5.0"
    fetcher = FakeFetcher()
    _step(fetcher, guest_additions_url="https://mirror.local/{Version}.iso").run(BuildContext(), state)

    assert fetcher.calls[0]["urls"] == ["https://mirror.local/4.5.0.iso"]


def test_bad_template_halts(state, driver):
    fetcher = FakeFetcher()
    step = _step(fetcher, guest_additions_url="https://mirror.local/{Nope}.iso")

    assert step.run(BuildContext(), state) is StepAction.HALT
    assert isinstance(state.error, ConfigError)
    assert fetcher.calls == []


def test_operator_url_with_checksum(state, driver):
    fetcher = FakeFetcher(result="/cache/tools.iso")
    step = _step(
        fetcher,
        guest_additions_url="https://mirror.local/tools.iso",
        guest_additions_sha256="abc123",
        guest_additions_target_path="/out/tools.iso",
    )

    assert step.run(BuildContext(), state) is StepAction.CONTINUE
    call = fetcher.calls[0]
    assert call["checksum"] == "sha256:abc123"
    assert call["target_path"] == "/out/tools.iso"
    assert call["extension"] == "iso"
    assert state.get(GUEST_ADDITIONS_PATH) == "/cache/tools.iso"
    assert driver.tools_path_calls == 0


def test_operator_url_without_checksum_skips_verification(state, driver):
    fetcher = FakeFetcher()
    _step(fetcher, guest_additions_url="https://mirror.local/tools.iso").run(BuildContext(), state)

    assert fetcher.calls[0]["checksum"] == ""


def test_driver_path_skips_checksum(state, driver):
    driver.tools_path_error = None
    driver.tools_path_result = "/Applications/UTM.app/Contents/Resources/utm-guest-tools-latest.iso"
    fetcher = FakeFetcher()
    step = _step(fetcher, guest_additions_sha256="abc123")

    assert step.run(BuildContext(), state) is StepAction.CONTINUE
    assert fetcher.calls[0]["urls"] == [driver.tools_path_result]
    assert fetcher.calls[0]["checksum"] == ""


def test_driver_failure_falls_back_to_vendor_url(state, driver):
    fetcher = FakeFetcher()

    assert _step(fetcher).run(BuildContext(), state) is StepAction.CONTINUE
    assert driver.tools_path_calls == 1
    assert fetcher.calls[0]["urls"] == [DEFAULT_ADDITIONS_URL]
    assert fetcher.calls[0]["checksum"] == ""


def test_vendor_url_with_operator_checksum(state, driver):
    fetcher = FakeFetcher()
    _step(fetcher, guest_additions_sha256="ff00").run(BuildContext(), state)

    assert fetcher.calls[0]["urls"] == [DEFAULT_ADDITIONS_URL]
    assert fetcher.calls[0]["checksum"] == "sha256:ff00"


def test_empty_driver_path_halts_with_guidance(state, driver):
    driver.tools_path_error = None
    driver.tools_path_result = ""
    fetcher = FakeFetcher()

    assert _step(fetcher).run(BuildContext(), state) is StepAction.HALT
    assert isinstance(state.error, ConfigError)
    assert "guest_additions_url" in str(state.error)
    assert fetcher.calls == []


def test_fetch_failure_halts(state, driver):
    fetcher = FakeFetcher(error=DownloadError(msg="connection reset"))

    assert _step(fetcher).run(BuildContext(), state) is StepAction.HALT
    assert "connection reset" in str(state.error)
    assert GUEST_ADDITIONS_PATH not in state
