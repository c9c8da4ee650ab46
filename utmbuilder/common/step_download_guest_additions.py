# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# utmbuilder/common/step_download_guest_additions.py
from __future__ import annotations

import logging
import re
import string
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping

from ..core.exceptions import ConfigError, DriverError, UtmBuilderError, wrap_config
from ..core.logger import Log
from ..driver.base import Driver
from ..multistep.state import DRIVER, GUEST_ADDITIONS_PATH, StateBag
from ..multistep.step import BuildContext, Step, StepAction
from .config import GUEST_ADDITIONS_MODE_DISABLE
from .step_download import CHECKSUM_NONE, Fetcher, HttpFetcher, StepDownload

LOG = logging.getLogger(__name__)

# UTM release -> guest tools release it ships with
ADDITIONS_VERSION_MAP: Mapping[str, str] = MappingProxyType({
    "4.6.4": "0.229.2",
})

DEFAULT_ADDITIONS_NAME = "utm-guest-tools-latest.iso"
DEFAULT_ADDITIONS_URL = f"https://getutm.app/downloads/{DEFAULT_ADDITIONS_NAME}"
CHECKSUM_TYPE = "sha256"

# Packer-style "{{ .Version }}" placeholders
_GO_TEMPLATE_RE = re.compile(r"\{\{\s*\.(\w+)\s*\}\}")
_TEMPLATE_FIELDS = ("Version", "version")


def render_url_template(template: str, version: str) -> str:
    """
    Render the guest additions URL. The only variable is the version,
    spelled {Version}, {version} or {{ .Version }}.
    """
    if not template:
        return ""
    text = _GO_TEMPLATE_RE.sub(lambda m: "{" + m.group(1) + "}", template)
    try:
        for _literal, name, spec, conv in string.Formatter().parse(text):
            if name is None:
                continue
            if name not in _TEMPLATE_FIELDS or spec or conv:
                raise wrap_config(
                    f"error preparing guest additions url: unsupported field {{{name}}}",
                    template=template,
                )
        return text.format_map({"Version": version, "version": version}).strip()
    except ValueError as e:
        raise wrap_config(f"error preparing guest additions url: {e}", e, template=template) from e


@dataclass
class StepDownloadGuestAdditions(Step):
    """
    Work out where the guest tools ISO comes from and retrieve it.

    Uses:
      driver Driver
    Produces:
      guest_additions_path str - local path of the guest tools ISO
    """
    guest_additions_mode: str
    guest_additions_url: str = ""
    guest_additions_sha256: str = ""
    guest_additions_target_path: str = ""
    fetcher: Fetcher = field(default_factory=HttpFetcher)

    def run(self, ctx: BuildContext, state: StateBag) -> StepAction:
        if self.guest_additions_mode == GUEST_ADDITIONS_MODE_DISABLE:
            LOG.info("Not downloading guest additions since it is disabled.")
            return StepAction.CONTINUE

        driver: Driver = state.get(DRIVER, Driver)

        try:
            version = driver.version()
        except UtmBuilderError as e:
            return self._halt(state, DriverError(
                code=e.code, msg=f"error reading version for guest additions download: {e}", cause=e
            ))

        mapped = ADDITIONS_VERSION_MAP.get(version)
        if mapped:
            LOG.info("Rewriting guest additions version: %s to %s", version, mapped)
            version = mapped

        try:
            url = render_url_template(self.guest_additions_url, version)
        except ConfigError as e:
            return self._halt(state, e)

        checksum_type = CHECKSUM_TYPE
        if not url:
            LOG.info("guest_additions_url is blank; querying driver for iso.")
            try:
                url = driver.guest_tools_iso_path()
                checksum_type = CHECKSUM_NONE
            except UtmBuilderError as e:
                Log.warn(LOG, str(e))
                url = DEFAULT_ADDITIONS_URL

        if not url:
            return self._halt(state, ConfigError(
                code=2,
                msg="couldn't detect guest additions URL.\n"
                    "Please specify `guest_additions_url` manually",
            ))

        checksum = ""
        if checksum_type != CHECKSUM_NONE:
            if self.guest_additions_sha256:
                checksum = f"{checksum_type}:{self.guest_additions_sha256}"
            else:
                # The stock ISO has no published checksum and changes often.
                LOG.info("Skipping checksum verification for default guest additions ISO")

        LOG.info("Guest additions URL: %s", url)

        download = StepDownload(
            checksum=checksum,
            description="Guest additions",
            result_key=GUEST_ADDITIONS_PATH,
            target_path=self.guest_additions_target_path,
            urls=[url],
            extension="iso",
            fetcher=self.fetcher,
        )
        return download.run(ctx, state)

    def _halt(self, state: StateBag, err: UtmBuilderError) -> StepAction:
        state.put_error(err)
        Log.fail(LOG, str(err))
        return StepAction.HALT
