# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# utmbuilder/__main__.py
from __future__ import annotations

import argparse
import signal
import sys
import traceback
from typing import List, Optional

from .builder import Builder
from .common.config import load_config
from .core.exceptions import Fatal, UtmBuilderError, format_exception_for_cli
from .core.logger import Log
from .multistep.step import BuildContext


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="utmbuilder",
        description="Provision a UTM virtual machine: guest tools, ISOs and QEMU arguments.",
    )
    p.add_argument("--config", required=True, help="YAML build configuration")
    p.add_argument("--vm-id", help="override vm_id from the config")
    p.add_argument("-v", "--verbose", action="count", default=0, help="-v, -vv, -vvv for more output")
    p.add_argument("-q", "--quiet", action="count", default=0)
    p.add_argument("--log-file", default=None)
    p.add_argument("--json-logs", action="store_true", help="emit NDJSON logs")
    p.add_argument("--no-color", action="store_true")
    return p


def main(argv: Optional[List[str]] = None) -> None:
    args = build_parser().parse_args(argv)
    logger = Log.setup(
        args.verbose,
        args.log_file,
        quiet=args.quiet,
        color=not args.no_color,
        json_logs=args.json_logs,
    )

    try:
        cfg = load_config(args.config)
        if args.vm_id:
            cfg.vm_id = args.vm_id
    except UtmBuilderError as e:
        logger.error(format_exception_for_cli(e, verbose=args.verbose))
        raise SystemExit(e.code or 2)

    ctx = BuildContext()

    def _on_signal(signum, _frame) -> None:
        logger.warning("Received signal %d; cancelling build...", signum)
        ctx.cancel(f"interrupted by signal {signum}")

    signal.signal(signal.SIGINT, _on_signal)
    signal.signal(signal.SIGTERM, _on_signal)

    try:
        Builder(logger, cfg).run(ctx)
        rc = 0
    except Fatal as e:
        logger.error(format_exception_for_cli(e, verbose=args.verbose))
        rc = e.code
    except Exception as e:
        logger.error("💥 UNHANDLED %s: %s", type(e).__name__, e)
        logger.debug(traceback.format_exc())
        rc = 1

    raise SystemExit(rc)


if __name__ == "__main__":
    main(sys.argv[1:])
