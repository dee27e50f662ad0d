"""wpcheck CLI — command-line interface for the verifier.

Commands:
  wpcheck verify <file.py>           — Verify every annotated function
  wpcheck verify <file.py> --dot     — ...and export CFG / basic-path graphs

Exit codes: 0 every function verified, 1 something failed or was
inconclusive, 2 the input could not be read, 130 interrupted.
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from typing import List, Optional

from wpcheck import __version__
from wpcheck.config import ASSERT_MODES, FORMATS, load_config
from wpcheck.dot import export_function
from wpcheck.errors import ConfigError, FrontendError
from wpcheck.formatters import format_report
from wpcheck.verifier import Verifier

EXIT_USAGE = 2


def _fail(message: str) -> int:
    print(f"wpcheck: error: {message}", file=sys.stderr)
    return EXIT_USAGE


def cmd_verify(args: argparse.Namespace) -> int:
    """Verify an annotated Python source file."""
    source_path = args.file
    if not os.path.isfile(source_path):
        return _fail(f"File not found: {source_path}")
    if args.config and not os.path.isfile(args.config):
        return _fail(f"Config file not found: {args.config}")

    try:
        config = load_config(args.config, start_dir=os.path.dirname(os.path.abspath(source_path)))
        config = config.merged(
            timeout_ms=args.timeout,
            workers=args.workers,
            assert_mode=args.assert_mode,
            format=args.format,
            export_dir=args.export_dir,
            include_unannotated=True if args.all_functions else None,
        )
    except ConfigError as e:
        return _fail(str(e))

    verifier = Verifier(config)
    try:
        report = verifier.verify_file(source_path)
    except FrontendError as e:
        return _fail(str(e))

    print(format_report(report, config.format))

    if args.dot:
        for func in report.functions:
            if func.cfg is not None:
                export_function(func.cfg, func.basic_paths, config.export_dir)

    return report.exit_code


def _configure_logging(verbosity: int) -> None:
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG
    logging.basicConfig(
        level=level,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def main(argv: Optional[List[str]] = None) -> None:
    parser = argparse.ArgumentParser(
        prog="wpcheck",
        description="wpcheck — weakest-precondition verifier for annotated Python functions",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # verify
    p_verify = subparsers.add_parser("verify", help="Verify annotated functions in a source file")
    p_verify.add_argument("file", help="Python source file (.py)")
    p_verify.add_argument("--dot", action="store_true", help="Export CFG and basic-path graphs as DOT files")
    p_verify.add_argument("--export-dir", dest="export_dir", help="Root directory for --dot output (default: graphs)")
    p_verify.add_argument("--format", choices=FORMATS, help="Report format (default: text)")
    p_verify.add_argument("--timeout", type=int, metavar="MS", help="Solver timeout per check in milliseconds")
    p_verify.add_argument("--workers", type=int, metavar="N", help="Solver worker threads (0 = auto, 1 = sequential)")
    p_verify.add_argument("--assert-mode", dest="assert_mode", choices=ASSERT_MODES,
                          help="Treat assert as a cut point or as an inline obligation")
    p_verify.add_argument("--config", help="Config file (default: nearest .wpcheckrc.*)")
    p_verify.add_argument("--all-functions", action="store_true", dest="all_functions",
                          help="Also analyse functions without annotations")
    p_verify.add_argument("-v", "--verbose", action="count", default=0, help="-v for info, -vv for debug logging")
    p_verify.set_defaults(func=cmd_verify)

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    _configure_logging(args.verbose)
    sys.exit(args.func(args))


if __name__ == "__main__":
    main()
