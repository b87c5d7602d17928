# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from dualpkg.build import build_v0
from dualpkg.config_v0 import load_build_config_v0
from dualpkg.errors import DiagnosticError, DualpkgError
from dualpkg.process import NpmPackageManager
from dualpkg.shims import resolve_shims

LOG_FORMAT = "[dualpkg] %(message)s"


def _configure_logging(verbose: bool) -> logging.Handler:
	"""Route the package logger to stderr; stdout stays free for --json output."""
	handler = logging.StreamHandler(sys.stderr)
	handler.setFormatter(logging.Formatter(LOG_FORMAT))
	root = logging.getLogger("dualpkg")
	root.addHandler(handler)
	root.setLevel(logging.DEBUG if verbose else logging.INFO)
	return handler


def _build_parser() -> argparse.ArgumentParser:
	p = argparse.ArgumentParser(prog="dualpkg", description="Build dual-format (ESM + CommonJS) npm packages")
	p.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
	sub = p.add_subparsers(dest="cmd", required=True)

	build = sub.add_parser("build", help="Transform, compile and test a module graph as an npm package")
	build.add_argument(
		"--config",
		type=Path,
		default=Path("dualpkg.json"),
		help="Path to the build config (default: ./dualpkg.json)",
	)
	build.add_argument("--json", action="store_true", help="Emit machine-readable JSON report")

	shims = sub.add_parser("shims", help="Print the resolved dist/test shims for a build config")
	shims.add_argument(
		"--config",
		type=Path,
		default=Path("dualpkg.json"),
		help="Path to the build config (default: ./dualpkg.json)",
	)
	return p


def _print_error(err: DualpkgError, *, as_json: bool) -> None:
	if as_json:
		print(json.dumps({"ok": False, "error": err.to_dict()}, sort_keys=True, separators=(",", ":")))
	else:
		print(err.format_human(), file=sys.stderr)


def main(argv: list[str] | None = None) -> int:
	p = _build_parser()
	args = p.parse_args(argv)
	handler = _configure_logging(bool(args.verbose))
	try:
		return _run(args)
	finally:
		logging.getLogger("dualpkg").removeHandler(handler)


def _run(args: argparse.Namespace) -> int:
	if args.cmd == "shims":
		try:
			opts = load_build_config_v0(args.config)
			resolved = resolve_shims(opts.shims)
		except DualpkgError as err:
			_print_error(err, as_json=False)
			return 2
		except ValueError as err:
			print(f"error: {err}", file=sys.stderr)
			return 2
		obj = {
			"dist_shims": [s.to_dict() for s in resolved.dist_shims],
			"test_shims": [s.to_dict() for s in resolved.test_shims],
		}
		print(json.dumps(obj, indent=2, sort_keys=True))
		return 0

	if args.cmd == "build":
		try:
			opts = load_build_config_v0(args.config)
			# npm output must not mix with the JSON report on stdout.
			report = build_v0(opts, package_manager=NpmPackageManager(stdout_to_stderr=bool(args.json)))
		except DiagnosticError as err:
			_print_error(err, as_json=bool(args.json))
			return 1
		except DualpkgError as err:
			_print_error(err, as_json=bool(args.json))
			return 2
		if args.json:
			print(json.dumps(report.to_dict(), sort_keys=True, separators=(",", ":")))
		return 0 if report.ok else 1

	raise AssertionError("unreachable")


__all__ = ["main"]
