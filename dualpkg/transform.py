# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Module-graph transformer interface.

The transformer rewrites runtime-specific import specifiers and produces the
intermediate source files that get compiled. It is an external collaborator:
dualpkg only depends on the `Transformer` protocol below. The bundled
`SubprocessTransformer` runs a user-configured command and exchanges a pinned
JSON document over stdin/stdout:

request (stdin):
{
  "format": "dualpkg-transform-request",
  "version": 0,
  "entry_points": ["<path or URL>", ...],
  "shim_package_name": "deno.ns",
  "specifier_mappings": {"<specifier>": "<package name>"},
  "shims": [<shim>, ...]
}

response (stdout):
{
  "entry_points": ["mod.ts", ...],
  "files": [{"path": "mod.ts", "text": "..."}],
  "dependencies": [{"name": "...", "version": "..."}],
  "shim_used": true,
  "warnings": ["..."]
}
"""

from __future__ import annotations

import json
import subprocess
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Any, Mapping, Protocol, Sequence

from dualpkg.errors import ProcessError
from dualpkg.shims import Shim


@dataclass(frozen=True)
class OutputFile:
	path: str  # relative POSIX path
	text: str


@dataclass(frozen=True)
class Dependency:
	name: str
	version: str


@dataclass(frozen=True)
class TransformResult:
	entry_points: tuple[str, ...]
	files: tuple[OutputFile, ...]
	dependencies: tuple[Dependency, ...]
	shim_used: bool
	warnings: tuple[str, ...] = ()


class Transformer(Protocol):
	def transform(
		self,
		entry_points: Sequence[str],
		*,
		shim_package_name: str,
		specifier_mappings: Mapping[str, str],
		shims: Sequence[Shim],
	) -> TransformResult: ...


def normalize_rel_path(path_str: str, *, what: str) -> str:
	p = PurePosixPath(path_str.replace("\\", "/"))
	if p.is_absolute():
		raise ValueError(f"{what} must be a relative path, got: {path_str}")
	if not p.parts or str(p) == ".":
		raise ValueError(f"{what} must be non-empty, got: {path_str}")
	if any(part in (".", "..") for part in p.parts):
		raise ValueError(f"{what} must not contain '.' or '..', got: {path_str}")
	return str(p)


def transform_result_from_json(obj: Any) -> TransformResult:
	"""Decode and validate a transformer response document."""
	if not isinstance(obj, dict):
		raise ValueError("transform output must be a JSON object")
	entry_points = obj.get("entry_points")
	if not isinstance(entry_points, list) or any(not isinstance(e, str) for e in entry_points):
		raise ValueError("transform output entry_points must be a list of strings")
	files_raw = obj.get("files")
	if not isinstance(files_raw, list):
		raise ValueError("transform output files must be a list")
	files: list[OutputFile] = []
	for raw in files_raw:
		if not isinstance(raw, dict) or not isinstance(raw.get("path"), str) or not isinstance(raw.get("text"), str):
			raise ValueError("transform output file entries must have string 'path' and 'text'")
		files.append(OutputFile(path=normalize_rel_path(raw["path"], what="transform output file path"), text=raw["text"]))
	deps_raw = obj.get("dependencies") or []
	if not isinstance(deps_raw, list):
		raise ValueError("transform output dependencies must be a list")
	deps: list[Dependency] = []
	for raw in deps_raw:
		if not isinstance(raw, dict) or not isinstance(raw.get("name"), str) or not isinstance(raw.get("version"), str):
			raise ValueError("transform output dependency entries must have string 'name' and 'version'")
		deps.append(Dependency(name=raw["name"], version=raw["version"]))
	warnings_raw = obj.get("warnings") or []
	if not isinstance(warnings_raw, list) or any(not isinstance(w, str) for w in warnings_raw):
		raise ValueError("transform output warnings must be a list of strings")
	return TransformResult(
		entry_points=tuple(normalize_rel_path(e, what="transform output entry point") for e in entry_points),
		files=tuple(files),
		dependencies=tuple(deps),
		shim_used=bool(obj.get("shim_used", False)),
		warnings=tuple(warnings_raw),
	)


class SubprocessTransformer:
	"""Runs an external transformer command speaking the JSON wire format."""

	def __init__(self, command: Sequence[str], *, cwd: str | None = None) -> None:
		if not command:
			raise ValueError("transformer command must not be empty")
		self._command = tuple(command)
		self._cwd = cwd

	def transform(
		self,
		entry_points: Sequence[str],
		*,
		shim_package_name: str,
		specifier_mappings: Mapping[str, str],
		shims: Sequence[Shim],
	) -> TransformResult:
		request = {
			"format": "dualpkg-transform-request",
			"version": 0,
			"entry_points": list(entry_points),
			"shim_package_name": shim_package_name,
			"specifier_mappings": dict(specifier_mappings),
			"shims": [s.to_dict() for s in shims],
		}
		try:
			res = subprocess.run(
				list(self._command),
				input=json.dumps(request, sort_keys=True),
				capture_output=True,
				text=True,
				cwd=self._cwd,
				check=False,
			)
		except FileNotFoundError as err:
			raise ProcessError(
				reason_code="TRANSFORMER_NOT_FOUND",
				message=f"transformer command not found: {self._command[0]}",
				command=self._command,
			) from err
		if res.returncode != 0:
			detail = res.stderr.strip()
			raise ProcessError(
				reason_code="TRANSFORM_FAILED",
				message=f"transformer failed{': ' + detail if detail else ''}",
				command=self._command,
				exit_code=res.returncode,
			)
		try:
			return transform_result_from_json(json.loads(res.stdout))
		except ValueError as err:
			# json.JSONDecodeError is a ValueError too.
			raise ProcessError(
				reason_code="TRANSFORM_OUTPUT_INVALID",
				message=f"transformer produced invalid output: {err}",
				command=self._command,
				exit_code=res.returncode,
			) from err


def filter_test_output(dist: TransformResult, test: TransformResult) -> TransformResult | None:
	"""
	Strip everything the distributed build already provides from a test
	transform result.

	The test transform runs over test files plus the distributed entry points,
	so its output is a superset. Returns None when no test-only file remains.
	"""
	dist_paths = {f.path for f in dist.files}
	files = tuple(f for f in test.files if f.path not in dist_paths)
	if not files:
		return None
	dist_entry_points = set(dist.entry_points)
	dist_dep_names = {d.name for d in dist.dependencies}
	return TransformResult(
		entry_points=tuple(e for e in test.entry_points if e not in dist_entry_points),
		files=files,
		dependencies=tuple(d for d in test.dependencies if d.name not in dist_dep_names),
		shim_used=test.shim_used,
		warnings=test.warnings,
	)


__all__ = [
	"Dependency",
	"OutputFile",
	"SubprocessTransformer",
	"TransformResult",
	"Transformer",
	"filter_test_output",
	"normalize_rel_path",
	"transform_result_from_json",
]
