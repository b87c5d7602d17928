# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Build configuration file (v0).

Format (pinned for v0, JSON):
{
  "format": "dualpkg-build",
  "version": 0,
  "entry_points": ["mod.ts"],
  "out_dir": "npm",
  "type_check": true,                  // optional, default false
  "test": true,                        // optional, default false
  "keep_test_files": false,            // optional, requires "test"
  "root_test_dir": ".",                // optional, requires "test"
  "shims": {
    "deno": true | false | "dev" | {"test": true | "dev"},
    "blob" | "crypto" | "prompts" | "timers" | "undici": true | false | "dev",
    "custom": [<shim>, ...],
    "custom_dev": [<shim>, ...]
  },
  "shim_package": {"name": "deno.ns", "version": "0.5.0"},
  "mappings": {"<specifier>": {"name": "<package>", "version": "<range>"}},
  "package": {"name": "...", "version": "...", ...},   // package.json template
  "transformer": ["<cmd>", "<arg>", ...],
  "compiler": ["tsc"],                 // optional
  "x": {}                              // optional, ignored extension object
}

<shim> = {"package": {"name": "...", "version": "..."}, "global_names": ["Foo", {"name": "Bar", "type_only": true}]}

Relative paths are resolved against the directory holding the config file.
Validation happens entirely up front: a bad config never produces output.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

from dualpkg.errors import ConfigurationError
from dualpkg.shims import CAPABILITIES, GlobalName, ScopedTest, Shim, ShimOption, ShimOptions, ShimPackage, ShimValue

DEFAULT_SHIM_PACKAGE = ShimPackage(name="deno.ns", version="0.5.0")

_ALLOWED_TOP = {
	"format",
	"version",
	"entry_points",
	"out_dir",
	"type_check",
	"test",
	"keep_test_files",
	"root_test_dir",
	"shims",
	"shim_package",
	"mappings",
	"package",
	"transformer",
	"compiler",
	"x",
}


@dataclass(frozen=True)
class SpecifierMapping:
	name: str
	# Without a version the mapped package is left out of package.json.
	version: str | None = None


@dataclass(frozen=True)
class BuildOptions:
	entry_points: tuple[str, ...]
	out_dir: Path
	package: Mapping[str, Any]
	type_check: bool = False
	test: bool = False
	keep_test_files: bool = False
	root_test_dir: Path | None = None
	shims: ShimOptions = field(default_factory=ShimOptions)
	shim_package: ShimPackage = DEFAULT_SHIM_PACKAGE
	mappings: Mapping[str, SpecifierMapping] = field(default_factory=dict)
	transformer: tuple[str, ...] | None = None
	compiler: tuple[str, ...] | None = None


def _is_url(text: str) -> bool:
	lowered = text.lower()
	return lowered.startswith("http://") or lowered.startswith("https://") or lowered.startswith("file://")


def resolve_locator(text: str, *, base_dir: Path) -> str:
	"""Turn a local path into an absolute file URL; URLs pass through unchanged."""
	if _is_url(text):
		return text
	return (base_dir / text).resolve().as_uri()


def _expect_bool(obj: Mapping[str, Any], key: str, default: bool) -> bool:
	value = obj.get(key, default)
	if not isinstance(value, bool):
		raise ValueError(f"'{key}' must be a boolean")
	return value


def _expect_str(value: Any, *, what: str) -> str:
	if not isinstance(value, str) or not value:
		raise ValueError(f"{what} must be a non-empty string")
	return value


def _expect_command(value: Any, *, what: str) -> tuple[str, ...]:
	if not isinstance(value, list) or not value or any(not isinstance(v, str) or not v for v in value):
		raise ValueError(f"{what} must be a non-empty list of strings")
	return tuple(value)


def _parse_shim_value(value: Any, *, what: str) -> ShimValue:
	if value is True:
		return ShimValue.ON
	if value is False or value is None:
		return ShimValue.OFF
	if value == "dev":
		return ShimValue.TEST_ONLY
	raise ValueError(f"{what} must be true, false or \"dev\", got: {json.dumps(value)}")


def _parse_shim_option(capability: str, value: Any) -> ShimOption:
	if isinstance(value, dict):
		if capability != "deno":
			raise ValueError(f"shims.{capability} does not accept an object value")
		unknown = sorted(set(value.keys()) - {"test"})
		if unknown:
			raise ValueError(f"shims.deno has unknown fields: {', '.join(unknown)}")
		return ScopedTest(_parse_shim_value(value.get("test", False), what="shims.deno.test"))
	return _parse_shim_value(value, what=f"shims.{capability}")


def parse_shim(raw: Any, *, what: str) -> Shim:
	if not isinstance(raw, dict):
		raise ValueError(f"{what} must be an object")
	pkg_raw = raw.get("package")
	if not isinstance(pkg_raw, dict):
		raise ValueError(f"{what}.package must be an object")
	name = _expect_str(pkg_raw.get("name"), what=f"{what}.package.name")
	version = pkg_raw.get("version")
	if version is not None:
		version = _expect_str(version, what=f"{what}.package.version")
	names_raw = raw.get("global_names")
	if not isinstance(names_raw, list) or not names_raw:
		raise ValueError(f"{what}.global_names must be a non-empty list")
	names: list[GlobalName] = []
	for item in names_raw:
		if isinstance(item, str) and item:
			names.append(GlobalName(name=item))
		elif isinstance(item, dict):
			names.append(
				GlobalName(
					name=_expect_str(item.get("name"), what=f"{what}.global_names[].name"),
					type_only=bool(item.get("type_only", False)),
				)
			)
		else:
			raise ValueError(f"{what}.global_names entries must be strings or objects")
	return Shim(package=ShimPackage(name=name, version=version), global_names=tuple(names))


def parse_shim_options(raw: Any) -> ShimOptions:
	if raw is None:
		return ShimOptions()
	if not isinstance(raw, dict):
		raise ValueError("'shims' must be an object")
	unknown = sorted(set(raw.keys()) - set(CAPABILITIES) - {"custom", "custom_dev"})
	if unknown:
		raise ValueError(f"'shims' has unknown fields: {', '.join(unknown)}")
	options: dict[str, Any] = {}
	for capability in CAPABILITIES:
		if capability in raw:
			options[capability] = _parse_shim_option(capability, raw[capability])
	for key in ("custom", "custom_dev"):
		items = raw.get(key) or []
		if not isinstance(items, list):
			raise ValueError(f"shims.{key} must be a list")
		options[key] = tuple(parse_shim(item, what=f"shims.{key}[{i}]") for i, item in enumerate(items))
	return ShimOptions(**options)


def _parse_string_map(obj: Mapping[str, Any], key: str) -> None:
	value = obj.get(key)
	if value is None:
		return
	if not isinstance(value, dict) or any(not isinstance(k, str) or not isinstance(v, str) for k, v in value.items()):
		raise ValueError(f"package.{key} must be an object of strings")


def _parse_package(raw: Any) -> dict[str, Any]:
	if not isinstance(raw, dict):
		raise ValueError("'package' must be an object")
	_expect_str(raw.get("name"), what="package.name")
	_expect_str(raw.get("version"), what="package.version")
	for key in ("dependencies", "devDependencies", "scripts"):
		_parse_string_map(raw, key)
	exports = raw.get("exports")
	if exports is not None and not isinstance(exports, dict):
		raise ValueError("package.exports must be an object")
	return dict(raw)


def _parse_mappings(raw: Any, *, base_dir: Path) -> dict[str, SpecifierMapping]:
	if raw is None:
		return {}
	if not isinstance(raw, dict):
		raise ValueError("'mappings' must be an object")
	out: dict[str, SpecifierMapping] = {}
	for specifier, value in raw.items():
		if not isinstance(value, dict):
			raise ValueError(f"mappings['{specifier}'] must be an object")
		unknown = sorted(set(value.keys()) - {"name", "version"})
		if unknown:
			raise ValueError(f"mappings['{specifier}'] has unknown fields: {', '.join(unknown)}")
		name = _expect_str(value.get("name"), what=f"mappings['{specifier}'].name")
		version = value.get("version")
		if version is not None:
			version = _expect_str(version, what=f"mappings['{specifier}'].version")
		out[resolve_locator(specifier, base_dir=base_dir)] = SpecifierMapping(name=name, version=version)
	return out


def parse_build_config_v0(obj: Any, *, base_dir: Path) -> BuildOptions:
	"""
	Validate a decoded config document and build `BuildOptions`.

	Raises ValueError with a message naming the offending field.
	"""
	if not isinstance(obj, dict):
		raise ValueError("build config must be a JSON object")
	if obj.get("format") != "dualpkg-build" or obj.get("version") != 0:
		raise ValueError("unsupported build config format/version (upgrade dualpkg?)")
	unknown_top = sorted(set(obj.keys()) - _ALLOWED_TOP)
	if unknown_top:
		raise ValueError(f"build config has unknown top-level fields: {', '.join(unknown_top)}")
	if "x" in obj and not isinstance(obj.get("x"), dict):
		raise ValueError("build config top-level 'x' must be an object")

	entry_points_raw = obj.get("entry_points")
	if not isinstance(entry_points_raw, list) or not entry_points_raw:
		raise ValueError("'entry_points' must be a non-empty list")
	entry_points = tuple(
		resolve_locator(_expect_str(e, what="entry_points[]"), base_dir=base_dir) for e in entry_points_raw
	)
	out_dir = (base_dir / _expect_str(obj.get("out_dir"), what="'out_dir'")).resolve()

	test = _expect_bool(obj, "test", False)
	keep_test_files = _expect_bool(obj, "keep_test_files", False)
	if keep_test_files and not test:
		raise ValueError("'keep_test_files' requires 'test' to be enabled")
	root_test_dir: Path | None = None
	if obj.get("root_test_dir") is not None:
		if not test:
			raise ValueError("'root_test_dir' requires 'test' to be enabled")
		root_test_dir = (base_dir / _expect_str(obj["root_test_dir"], what="'root_test_dir'")).resolve()

	shim_package = DEFAULT_SHIM_PACKAGE
	if obj.get("shim_package") is not None:
		sp = obj["shim_package"]
		if not isinstance(sp, dict):
			raise ValueError("'shim_package' must be an object")
		shim_package = ShimPackage(
			name=_expect_str(sp.get("name"), what="shim_package.name"),
			version=_expect_str(sp.get("version"), what="shim_package.version"),
		)

	transformer = None
	if obj.get("transformer") is not None:
		transformer = _expect_command(obj["transformer"], what="'transformer'")
	compiler = None
	if obj.get("compiler") is not None:
		compiler = _expect_command(obj["compiler"], what="'compiler'")

	return BuildOptions(
		entry_points=entry_points,
		out_dir=out_dir,
		package=_parse_package(obj.get("package")),
		type_check=_expect_bool(obj, "type_check", False),
		test=test,
		keep_test_files=keep_test_files,
		root_test_dir=root_test_dir,
		shims=parse_shim_options(obj.get("shims")),
		shim_package=shim_package,
		mappings=_parse_mappings(obj.get("mappings"), base_dir=base_dir),
		transformer=transformer,
		compiler=compiler,
	)


def load_build_config_v0(path: Path) -> BuildOptions:
	"""Load and validate a build config file, raising ConfigurationError on any problem."""
	try:
		obj = json.loads(path.read_text(encoding="utf-8"))
	except FileNotFoundError as err:
		raise ConfigurationError(reason_code="CONFIG_MISSING", message="build config not found", path=str(path)) from err
	except json.JSONDecodeError as err:
		raise ConfigurationError(reason_code="CONFIG_INVALID_JSON", message=str(err), path=str(path)) from err
	try:
		return parse_build_config_v0(obj, base_dir=path.resolve().parent)
	except ValueError as err:
		raise ConfigurationError(reason_code="CONFIG_INVALID", message=str(err), path=str(path)) from err


__all__ = [
	"BuildOptions",
	"DEFAULT_SHIM_PACKAGE",
	"SpecifierMapping",
	"load_build_config_v0",
	"parse_build_config_v0",
	"parse_shim",
	"parse_shim_options",
	"resolve_locator",
]
