# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
from __future__ import annotations

import json
from pathlib import Path

import pytest

from dualpkg.config_v0 import DEFAULT_SHIM_PACKAGE, load_build_config_v0, parse_build_config_v0, resolve_locator
from dualpkg.errors import ConfigurationError
from dualpkg.shims import ScopedTest, ShimValue


def _base(**overrides: object) -> dict:
	obj = {
		"format": "dualpkg-build",
		"version": 0,
		"entry_points": ["mod.ts"],
		"out_dir": "npm",
		"package": {"name": "pkg", "version": "0.1.0"},
	}
	obj.update(overrides)
	return obj


def _write_file(path: Path, text: str) -> None:
	path.parent.mkdir(parents=True, exist_ok=True)
	path.write_text(text, encoding="utf-8")


def test_minimal_config_defaults(tmp_path: Path) -> None:
	opts = parse_build_config_v0(_base(), base_dir=tmp_path)
	assert opts.entry_points == ((tmp_path / "mod.ts").resolve().as_uri(),)
	assert opts.out_dir == (tmp_path / "npm").resolve()
	assert opts.type_check is False
	assert opts.test is False
	assert opts.shim_package == DEFAULT_SHIM_PACKAGE
	assert opts.shims.deno is ShimValue.OFF
	assert opts.transformer is None


def test_urls_pass_through_resolve_locator(tmp_path: Path) -> None:
	assert resolve_locator("https://deno.land/x/mod.ts", base_dir=tmp_path) == "https://deno.land/x/mod.ts"
	assert resolve_locator("HTTP://example.com/a.ts", base_dir=tmp_path) == "HTTP://example.com/a.ts"
	assert resolve_locator("src/a.ts", base_dir=tmp_path) == (tmp_path / "src" / "a.ts").resolve().as_uri()


def test_shim_values_parse(tmp_path: Path) -> None:
	opts = parse_build_config_v0(
		_base(shims={"deno": {"test": "dev"}, "timers": "dev", "undici": True, "blob": False}),
		base_dir=tmp_path,
	)
	assert opts.shims.deno == ScopedTest(ShimValue.TEST_ONLY)
	assert opts.shims.timers is ShimValue.TEST_ONLY
	assert opts.shims.undici is ShimValue.ON
	assert opts.shims.blob is ShimValue.OFF


def test_custom_shims_parse(tmp_path: Path) -> None:
	opts = parse_build_config_v0(
		_base(
			shims={
				"custom": [
					{
						"package": {"name": "my-shim", "version": "^1.0.0"},
						"global_names": ["Thing", {"name": "ThingType", "type_only": True}],
					}
				],
			}
		),
		base_dir=tmp_path,
	)
	shim = opts.shims.custom[0]
	assert shim.package.name == "my-shim"
	assert [g.name for g in shim.global_names] == ["Thing", "ThingType"]
	assert shim.global_names[1].type_only is True


def test_mapping_keys_are_resolved(tmp_path: Path) -> None:
	opts = parse_build_config_v0(
		_base(mappings={"https://x/mod.ts": {"name": "x", "version": "^1.0.0"}, "local.ts": {"name": "y"}}),
		base_dir=tmp_path,
	)
	assert opts.mappings["https://x/mod.ts"].version == "^1.0.0"
	local = (tmp_path / "local.ts").resolve().as_uri()
	assert opts.mappings[local].name == "y"
	assert opts.mappings[local].version is None


@pytest.mark.parametrize(
	("overrides", "message"),
	[
		({"version": 1}, "unsupported build config format/version"),
		({"bogus": 1}, "unknown top-level fields: bogus"),
		({"entry_points": []}, "'entry_points' must be a non-empty list"),
		({"keep_test_files": True}, "'keep_test_files' requires 'test'"),
		({"root_test_dir": "tests"}, "'root_test_dir' requires 'test'"),
		({"type_check": "yes"}, "'type_check' must be a boolean"),
		({"package": {"name": "pkg"}}, "package.version must be a non-empty string"),
		({"package": {"name": "pkg", "version": "1", "dependencies": {"a": 1}}}, "package.dependencies must be an object of strings"),
		({"shims": {"timers": {"test": True}}}, "shims.timers does not accept an object value"),
		({"shims": {"deno": "sometimes"}}, "shims.deno must be true, false or \"dev\""),
		({"shims": {"fs": True}}, "'shims' has unknown fields: fs"),
		({"transformer": []}, "'transformer' must be a non-empty list of strings"),
		({"x": []}, "top-level 'x' must be an object"),
	],
)
def test_invalid_configs_are_rejected(tmp_path: Path, overrides: dict, message: str) -> None:
	with pytest.raises(ValueError, match=message.replace("(", r"\(").replace(")", r"\)")):
		parse_build_config_v0(_base(**overrides), base_dir=tmp_path)


def test_extension_object_is_ignored(tmp_path: Path) -> None:
	opts = parse_build_config_v0(_base(x={"anything": [1, 2]}), base_dir=tmp_path)
	assert opts.package["name"] == "pkg"


def test_load_resolves_relative_to_config_file(tmp_path: Path) -> None:
	cfg = tmp_path / "proj" / "dualpkg.json"
	_write_file(cfg, json.dumps(_base(test=True, root_test_dir="tests", transformer=["node", "t.js"])))
	opts = load_build_config_v0(cfg)
	assert opts.out_dir == (tmp_path / "proj" / "npm").resolve()
	assert opts.root_test_dir == (tmp_path / "proj" / "tests").resolve()
	assert opts.transformer == ("node", "t.js")


def test_load_missing_file(tmp_path: Path) -> None:
	with pytest.raises(ConfigurationError) as exc:
		load_build_config_v0(tmp_path / "missing.json")
	assert exc.value.reason_code == "CONFIG_MISSING"


def test_load_invalid_json(tmp_path: Path) -> None:
	cfg = tmp_path / "dualpkg.json"
	_write_file(cfg, "{not json")
	with pytest.raises(ConfigurationError) as exc:
		load_build_config_v0(cfg)
	assert exc.value.reason_code == "CONFIG_INVALID_JSON"


def test_load_invalid_config_wraps_value_error(tmp_path: Path) -> None:
	cfg = tmp_path / "dualpkg.json"
	_write_file(cfg, json.dumps(_base(entry_points="mod.ts")))
	with pytest.raises(ConfigurationError) as exc:
		load_build_config_v0(cfg)
	assert exc.value.reason_code == "CONFIG_INVALID"
	assert exc.value.kind == "configuration"
	assert exc.value.path == str(cfg)
	assert "entry_points" in exc.value.message
