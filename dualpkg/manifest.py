# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
package.json synthesis.

The manifest is a pure function of the transform output, the (optional) test
transform output and the build options: rebuilding from identical inputs
yields byte-identical text. Merge precedence is "later wins" on name
collisions; see `build_package_json`.
"""

from __future__ import annotations

import json
import re
from typing import Any, Iterable, Mapping

from dualpkg.config_v0 import BuildOptions
from dualpkg.shims import ResolvedShims, shim_dependencies
from dualpkg.transform import Dependency, TransformResult

TEST_RUNNER_FILE_NAME = "test_runner.js"
TEST_SCRIPT = f"node {TEST_RUNNER_FILE_NAME}"

_SOURCE_EXT_RE = re.compile(r"\.(?:ts|tsx|js|jsx)$", re.IGNORECASE)


def with_js_extension(path: str) -> str:
	return _SOURCE_EXT_RE.sub("", path) + ".js"


def with_dts_extension(path: str) -> str:
	return _SOURCE_EXT_RE.sub("", path) + ".d.ts"


def _deps_map(deps: Iterable[Dependency]) -> dict[str, str]:
	return {d.name: d.version for d in deps}


def _sorted_map(obj: Mapping[str, str]) -> dict[str, str]:
	return {k: obj[k] for k in sorted(obj)}


def build_dependencies(
	transform: TransformResult,
	options: BuildOptions,
	shims: ResolvedShims | None = None,
) -> dict[str, str]:
	"""
	Runtime dependencies, lowest precedence first:
	active shim packages → transform dependencies → versioned specifier
	mappings → shim package (only if the transform used it) → user overrides.
	"""
	deps: dict[str, str] = {}
	if shims is not None:
		deps.update(shim_dependencies(shims.dist_shims))
	deps.update(_deps_map(transform.dependencies))
	for mapping in options.mappings.values():
		if mapping.version is not None:
			deps[mapping.name] = mapping.version
	if transform.shim_used and options.shim_package.version is not None:
		deps[options.shim_package.name] = options.shim_package.version
	deps.update(options.package.get("dependencies") or {})
	return _sorted_map(deps)


def build_dev_dependencies(
	test_output: TransformResult | None,
	dependencies: Mapping[str, str],
	options: BuildOptions,
	shims: ResolvedShims | None = None,
) -> dict[str, str] | None:
	"""
	Dev dependencies, only computed when tests exist; packages that are
	already runtime dependencies never show up here.
	"""
	user_dev = options.package.get("devDependencies")
	if test_output is None:
		return dict(user_dev) if user_dev is not None else None
	dev: dict[str, str] = {}
	if shims is not None:
		for name, version in shim_dependencies(shims.test_shims).items():
			if name not in dependencies:
				dev[name] = version
	dev.update(_deps_map(test_output.dependencies))
	shim_name = options.shim_package.name
	if test_output.shim_used and shim_name not in dependencies and options.shim_package.version is not None:
		dev[shim_name] = options.shim_package.version
	dev.update(user_dev or {})
	return _sorted_map(dev)


def build_package_json(
	transform: TransformResult,
	test_output: TransformResult | None,
	options: BuildOptions,
	shims: ResolvedShims | None = None,
) -> dict[str, Any]:
	"""
	Assemble the package manifest.

	Field order: user template fields first (in their order), then `module`,
	`main`, `types`, `exports`, `scripts`, `dependencies`, `devDependencies`.
	User-supplied `module`/`main`/`types`/`exports["."]` win outright.
	"""
	if not transform.entry_points:
		raise ValueError("transform produced no entry points")
	template = options.package
	entry = transform.entry_points[0]
	entry_js = with_js_extension(entry)
	entry_dts = with_dts_extension(entry)

	module = template.get("module", f"./esm/{entry_js}")
	main = template.get("main", f"./cjs/{entry_js}")
	types = template.get("types", f"./types/{entry_dts}")

	user_exports = dict(template.get("exports") or {})
	root_export = user_exports.pop(".", None)
	if root_export is None:
		root_export = {
			"import": f"./esm/{entry_js}",
			"require": f"./cjs/{entry_js}",
			"types": types,
		}
	exports = {".": root_export, **user_exports}

	dependencies = build_dependencies(transform, options, shims)
	dev_dependencies = build_dev_dependencies(test_output, dependencies, options, shims)

	user_scripts = template.get("scripts")
	scripts: dict[str, str] | None
	if test_output is not None:
		scripts = {"test": TEST_SCRIPT}
		scripts.update(user_scripts or {})
	else:
		scripts = dict(user_scripts) if user_scripts is not None else None

	obj: dict[str, Any] = dict(template)
	for key in ("module", "main", "types", "exports", "scripts", "dependencies", "devDependencies"):
		obj.pop(key, None)
	obj["module"] = module
	obj["main"] = main
	obj["types"] = types
	obj["exports"] = exports
	if scripts is not None:
		obj["scripts"] = scripts
	obj["dependencies"] = dependencies
	if dev_dependencies is not None:
		obj["devDependencies"] = dev_dependencies
	return obj


def render_package_json(obj: Mapping[str, Any]) -> str:
	return json.dumps(obj, indent=2, ensure_ascii=False) + "\n"


def format_marker_json(module_type: str) -> str:
	"""Per-format marker written at the root of the esm/ and cjs/ trees."""
	return json.dumps({"type": module_type}, indent=2) + "\n"


__all__ = [
	"TEST_RUNNER_FILE_NAME",
	"TEST_SCRIPT",
	"build_dependencies",
	"build_dev_dependencies",
	"build_package_json",
	"format_marker_json",
	"render_package_json",
	"with_dts_extension",
	"with_js_extension",
]
