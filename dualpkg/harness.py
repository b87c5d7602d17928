# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Test harness generation.

The generated `test_runner.js` replays the original test suite against both
emitted trees: for every test entry point it loads the CommonJS build, drains
the registered test definitions, then does the same for the ES module build.
The execution state machine lives in `dualpkg/runtime/test_runner_runtime.js`;
this module only writes the prelude that binds it to a build:

- the definition queue (the shim's `test-internals` export when a shim is
  used, an empty array otherwise)
- the entry-point list

Injected values are validated and written as JSON string literals, never
concatenated into code.

Exit codes of the generated script: 0 all tests passed, 1 at least one test
failed, 2 the harness itself crashed.
"""

from __future__ import annotations

import json
import re
from typing import Iterator, Sequence

from dualpkg.manifest import TEST_RUNNER_FILE_NAME, with_js_extension
from dualpkg.runtime import get_test_runner_runtime
from dualpkg.transform import TransformResult, normalize_rel_path

EXIT_TESTS_PASSED = 0
EXIT_TESTS_FAILED = 1
EXIT_HARNESS_CRASHED = 2

# npm package names, optionally scoped; subpaths are not allowed here.
_PACKAGE_NAME_RE = re.compile(r"^(?:@[a-z0-9~][a-z0-9._~-]*/)?[a-z0-9~][a-z0-9._~-]*$")


def validate_package_name(name: str) -> str:
	if len(name) > 214 or _PACKAGE_NAME_RE.match(name) is None:
		raise ValueError(f"invalid package name for test harness: {name!r}")
	return name


def js_string(value: str) -> str:
	"""Render `value` as a JavaScript string literal."""
	# JSON string literals are valid JS; ensure_ascii also escapes U+2028/U+2029.
	return json.dumps(value, ensure_ascii=True)


class ScriptBuilder:
	"""Line-oriented JavaScript writer with two-space indentation."""

	def __init__(self) -> None:
		self._lines: list[str] = []
		self._depth = 0

	def line(self, text: str = "") -> "ScriptBuilder":
		self._lines.append(("  " * self._depth + text) if text else "")
		return self

	def indent(self) -> "ScriptBuilder":
		self._depth += 1
		return self

	def dedent(self) -> "ScriptBuilder":
		if self._depth == 0:
			raise AssertionError("dedent below zero")
		self._depth -= 1
		return self

	def raw(self, text: str) -> "ScriptBuilder":
		self._lines.extend(text.rstrip("\n").split("\n"))
		return self

	def render(self) -> str:
		return "\n".join(self._lines) + "\n"


def generate_test_runner(entry_points: Sequence[str], *, shim_package_name: str | None) -> str:
	"""
	Build the text of `test_runner.js`.

	`entry_points` are test entry points relative to the emitted trees, in
	transform order (source extensions are rewritten to `.js`).
	`shim_package_name` is None when the tests do not use the shim package.
	"""
	paths = [with_js_extension(normalize_rel_path(e, what="test entry point")) for e in entry_points]

	b = ScriptBuilder()
	b.line("// Generated by dualpkg. Do not edit.")
	b.line('"use strict";')
	b.line()
	if shim_package_name is not None:
		name = validate_package_name(shim_package_name)
		b.line(f"require({js_string(name)});")
		b.line(f"const {{ testDefinitions }} = require({js_string(name + '/test-internals')});")
	else:
		b.line("const testDefinitions = [];")
	b.line()
	b.line("const filePaths = [")
	b.indent()
	for path in paths:
		b.line(f"{js_string(path)},")
	b.dedent()
	b.line("];")
	b.line()
	b.raw(get_test_runner_runtime())
	return b.render()


def get_test_file_names(test_output: TransformResult) -> Iterator[str]:
	"""Output-relative paths produced only for testing (both formats), then the runner."""
	for f in test_output.files:
		path = with_js_extension(f.path)
		yield f"./esm/{path}"
		yield f"./cjs/{path}"
	yield f"./{TEST_RUNNER_FILE_NAME}"


def render_npmignore(test_output: TransformResult) -> str:
	return "\n".join(get_test_file_names(test_output))


__all__ = [
	"EXIT_HARNESS_CRASHED",
	"EXIT_TESTS_FAILED",
	"EXIT_TESTS_PASSED",
	"ScriptBuilder",
	"generate_test_runner",
	"get_test_file_names",
	"js_string",
	"render_npmignore",
	"validate_package_name",
]
