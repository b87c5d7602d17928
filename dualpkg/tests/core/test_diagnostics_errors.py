# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
from __future__ import annotations

from dualpkg.diagnostics import Diagnostic, Span, diagnostic_to_json, format_diagnostic
from dualpkg.errors import ConfigurationError, DiagnosticError, ProcessError


def test_format_diagnostic_with_location_and_notes() -> None:
	diag = Diagnostic(
		message="Type 'string' is not assignable to type 'number'.",
		code="TS2322",
		span=Span(file="mod.ts", line=3, column=7),
		notes=("Related: x is declared here.",),
	)
	assert format_diagnostic(diag) == (
		"mod.ts:3:7: error: [TS2322] Type 'string' is not assignable to type 'number'.\n"
		"  Related: x is declared here."
	)


def test_format_diagnostic_unknown_location() -> None:
	assert format_diagnostic(Diagnostic(message="boom")) == "<unknown>:?:?: error: boom"


def test_diagnostic_error_to_dict() -> None:
	diag = Diagnostic(message="bad", code="TS1005", phase="emit-esm", span=Span(file="a.ts", line=1, column=2))
	err = DiagnosticError(reason_code="DIAGNOSTICS", message="emit failed", phase="emit-esm", diagnostics=(diag,))
	obj = err.to_dict()
	assert obj["kind"] == "diagnostics"
	assert obj["phase"] == "emit-esm"
	assert obj["diagnostics"] == [diagnostic_to_json(diag)]
	assert obj["diagnostics"][0]["file"] == "a.ts"


def test_process_error_human_and_dict() -> None:
	err = ProcessError(reason_code="PACKAGE_MANAGER_FAILED", message="npm install failed", command=("npm", "install"), exit_code=1)
	assert err.format_human() == "[PACKAGE_MANAGER_FAILED] npm install failed exit_code=1"
	assert str(err) == err.format_human()
	assert err.to_dict()["command"] == ["npm", "install"]
	assert err.kind == "process"


def test_configuration_error_includes_path() -> None:
	err = ConfigurationError(reason_code="CONFIG_INVALID", message="bad", path="dualpkg.json")
	assert err.format_human() == "[CONFIG_INVALID] bad path=dualpkg.json"
	assert err.to_dict() == {"kind": "configuration", "reason_code": "CONFIG_INVALID", "message": "bad", "path": "dualpkg.json"}
