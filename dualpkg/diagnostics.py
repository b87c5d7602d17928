# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Common diagnostic structure for compiler passes.

The compiler service reports type-check and emission problems as a list of
`Diagnostic` objects. An empty list means success; anything else aborts the
build after every diagnostic has been rendered.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional


@dataclass(frozen=True)
class Span:
	"""Best-effort source location (file/line/column are 1-based when known)."""

	file: Optional[str] = None
	line: Optional[int] = None
	column: Optional[int] = None


@dataclass(frozen=True)
class Diagnostic:
	"""Represents a compiler diagnostic (error/warning/etc.)."""

	message: str
	code: str | None = None
	# Pass that produced the diagnostic: "typecheck", "emit-types", "emit-esm",
	# "emit-cjs". Filled in by the adapter when the service leaves it empty.
	phase: str | None = None
	severity: str = "error"
	span: Span = field(default_factory=Span)
	notes: tuple[str, ...] = ()


def format_diagnostic(diag: Diagnostic) -> str:
	"""
	Render a diagnostic for humans.

	Shape: `file:line:column: severity: [code] message`, followed by one
	indented line per note. Unknown location parts render as `?`.
	"""
	file = diag.span.file or "<unknown>"
	line = diag.span.line if diag.span.line is not None else "?"
	column = diag.span.column if diag.span.column is not None else "?"
	code = f"[{diag.code}] " if diag.code else ""
	lines = [f"{file}:{line}:{column}: {diag.severity}: {code}{diag.message}"]
	for note in diag.notes:
		lines.append(f"  {note}")
	return "\n".join(lines)


def diagnostic_to_json(diag: Diagnostic) -> dict:
	"""Render a Diagnostic to a structured JSON-friendly dict."""
	return {
		"phase": diag.phase,
		"code": diag.code,
		"message": diag.message,
		"severity": diag.severity,
		"file": diag.span.file,
		"line": diag.span.line,
		"column": diag.span.column,
		"notes": list(diag.notes),
	}


__all__ = ["Span", "Diagnostic", "format_diagnostic", "diagnostic_to_json"]
