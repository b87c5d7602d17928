# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from dualpkg.diagnostics import Diagnostic, diagnostic_to_json


@dataclass(frozen=True)
class DualpkgError(Exception):
	"""
	A structured, serializable error for dualpkg builds.

	Every error carries a stable `reason_code` so callers (and `--json`
	consumers) can branch without parsing messages.
	"""

	reason_code: str
	message: str
	path: str | None = None

	def __str__(self) -> str:
		return self.format_human()

	def to_dict(self) -> dict[str, Any]:
		return {
			"kind": self.kind,
			"reason_code": self.reason_code,
			"message": self.message,
			"path": self.path,
		}

	@property
	def kind(self) -> str:
		return "error"

	def format_human(self) -> str:
		parts: list[str] = [f"[{self.reason_code}] {self.message}"]
		if self.path:
			parts.append(f"path={self.path}")
		return " ".join(parts)


@dataclass(frozen=True)
class ConfigurationError(DualpkgError):
	"""Invalid or contradictory build options; raised before any side effect."""

	@property
	def kind(self) -> str:
		return "configuration"


@dataclass(frozen=True)
class DiagnosticError(DualpkgError):
	"""Type-check or emission produced diagnostics (already rendered to the user)."""

	phase: str | None = None
	diagnostics: tuple[Diagnostic, ...] = field(default_factory=tuple)

	@property
	def kind(self) -> str:
		return "diagnostics"

	def to_dict(self) -> dict[str, Any]:
		out = super().to_dict()
		out["phase"] = self.phase
		out["diagnostics"] = [diagnostic_to_json(d) for d in self.diagnostics]
		return out


@dataclass(frozen=True)
class ProcessError(DualpkgError):
	"""An external process (package manager, transformer, compiler) failed."""

	command: tuple[str, ...] = ()
	exit_code: int | None = None

	@property
	def kind(self) -> str:
		return "process"

	def to_dict(self) -> dict[str, Any]:
		out = super().to_dict()
		out["command"] = list(self.command)
		out["exit_code"] = self.exit_code
		return out

	def format_human(self) -> str:
		text = super().format_human()
		if self.exit_code is not None:
			text += f" exit_code={self.exit_code}"
		return text


__all__ = ["DualpkgError", "ConfigurationError", "DiagnosticError", "ProcessError"]
