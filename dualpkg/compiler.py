# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Compiler service adapter.

The type checker/emitter is an external service: it accepts a set of virtual
source files plus compiler options and returns diagnostics and emitted files.
One build opens a single program over the transformed sources and emits it
three times, changing only the options between passes:

1. declarations only (`declaration=True`, out_dir=<out>/types)
2. ES modules (`declaration=False`, out_dir=<out>/esm)
3. CommonJS (`declaration=False`, `es_module_interop=True`,
   `module="CommonJS"`, out_dir=<out>/cjs)

`TscCompilerService` is the bundled service: it stages the virtual files once
and drives the `tsc` command line for each pass.
"""

from __future__ import annotations

import json
import os
import re
import shutil
import subprocess
import tempfile
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Callable, Protocol, Sequence

from dualpkg.diagnostics import Diagnostic, Span
from dualpkg.errors import ProcessError
from dualpkg.transform import OutputFile

WriteFile = Callable[[Path, str], None]
# Service-side emit callback: (path, text, write_byte_order_mark).
EmitCallback = Callable[[Path, str, bool], None]


@dataclass(frozen=True)
class CompilerOptions:
	out_dir: Path
	declaration: bool = True
	es_module_interop: bool = False
	module: str = "ES2015"
	target: str = "ES2015"
	module_resolution: str = "node"
	allow_js: bool = True
	strip_internal: bool = True
	isolated_modules: bool = True
	use_define_for_class_fields: bool = True
	experimental_decorators: bool = True
	jsx: str = "react"
	jsx_factory: str = "React.createElement"
	jsx_fragment_factory: str = "React.Fragment"
	allow_synthetic_default_imports: bool = True
	# Deprecated in newer compilers; only written when set.
	imports_not_used_as_values: str | None = None

	def to_tsconfig(self) -> dict[str, Any]:
		"""Compiler options in tsconfig.json spelling (out_dir is left to the service)."""
		out: dict[str, Any] = {
			"allowJs": self.allow_js,
			"stripInternal": self.strip_internal,
			"declaration": self.declaration,
			"esModuleInterop": self.es_module_interop,
			"isolatedModules": self.isolated_modules,
			"useDefineForClassFields": self.use_define_for_class_fields,
			"experimentalDecorators": self.experimental_decorators,
			"jsx": self.jsx,
			"jsxFactory": self.jsx_factory,
			"jsxFragmentFactory": self.jsx_fragment_factory,
			"module": self.module,
			"moduleResolution": self.module_resolution,
			"target": self.target,
			"allowSyntheticDefaultImports": self.allow_synthetic_default_imports,
		}
		if self.imports_not_used_as_values is not None:
			out["importsNotUsedAsValues"] = self.imports_not_used_as_values
		return out


class CompilerProgram(Protocol):
	"""A parsed file set; options may change between calls without re-parsing."""

	def diagnostics(self, options: CompilerOptions) -> list[Diagnostic]: ...

	def emit(self, options: CompilerOptions, write: EmitCallback, *, only_declarations: bool) -> list[Diagnostic]: ...

	def close(self) -> None: ...


class CompilerService(Protocol):
	def create_program(self, files: Sequence[OutputFile]) -> CompilerProgram: ...


class CompilerServiceAdapter:
	"""
	Owns one program and the current options for a build.

	All three emission passes go through the same program; `update_options`
	is the only thing that changes between them.
	"""

	def __init__(
		self,
		service: CompilerService,
		files: Sequence[OutputFile],
		options: CompilerOptions,
		*,
		write_file: WriteFile,
	) -> None:
		self._program = service.create_program(list(files))
		self._write_file = write_file
		self.options = options

	def __enter__(self) -> "CompilerServiceAdapter":
		return self

	def __exit__(self, *exc: object) -> None:
		self.close()

	def close(self) -> None:
		self._program.close()

	def update_options(self, **changes: Any) -> None:
		self.options = replace(self.options, **changes)

	def type_check(self) -> list[Diagnostic]:
		return _with_phase(self._program.diagnostics(self.options), "typecheck")

	def emit(self, *, phase: str, only_declarations: bool = False) -> list[Diagnostic]:
		def write(path: Path, text: str, write_byte_order_mark: bool) -> None:
			if write_byte_order_mark:
				text = "\ufeff" + text
			self._write_file(path, text)

		diags = self._program.emit(self.options, write, only_declarations=only_declarations)
		return _with_phase(diags, phase)


def _with_phase(diags: list[Diagnostic], phase: str) -> list[Diagnostic]:
	return [d if d.phase else replace(d, phase=phase) for d in diags]


_TSC_LOCATED_RE = re.compile(
	r"^(?P<file>.+?)\((?P<line>\d+),(?P<column>\d+)\): (?P<severity>error|warning|message) (?P<code>TS\d+): (?P<message>.*)$"
)
_TSC_GLOBAL_RE = re.compile(r"^(?P<severity>error|warning|message) (?P<code>TS\d+): (?P<message>.*)$")


def parse_tsc_output(text: str) -> list[Diagnostic]:
	"""
	Parse `tsc --pretty false` output.

	Each diagnostic starts on its own line; indented lines that follow are
	message-chain details and become notes of the preceding diagnostic.
	"""
	diags: list[Diagnostic] = []
	for line in text.splitlines():
		if not line.strip():
			continue
		m = _TSC_LOCATED_RE.match(line)
		if m is not None:
			diags.append(
				Diagnostic(
					message=m.group("message"),
					code=m.group("code"),
					severity=m.group("severity"),
					span=Span(file=m.group("file"), line=int(m.group("line")), column=int(m.group("column"))),
				)
			)
			continue
		m = _TSC_GLOBAL_RE.match(line)
		if m is not None:
			diags.append(Diagnostic(message=m.group("message"), code=m.group("code"), severity=m.group("severity")))
			continue
		if diags and line[:1].isspace():
			last = diags[-1]
			diags[-1] = replace(last, notes=last.notes + (line.strip(),))
			continue
		diags.append(Diagnostic(message=line.strip()))
	return diags


def _is_semantic(diag: Diagnostic) -> bool:
	# 2xxx: semantic errors, 7xxx: implicit-any family. Reported by the
	# type-check pass; an emit pass only fails on its own diagnostics.
	if diag.code is None or not diag.code.startswith("TS"):
		return False
	n = int(diag.code[2:])
	return 2000 <= n < 3000 or 7000 <= n < 8000


class TscProgram:
	def __init__(self, command: tuple[str, ...], files: Sequence[OutputFile], *, work_root: Path) -> None:
		self._command = command
		work_root.mkdir(parents=True, exist_ok=True)
		# Staged inside the output directory so imports resolve against its
		# node_modules.
		self._stage_dir = Path(tempfile.mkdtemp(prefix=".dualpkg-src-", dir=work_root))
		self._file_names: list[str] = []
		for f in files:
			dest = self._stage_dir / f.path
			dest.parent.mkdir(parents=True, exist_ok=True)
			dest.write_text(f.text, encoding="utf-8")
			self._file_names.append(f.path)

	@property
	def stage_dir(self) -> Path:
		return self._stage_dir

	def _run(self, compiler_options: dict[str, Any]) -> tuple[int, list[Diagnostic]]:
		tsconfig = {"compilerOptions": compiler_options, "files": list(self._file_names)}
		config_path = self._stage_dir / "tsconfig.json"
		config_path.write_text(json.dumps(tsconfig, indent=2, sort_keys=True), encoding="utf-8")
		cmd = [*self._command, "-p", str(config_path), "--pretty", "false"]
		try:
			res = subprocess.run(cmd, cwd=str(self._stage_dir), capture_output=True, text=True, check=False)
		except FileNotFoundError as err:
			raise ProcessError(
				reason_code="COMPILER_NOT_FOUND",
				message=f"compiler command not found: {self._command[0]}",
				command=tuple(cmd),
			) from err
		diags = parse_tsc_output(res.stdout + "\n" + res.stderr)
		if res.returncode != 0 and not diags:
			diags = [Diagnostic(message=f"compiler exited with code {res.returncode}")]
		return res.returncode, diags

	def diagnostics(self, options: CompilerOptions) -> list[Diagnostic]:
		compiler_options = options.to_tsconfig()
		compiler_options["rootDir"] = "."
		compiler_options["noEmit"] = True
		_code, diags = self._run(compiler_options)
		return diags

	def emit(self, options: CompilerOptions, write: EmitCallback, *, only_declarations: bool) -> list[Diagnostic]:
		with tempfile.TemporaryDirectory(prefix=".dualpkg-out-") as tmp:
			compiler_options = options.to_tsconfig()
			compiler_options["rootDir"] = "."
			compiler_options["outDir"] = tmp
			if only_declarations:
				compiler_options["declaration"] = True
				compiler_options["emitDeclarationOnly"] = True
			_code, diags = self._run(compiler_options)
			diags = [d for d in diags if not _is_semantic(d)]
			tmp_root = Path(tmp)
			for dirpath, _dirnames, filenames in os.walk(tmp_root):
				for name in sorted(filenames):
					src = Path(dirpath) / name
					rel = src.relative_to(tmp_root)
					write(options.out_dir / rel, src.read_text(encoding="utf-8"), False)
		return diags

	def close(self) -> None:
		shutil.rmtree(self._stage_dir, ignore_errors=True)


class TscCompilerService:
	"""
	Compiler service backed by the `tsc` command line.

	Without an explicit command, prefers `<work_root>/node_modules/.bin/tsc`
	(installed by the package manager step) and falls back to `tsc` on PATH.
	"""

	def __init__(self, *, work_root: Path, command: Sequence[str] | None = None) -> None:
		self._work_root = work_root
		self._command = tuple(command) if command else None

	def _resolve_command(self) -> tuple[str, ...]:
		if self._command is not None:
			return self._command
		local = self._work_root / "node_modules" / ".bin" / ("tsc.cmd" if os.name == "nt" else "tsc")
		if local.exists():
			return (str(local),)
		found = shutil.which("tsc")
		if found is None:
			raise ProcessError(
				reason_code="COMPILER_NOT_FOUND",
				message="tsc not found (install typescript or set 'compiler' in the build config)",
			)
		return (found,)

	def create_program(self, files: Sequence[OutputFile]) -> TscProgram:
		return TscProgram(self._resolve_command(), files, work_root=self._work_root)


__all__ = [
	"CompilerOptions",
	"CompilerProgram",
	"CompilerService",
	"CompilerServiceAdapter",
	"TscCompilerService",
	"TscProgram",
	"WriteFile",
	"parse_tsc_output",
]
