# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
from __future__ import annotations

import sys
from pathlib import Path
from typing import Sequence

import pytest

from dualpkg.compiler import (
	CompilerOptions,
	CompilerServiceAdapter,
	EmitCallback,
	TscCompilerService,
	parse_tsc_output,
)
from dualpkg.diagnostics import Diagnostic, Span
from dualpkg.errors import ProcessError
from dualpkg.transform import OutputFile


class FakeProgram:
	def __init__(self, files: Sequence[OutputFile]) -> None:
		self.files = list(files)
		self.calls: list[tuple[str, CompilerOptions, bool]] = []
		self.closed = False
		self.bom = False
		self.emit_diags: list[Diagnostic] = []

	def diagnostics(self, options: CompilerOptions) -> list[Diagnostic]:
		self.calls.append(("diagnostics", options, False))
		return [Diagnostic(message="bad", code="TS2322")]

	def emit(self, options: CompilerOptions, write: EmitCallback, *, only_declarations: bool) -> list[Diagnostic]:
		self.calls.append(("emit", options, only_declarations))
		for f in self.files:
			write(options.out_dir / f.path, f.text, self.bom)
		return list(self.emit_diags)

	def close(self) -> None:
		self.closed = True


class FakeService:
	def __init__(self) -> None:
		self.programs: list[FakeProgram] = []

	def create_program(self, files: Sequence[OutputFile]) -> FakeProgram:
		program = FakeProgram(files)
		self.programs.append(program)
		return program


def test_adapter_reuses_one_program_across_option_changes(tmp_path: Path) -> None:
	service = FakeService()
	written: dict[Path, str] = {}
	files = [OutputFile("mod.ts", "export {};")]
	with CompilerServiceAdapter(service, files, CompilerOptions(out_dir=tmp_path / "types"), write_file=written.__setitem__) as adapter:
		assert adapter.emit(phase="emit-types", only_declarations=True) == []
		adapter.update_options(declaration=False, out_dir=tmp_path / "esm")
		adapter.emit(phase="emit-esm")
		adapter.update_options(declaration=False, es_module_interop=True, out_dir=tmp_path / "cjs", module="CommonJS")
		adapter.emit(phase="emit-cjs")

	assert len(service.programs) == 1
	program = service.programs[0]
	assert program.closed is True
	first, second, third = (c[1] for c in program.calls)
	assert (first.declaration, first.module, program.calls[0][2]) == (True, "ES2015", True)
	assert (second.declaration, second.es_module_interop, second.module) == (False, False, "ES2015")
	assert (third.declaration, third.es_module_interop, third.module) == (False, True, "CommonJS")
	assert sorted(written) == sorted([tmp_path / d / "mod.ts" for d in ("types", "esm", "cjs")])


def test_adapter_prefixes_byte_order_mark(tmp_path: Path) -> None:
	service = FakeService()
	written: dict[Path, str] = {}
	adapter = CompilerServiceAdapter(service, [OutputFile("a.js", "x")], CompilerOptions(out_dir=tmp_path), write_file=written.__setitem__)
	service.programs[0].bom = True
	adapter.emit(phase="emit-esm")
	adapter.close()
	assert written[tmp_path / "a.js"] == "\ufeffx"


def test_adapter_tags_diagnostics_with_phase(tmp_path: Path) -> None:
	service = FakeService()
	adapter = CompilerServiceAdapter(service, [], CompilerOptions(out_dir=tmp_path), write_file=lambda p, t: None)
	assert adapter.type_check()[0].phase == "typecheck"
	service.programs[0].emit_diags = [Diagnostic(message="x", phase="custom"), Diagnostic(message="y")]
	diags = adapter.emit(phase="emit-cjs")
	assert [d.phase for d in diags] == ["custom", "emit-cjs"]
	adapter.close()


def test_to_tsconfig_omits_deprecated_option_unless_set(tmp_path: Path) -> None:
	opts = CompilerOptions(out_dir=tmp_path)
	cfg = opts.to_tsconfig()
	assert "importsNotUsedAsValues" not in cfg
	assert cfg["jsxFactory"] == "React.createElement"
	assert cfg["moduleResolution"] == "node"
	cfg = CompilerOptions(out_dir=tmp_path, imports_not_used_as_values="remove").to_tsconfig()
	assert cfg["importsNotUsedAsValues"] == "remove"


def test_parse_tsc_output() -> None:
	text = "\n".join(
		[
			"mod.ts(3,7): error TS2322: Type 'string' is not assignable to type 'number'.",
			"  The expected type comes from property 'x'.",
			"error TS5023: Unknown compiler option 'foo'.",
			"",
			"something unexpected",
		]
	)
	diags = parse_tsc_output(text)
	assert diags[0] == Diagnostic(
		message="Type 'string' is not assignable to type 'number'.",
		code="TS2322",
		span=Span(file="mod.ts", line=3, column=7),
		notes=("The expected type comes from property 'x'.",),
	)
	assert diags[1] == Diagnostic(message="Unknown compiler option 'foo'.", code="TS5023")
	assert diags[2] == Diagnostic(message="something unexpected")


_FAKE_TSC = '''\
import json
import sys
from pathlib import Path

config_path = Path(sys.argv[sys.argv.index("-p") + 1])
config = json.loads(config_path.read_text(encoding="utf-8"))
opts = config["compilerOptions"]
stage = config_path.parent
failed = False
for name in config["files"]:
	text = (stage / name).read_text(encoding="utf-8")
	if "SEMANTIC" in text:
		print(f"{name}(1,1): error TS2304: Cannot find name 'x'.")
		failed = True
	if "SYNTAX" in text:
		print(f"{name}(1,1): error TS1005: ';' expected.")
		failed = True
	if opts.get("noEmit"):
		continue
	out = Path(opts["outDir"])
	stem = name.rsplit(".", 1)[0]
	if opts.get("emitDeclarationOnly"):
		target = out / (stem + ".d.ts")
		body = "export {};\\n"
	else:
		target = out / (stem + ".js")
		body = "// module=" + opts["module"] + "\\n" + text
	target.parent.mkdir(parents=True, exist_ok=True)
	target.write_text(body, encoding="utf-8")
sys.exit(2 if failed else 0)
'''


def _fake_tsc(tmp_path: Path) -> list[str]:
	script = tmp_path / "fake_tsc.py"
	script.write_text(_FAKE_TSC, encoding="utf-8")
	return [sys.executable, str(script)]


def test_tsc_service_emits_three_trees(tmp_path: Path) -> None:
	out = tmp_path / "npm"
	service = TscCompilerService(work_root=out, command=_fake_tsc(tmp_path))
	written: dict[Path, str] = {}
	files = [OutputFile("mod.ts", "export const x = 1;\n"), OutputFile("deps/a.ts", "export {};\n")]
	with CompilerServiceAdapter(service, files, CompilerOptions(out_dir=out / "types"), write_file=written.__setitem__) as adapter:
		assert adapter.type_check() == []
		assert adapter.emit(phase="emit-types", only_declarations=True) == []
		adapter.update_options(declaration=False, out_dir=out / "esm")
		assert adapter.emit(phase="emit-esm") == []
		adapter.update_options(declaration=False, es_module_interop=True, out_dir=out / "cjs", module="CommonJS")
		assert adapter.emit(phase="emit-cjs") == []

	assert set(written) == {
		out / "types" / "mod.d.ts",
		out / "types" / "deps" / "a.d.ts",
		out / "esm" / "mod.js",
		out / "esm" / "deps" / "a.js",
		out / "cjs" / "mod.js",
		out / "cjs" / "deps" / "a.js",
	}
	assert written[out / "esm" / "mod.js"].startswith("// module=ES2015\n")
	assert written[out / "cjs" / "mod.js"].startswith("// module=CommonJS\n")
	# Staging directory is removed on close.
	assert [p.name for p in out.iterdir() if p.name.startswith(".dualpkg-src-")] == []


def test_tsc_emit_ignores_semantic_diagnostics(tmp_path: Path) -> None:
	out = tmp_path / "npm"
	service = TscCompilerService(work_root=out, command=_fake_tsc(tmp_path))
	files = [OutputFile("mod.ts", "// SEMANTIC\n")]
	with CompilerServiceAdapter(service, files, CompilerOptions(out_dir=out / "esm"), write_file=lambda p, t: None) as adapter:
		diags = adapter.type_check()
		assert [d.code for d in diags] == ["TS2304"]
		assert diags[0].span == Span(file="mod.ts", line=1, column=1)
		assert adapter.emit(phase="emit-esm") == []


def test_tsc_emit_reports_syntax_diagnostics(tmp_path: Path) -> None:
	out = tmp_path / "npm"
	service = TscCompilerService(work_root=out, command=_fake_tsc(tmp_path))
	files = [OutputFile("mod.ts", "// SYNTAX\n")]
	with CompilerServiceAdapter(service, files, CompilerOptions(out_dir=out / "esm"), write_file=lambda p, t: None) as adapter:
		diags = adapter.emit(phase="emit-esm")
	assert [(d.code, d.phase) for d in diags] == [("TS1005", "emit-esm")]


def test_tsc_service_missing_binary(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
	monkeypatch.setattr("dualpkg.compiler.shutil.which", lambda name: None)
	service = TscCompilerService(work_root=tmp_path)
	with pytest.raises(ProcessError) as exc:
		service.create_program([])
	assert exc.value.reason_code == "COMPILER_NOT_FOUND"


def test_tsc_service_prefers_local_install(tmp_path: Path) -> None:
	local = tmp_path / "node_modules" / ".bin" / "tsc"
	local.parent.mkdir(parents=True)
	local.write_text("", encoding="utf-8")
	service = TscCompilerService(work_root=tmp_path)
	assert service._resolve_command() == (str(local),)
