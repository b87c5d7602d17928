# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Dual-format build orchestration.

Pipeline (strictly sequential; each stage waits for the previous external
call to finish):

transform -> [transform tests] -> package.json/.npmignore -> npm install
   -> [type check] -> emit declarations -> emit ESM -> emit CJS
   -> [generate harness -> npm run test -> delete test files]

Diagnostics and process failures abort the pipeline; files already written
stay on disk. Test failures do not raise: they are reported through
`BuildReport.test_exit_code` because every earlier stage has already
committed its output by the time tests run.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Sequence

from dualpkg.compiler import CompilerOptions, CompilerService, CompilerServiceAdapter, TscCompilerService, WriteFile
from dualpkg.config_v0 import BuildOptions
from dualpkg.diagnostics import Diagnostic, format_diagnostic
from dualpkg.discover import get_test_file_paths
from dualpkg.errors import ConfigurationError, DiagnosticError, ProcessError
from dualpkg.harness import (
	EXIT_HARNESS_CRASHED,
	EXIT_TESTS_FAILED,
	EXIT_TESTS_PASSED,
	generate_test_runner,
	get_test_file_names,
	render_npmignore,
	validate_package_name,
)
from dualpkg.manifest import TEST_RUNNER_FILE_NAME, build_package_json, format_marker_json, render_package_json
from dualpkg.process import NpmPackageManager, PackageManager, run_checked
from dualpkg.shims import ResolvedShims, Shim, resolve_shims
from dualpkg.transform import SubprocessTransformer, Transformer, TransformResult, filter_test_output

logger = logging.getLogger(__name__)

RemoveFile = Callable[[Path], None]


@dataclass
class BuildContext:
	"""
	Mutable state scoped to one build invocation.

	Passed to every stage instead of living at module level, so repeated
	builds in one process never share warning history.
	"""

	out_dir: Path
	logger: logging.Logger
	write_file: WriteFile | None = None
	remove_file: RemoveFile | None = None
	warned_messages: set[str] = field(default_factory=set)
	warnings: list[str] = field(default_factory=list)
	created_directories: set[Path] = field(default_factory=set)
	files_written: list[str] = field(default_factory=list)

	def log(self, message: str) -> None:
		self.logger.info(message)

	def warn_once(self, message: str) -> None:
		if message in self.warned_messages:
			return
		self.warned_messages.add(message)
		self.warnings.append(message)
		self.logger.warning(message)

	def write(self, path: Path, text: str) -> None:
		if self.write_file is not None:
			self.write_file(path, text)
		else:
			directory = path.parent
			if directory not in self.created_directories:
				directory.mkdir(parents=True, exist_ok=True)
				self.created_directories.add(directory)
			path.write_text(text, encoding="utf-8")
		try:
			self.files_written.append(path.relative_to(self.out_dir).as_posix())
		except ValueError:
			self.files_written.append(path.as_posix())

	def remove(self, path: Path) -> None:
		if self.remove_file is not None:
			self.remove_file(path)
		else:
			# Declaration-only test inputs have no emitted .js counterpart.
			path.unlink(missing_ok=True)


@dataclass(frozen=True)
class BuildReport:
	out_dir: str
	warnings: tuple[str, ...]
	files_written: tuple[str, ...]
	tests_ran: bool = False
	test_exit_code: int | None = None

	@property
	def ok(self) -> bool:
		return self.test_exit_code in (None, EXIT_TESTS_PASSED)

	def to_dict(self) -> dict[str, Any]:
		return {
			"ok": self.ok,
			"out_dir": self.out_dir,
			"warnings": list(self.warnings),
			"files_written": list(self.files_written),
			"tests_ran": self.tests_ran,
			"test_exit_code": self.test_exit_code,
		}


def _fail_on_diagnostics(ctx: BuildContext, diags: list[Diagnostic], *, phase: str) -> None:
	"""Render every diagnostic, then abort the build."""
	if not diags:
		return
	for diag in diags:
		ctx.logger.error(format_diagnostic(diag))
	ctx.logger.error(f"Found {len(diags)} diagnostic(s) during {phase}.")
	raise DiagnosticError(
		reason_code="DIAGNOSTICS",
		message=f"{phase} reported {len(diags)} diagnostic(s)",
		path=str(ctx.out_dir),
		phase=phase,
		diagnostics=tuple(diags),
	)


def _transform(
	ctx: BuildContext,
	transformer: Transformer,
	entry_points: Sequence[str],
	opts: BuildOptions,
	shims: Sequence[Shim],
) -> TransformResult:
	result = transformer.transform(
		list(entry_points),
		shim_package_name=opts.shim_package.name,
		specifier_mappings={k: v.name for k, v in opts.mappings.items()},
		shims=list(shims),
	)
	for warning in result.warnings:
		ctx.warn_once(warning)
	return result


def _get_test_output(
	ctx: BuildContext,
	transformer: Transformer,
	opts: BuildOptions,
	dist: TransformResult,
	shims: ResolvedShims,
) -> TransformResult | None:
	root = opts.root_test_dir or Path.cwd()
	test_file_paths = get_test_file_paths(root, exclude_dirs=[opts.out_dir])
	if not test_file_paths:
		ctx.log(f"No test files found under {root}.")
		return None
	ctx.log("Transforming test files...")
	test = _transform(ctx, transformer, [*test_file_paths, *opts.entry_points], opts, shims.test_shims)
	return filter_test_output(dist, test)


def _check_options(opts: BuildOptions, transformer: Transformer | None) -> Transformer:
	if transformer is None:
		if opts.transformer is None:
			raise ConfigurationError(
				reason_code="MISSING_TRANSFORMER",
				message="no transformer configured (set 'transformer' in the build config)",
			)
		transformer = SubprocessTransformer(opts.transformer)
	if opts.test:
		try:
			validate_package_name(opts.shim_package.name)
		except ValueError as err:
			raise ConfigurationError(reason_code="INVALID_SHIM_PACKAGE", message=str(err)) from err
	return transformer


def build_v0(
	opts: BuildOptions,
	*,
	transformer: Transformer | None = None,
	compiler: CompilerService | None = None,
	package_manager: PackageManager | None = None,
	write_file: WriteFile | None = None,
	remove_file: RemoveFile | None = None,
	log: logging.Logger | None = None,
) -> BuildReport:
	"""Emit the configured module graph as a dual-format npm package."""
	try:
		shims = resolve_shims(opts.shims)
	except ValueError as err:
		raise ConfigurationError(reason_code="INVALID_SHIMS", message=str(err)) from err
	transformer = _check_options(opts, transformer)
	ctx = BuildContext(
		out_dir=opts.out_dir,
		logger=log or logger,
		write_file=write_file,
		remove_file=remove_file,
	)
	package_manager = package_manager or NpmPackageManager()
	compiler = compiler or TscCompilerService(work_root=opts.out_dir, command=opts.compiler)

	ctx.log("Transforming...")
	dist = _transform(ctx, transformer, opts.entry_points, opts, shims.dist_shims)
	if not dist.entry_points:
		raise ProcessError(reason_code="TRANSFORM_OUTPUT_INVALID", message="transformer returned no entry points")
	if shims.dist_shims and not dist.shim_used:
		names = ", ".join(s.package.name for s in shims.dist_shims)
		ctx.warn_once(f"Shims were configured ({names}) but the transformed code never used them.")

	test_output: TransformResult | None = None
	if opts.test:
		test_output = _get_test_output(ctx, transformer, opts, dist, shims)

	for specifier, mapping in opts.mappings.items():
		if mapping.version is None:
			ctx.warn_once(f"Mapping for '{specifier}' to '{mapping.name}' has no version; not added to dependencies.")
	package_json = build_package_json(dist, test_output, opts, shims)
	ctx.write(opts.out_dir / "package.json", render_package_json(package_json))
	if test_output is not None:
		ctx.write(opts.out_dir / ".npmignore", render_npmignore(test_output))

	# Dependencies must be installed before the compiler can resolve imports.
	ctx.log("Running npm install...")
	run_checked(package_manager, ["install"], cwd=opts.out_dir)

	ctx.log("Building TypeScript project...")
	types_out_dir = opts.out_dir / "types"
	esm_out_dir = opts.out_dir / "esm"
	cjs_out_dir = opts.out_dir / "cjs"
	files = [*dist.files, *(test_output.files if test_output is not None else ())]
	with CompilerServiceAdapter(compiler, files, CompilerOptions(out_dir=types_out_dir), write_file=ctx.write) as program:
		if opts.type_check:
			ctx.log("Type checking...")
			_fail_on_diagnostics(ctx, program.type_check(), phase="typecheck")

		ctx.log("Emitting declaration files...")
		_fail_on_diagnostics(ctx, program.emit(phase="emit-types", only_declarations=True), phase="emit-types")

		ctx.log("Emitting ESM package...")
		program.update_options(declaration=False, out_dir=esm_out_dir)
		_fail_on_diagnostics(ctx, program.emit(phase="emit-esm"), phase="emit-esm")
		ctx.write(esm_out_dir / "package.json", format_marker_json("module"))

		ctx.log("Emitting CommonJS package...")
		program.update_options(declaration=False, es_module_interop=True, out_dir=cjs_out_dir, module="CommonJS")
		_fail_on_diagnostics(ctx, program.emit(phase="emit-cjs"), phase="emit-cjs")
		ctx.write(cjs_out_dir / "package.json", format_marker_json("commonjs"))

	test_exit_code: int | None = None
	if test_output is not None:
		ctx.log("Running tests...")
		runner = generate_test_runner(
			test_output.entry_points,
			shim_package_name=opts.shim_package.name if test_output.shim_used else None,
		)
		ctx.write(opts.out_dir / TEST_RUNNER_FILE_NAME, runner)
		test_exit_code = package_manager.run(["run", "test"], cwd=opts.out_dir)
		if test_exit_code not in (EXIT_TESTS_PASSED, EXIT_TESTS_FAILED):
			if test_exit_code == EXIT_HARNESS_CRASHED:
				message = "test harness crashed (exit code 2)"
			else:
				message = f"npm run test failed (exit code {test_exit_code})"
			raise ProcessError(
				reason_code="TEST_RUN_FAILED",
				message=message,
				command=("npm", "run", "test"),
				exit_code=test_exit_code,
			)
		if test_exit_code == EXIT_TESTS_FAILED:
			ctx.logger.error("Tests failed.")
		if not opts.keep_test_files:
			for name in get_test_file_names(test_output):
				ctx.remove(opts.out_dir / name)

	ctx.log("Complete!")
	return BuildReport(
		out_dir=str(opts.out_dir),
		warnings=tuple(ctx.warnings),
		files_written=tuple(ctx.files_written),
		tests_ran=test_output is not None,
		test_exit_code=test_exit_code,
	)


__all__ = ["BuildContext", "BuildReport", "build_v0"]
