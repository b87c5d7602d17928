# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Package-manager invocation.

Commands run synchronously with the caller's standard streams and the output
directory as cwd; stdout can be sent to stderr instead. A non-zero exit is
reported to the caller as the exit code; `run_checked` turns it into a
`ProcessError`.
"""

from __future__ import annotations

import os
import subprocess
from pathlib import Path
from typing import Protocol, Sequence

from dualpkg.errors import ProcessError

_STDERR_FD = 2


class PackageManager(Protocol):
	def run(self, args: Sequence[str], *, cwd: Path) -> int: ...


class NpmPackageManager:
	"""
	Runs npm in the foreground.

	With `stdout_to_stderr` the child's stdout goes to our stderr, leaving
	stdout to the caller (the CLI's `--json` report).
	"""

	def __init__(self, executable: str = "npm", *, stdout_to_stderr: bool = False) -> None:
		self._executable = executable
		self._stdout_to_stderr = stdout_to_stderr

	def command(self, args: Sequence[str]) -> list[str]:
		cmd = [self._executable, *args]
		if os.name == "nt":
			return ["cmd", "/c", *cmd]
		return cmd

	def run(self, args: Sequence[str], *, cwd: Path) -> int:
		cmd = self.command(args)
		stdout = _STDERR_FD if self._stdout_to_stderr else None
		try:
			res = subprocess.run(cmd, cwd=str(cwd), stdout=stdout, check=False)
		except FileNotFoundError as err:
			raise ProcessError(
				reason_code="PACKAGE_MANAGER_NOT_FOUND",
				message=f"{self._executable} not found",
				command=tuple(cmd),
			) from err
		return res.returncode


def run_checked(manager: PackageManager, args: Sequence[str], *, cwd: Path) -> None:
	code = manager.run(args, cwd=cwd)
	if code != 0:
		raise ProcessError(
			reason_code="PACKAGE_MANAGER_FAILED",
			message=f"npm {' '.join(args)} failed with exit code {code}",
			command=("npm", *args),
			exit_code=code,
		)


__all__ = ["NpmPackageManager", "PackageManager", "run_checked"]
