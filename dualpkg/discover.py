# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Test module discovery.

Follows the source runtime's conventions: a test module is named `test.<ext>`,
`<name>_test.<ext>` or `<name>.test.<ext>` with one of the script extensions
below. `node_modules`, hidden directories and the excluded directories (the
output directory, typically) are not searched.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Iterable

_TEST_FILE_RE = re.compile(r"^(?:.+[._])?test\.(?:ts|tsx|mts|js|mjs|jsx)$")


def is_test_file_name(name: str) -> bool:
	return _TEST_FILE_RE.match(name) is not None


def get_test_file_paths(root_dir: Path, *, exclude_dirs: Iterable[Path] = ()) -> list[str]:
	"""Return file URLs of every test module under `root_dir`, sorted."""
	root = root_dir.resolve()
	excluded = {p.resolve() for p in exclude_dirs}
	found: list[Path] = []
	for dirpath, dirnames, filenames in os.walk(root):
		current = Path(dirpath)
		# Prune in place so os.walk never descends into skipped directories.
		dirnames[:] = sorted(
			d
			for d in dirnames
			if not d.startswith(".") and d != "node_modules" and (current / d).resolve() not in excluded
		)
		for name in sorted(filenames):
			if is_test_file_name(name):
				found.append(current / name)
	return [p.as_uri() for p in sorted(found)]


__all__ = ["get_test_file_paths", "is_test_file_name"]
