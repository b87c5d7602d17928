# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
dualpkg: build dual-format (ES module + CommonJS) npm packages from a module
graph written for a different JavaScript runtime.

Entry points:
- `python -m dualpkg build --config dualpkg.json`
- `dualpkg.build.build_v0(options, ...)` for programmatic use
"""
