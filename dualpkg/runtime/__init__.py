# Helper to load the JavaScript runtime spliced into generated test runners.
from pathlib import Path

RUNTIME_DIR = Path(__file__).resolve().parent


def get_test_runner_runtime() -> str:
	return (RUNTIME_DIR / "test_runner_runtime.js").read_text(encoding="utf-8")

__all__ = ["RUNTIME_DIR", "get_test_runner_runtime"]
