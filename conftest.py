"""Run the Python examples in docs/ as tests through Sybil.

Each markdown file executes in its own scratch directory; the previous working
directory is restored and the scratch directory removed afterwards.
"""

from __future__ import annotations

import os
from pathlib import Path
from tempfile import TemporaryDirectory
from typing import Any

from sybil import Sybil
from sybil.parsers.markdown import PythonCodeBlockParser, SkipParser

DOCS_DIR = Path(__file__).parent / "docs"
_SCRATCH_KEY = "_fem_sparse_scratch"
_CWD_KEY = "_fem_sparse_cwd"


def enter_scratch_directory(namespace: dict[str, Any]) -> None:
    """Switch into a fresh temporary directory for one documentation file."""
    scratch = TemporaryDirectory(prefix="fem_sparse_docs_")
    namespace[_SCRATCH_KEY] = scratch
    namespace[_CWD_KEY] = Path.cwd()
    os.chdir(scratch.name)


def leave_scratch_directory(namespace: dict[str, Any]) -> None:
    """Restore the working directory and delete the scratch directory."""
    os.chdir(namespace.pop(_CWD_KEY))
    namespace.pop(_SCRATCH_KEY).cleanup()


pytest_collect_file = Sybil(
    parsers=[PythonCodeBlockParser(), SkipParser()],
    path=str(DOCS_DIR),
    pattern="*.md",
    setup=enter_scratch_directory,
    teardown=leave_scratch_directory,
).pytest()
