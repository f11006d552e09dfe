from __future__ import annotations

from pathlib import Path

import pytest

from treeward.file_tools import FileTools
from treeward.sandbox import PathSandbox


@pytest.fixture
def project_root(tmp_path: Path) -> Path:
    """Create a small project tree with a hidden .git directory next to it."""

    root = tmp_path / "proj"
    (root / "src" / "pkg").mkdir(parents=True)
    (root / ".git").mkdir()
    (root / ".git" / "config").write_text("[core]\n", encoding="utf-8")
    (root / ".env").write_text("SECRET=1\n", encoding="utf-8")
    (root / "README.md").write_text("# Project\n", encoding="utf-8")
    (root / "src" / "main.py").write_text(
        "def hello() -> str:\n    return \"hello\"\n",
        encoding="utf-8",
    )
    (root / "src" / "pkg" / "__init__.py").write_text("", encoding="utf-8")
    (tmp_path / "outside.txt").write_text("not yours\n", encoding="utf-8")
    return root


@pytest.fixture
def sandbox(project_root: Path) -> PathSandbox:
    return PathSandbox(project_root)


@pytest.fixture
def file_tools(sandbox: PathSandbox) -> FileTools:
    return FileTools(sandbox)
