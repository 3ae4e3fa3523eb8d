"""Shared fixtures: throwaway git repositories and logger cleanup."""

import logging
import shutil
import subprocess
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from change_guardian.core.config import build_config
from change_guardian.core.logger import ROOT_LOGGER_NAME


def git(repo: Path, *args: str) -> str:
    result = subprocess.run(
        ['git', *args],
        cwd=repo,
        capture_output=True,
        text=True,
        check=True
    )
    return result.stdout


def js_source(functions: int, body_lines: int = 3) -> str:
    """JavaScript text with the given number of functions."""
    parts = ["const logger = require('./logger');", ""]
    for i in range(functions):
        parts.append(f"function fn{i}(a, b) {{")
        for j in range(body_lines):
            parts.append(f"  logger.info('step {j}');")
        parts.append("}")
        parts.append("")
    return '\n'.join(parts)


@pytest.fixture
def git_repo(tmp_path):
    """Repository with one committed file, ``src/app.js``."""
    if shutil.which('git') is None:
        pytest.skip("git not installed")

    repo = tmp_path / "repo"
    repo.mkdir()
    git(repo, 'init', '-q')
    git(repo, 'config', 'user.email', 'guardian@example.com')
    git(repo, 'config', 'user.name', 'Guardian Tests')
    git(repo, 'config', 'commit.gpgsign', 'false')

    (repo / "src").mkdir()
    (repo / "src" / "app.js").write_text(js_source(5))
    git(repo, 'add', '-A')
    git(repo, 'commit', '-q', '-m', 'initial')
    return repo


@pytest.fixture
def repo_config(git_repo):
    return build_config({}, project_root=git_repo)


@pytest.fixture(autouse=True)
def reset_package_logger():
    """CLI tests install handlers on the package logger; remove them afterwards."""
    yield
    package_logger = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
        handler.close()
    package_logger.setLevel(logging.NOTSET)
