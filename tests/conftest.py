from __future__ import annotations

from pathlib import Path

import pytest

from fakes import build_settings


@pytest.fixture
def make_settings():
    return build_settings


@pytest.fixture
def message_file(tmp_path: Path) -> Path:
    return tmp_path / ".claude-commit-msg"
