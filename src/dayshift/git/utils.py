"""Utility helpers for the git runner."""

from __future__ import annotations

import os
from typing import Mapping

# Variables that would redirect git away from the working tree we were given.
_SANITIZED_VARS = {
    "GIT_DIR",
    "GIT_WORK_TREE",
    "GIT_INDEX_FILE",
}

# Nothing the engine runs may block on a terminal prompt or an editor.
_NON_INTERACTIVE = {
    "GIT_TERMINAL_PROMPT": "0",
    "GIT_MERGE_AUTOEDIT": "no",
    "GIT_EDITOR": "true",
}


def sanitize_environment(additional: Mapping[str, str] | None = None) -> dict[str, str]:
    """Return a sanitized environment suitable for unattended git execution."""

    env = dict(os.environ)
    for key in _SANITIZED_VARS:
        env.pop(key, None)
    env.update(_NON_INTERACTIVE)
    if additional:
        env.update(additional)
    return env
