"""Git access for dayshift."""

from .repo import Repository, StatusSummary, resolve_git_dir
from .runner import FakeGitClient, GitClient, GitResult

__all__ = [
    "FakeGitClient",
    "GitClient",
    "GitResult",
    "Repository",
    "StatusSummary",
    "resolve_git_dir",
]
