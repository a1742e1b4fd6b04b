"""Exceptions raised across dayshift subsystems."""


class DayshiftError(RuntimeError):
    """Base class for dayshift failures that stop startup."""


class RepositoryNotFoundError(DayshiftError):
    """The working directory is not inside a git work tree."""


__all__ = ["DayshiftError", "RepositoryNotFoundError"]
