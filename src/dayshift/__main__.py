"""Module entrypoint for ``python -m dayshift``."""

from __future__ import annotations

from .cli import main

if __name__ == "__main__":
    raise SystemExit(main())
