"""Module entrypoint for ``python -m stratconf``."""

from __future__ import annotations

from stratconf.main import cli_entrypoint

if __name__ == "__main__":
    raise SystemExit(cli_entrypoint())
