"""Module entrypoint for ``python -m workledger``."""

from __future__ import annotations

from workledger.main import cli_entrypoint

if __name__ == "__main__":
    raise SystemExit(cli_entrypoint())
