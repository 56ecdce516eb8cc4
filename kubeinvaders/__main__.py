"""Entry point for `python -m kubeinvaders`.

Usage:
    python -m kubeinvaders --port 8080
    KUBEINVADERS_PORT=8080 python -m kubeinvaders
"""

from __future__ import annotations

from kubeinvaders.cli import cli

cli(prog_name="kubeinvaders")
