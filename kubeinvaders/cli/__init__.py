"""kubeinvaders command-line interface.

Exposes:
    cli -- Click entry point (registered as ``kubeinvaders`` script).
"""

from kubeinvaders.cli.main import cli

__all__ = ["cli"]
