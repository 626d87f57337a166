"""eventrouter command-line interface.

Exposes:
    cli -- Click command entry point (registered as ``eventrouter`` script).
"""

from eventrouter.cli.main import cli

__all__ = ["cli"]
