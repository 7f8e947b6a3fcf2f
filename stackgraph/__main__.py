"""Entry point for `python -m stackgraph`.

Usage:
    python -m stackgraph up kagent
    python -m stackgraph destroy kagent
"""

from __future__ import annotations

from stackgraph.cli import cli

cli()
