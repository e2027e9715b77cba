from __future__ import annotations

"""
treasury.cli
------------

Operator command line (Typer). Entry point: `treasury-cli`, or
`python -m treasury.cli.main`.
"""

from typing import Tuple

__all__: Tuple[str, ...] = ()
