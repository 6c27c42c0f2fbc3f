#!/usr/bin/env python3

"""Run the command line interface with ``python -m distpack.main``."""

from __future__ import annotations

from distpack.ui.cli import main

__all__ = ["main"]

if __name__ == "__main__":
    main()
