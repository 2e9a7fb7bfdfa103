#!/usr/bin/env python3
"""Entry point for ``python -m dhtcrawl``."""

from __future__ import annotations

from dhtcrawl.cli.main import main

if __name__ == "__main__":
    main()
