#!/usr/bin/env python3
"""
main.py - quick-start entry point.

    python main.py generate portrait.jpg photos/ --print-size 16x20 --ppi 150

Or use the full CLI:

    python -m photo_mosaic.cli generate --help
    python -m photo_mosaic.cli plan portrait.jpg photos/ --pattern "Parquet 2L 1P"
"""

from photo_mosaic.cli import app

if __name__ == "__main__":
    app()
