"""
Main entry point for the mosaic_render package.

Allows running: python -m mosaic_render <command>
"""

import sys
from mosaic_render.cli import main

if __name__ == "__main__":
    sys.exit(main())
