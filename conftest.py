"""
Pytest configuration for the mosaic_render test suite.

Puts the project root on the Python path so tests can import
mosaic_render and tests.fixtures without installing the package.
"""

import sys
from pathlib import Path

# Add the project root to the Python path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))
