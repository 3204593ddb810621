"""Pytest configuration and fixtures.

This module configures pytest to properly resolve imports from the
music_store and infrastructure packages.
"""

import sys
from pathlib import Path

# Add the server directory to Python path so package imports work
server_dir = Path(__file__).parent.parent
if str(server_dir) not in sys.path:
    sys.path.insert(0, str(server_dir))
