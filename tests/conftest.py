"""Pytest configuration for path setup.

The package lives under ``chatlink/src``.  When the project is not
installed, this file makes both the repository root (for
``tests.helpers``) and ``chatlink/src`` importable during collection.
"""

from __future__ import annotations

import sys
from pathlib import Path


ROOT = Path(__file__).resolve().parents[1]

for path in (ROOT, ROOT / "chatlink" / "src"):
    path_str = str(path)
    if path_str not in sys.path:
        sys.path.insert(0, path_str)
