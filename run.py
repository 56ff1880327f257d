#!/usr/bin/env python
"""
Launcher script for the Gig Orders command line.

Puts the project root on the Python path so ``src`` imports resolve
without installing the package.
"""

import sys
from pathlib import Path

project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

from src.main import main  # noqa: E402

if __name__ == "__main__":
    sys.exit(main())
