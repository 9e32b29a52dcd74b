#!/usr/bin/env python3
"""
Convenience launcher for feedwatch, usable without installing the package.
"""
import sys
from pathlib import Path

# Ensure the project root is in the Python path
sys.path.insert(0, str(Path(__file__).resolve().parent))

from feedwatch.main import main

if __name__ == "__main__":
    sys.exit(main())
