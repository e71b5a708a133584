#!/usr/bin/env python3
"""
Simple runner script for StrikeGuard.

Usage:
    python run.py
"""

import sys
from pathlib import Path

# Add src to path for imports
src_path = Path(__file__).parent / "src"
sys.path.insert(0, str(src_path))

from strikeguard import main

if __name__ == "__main__":
    main()
