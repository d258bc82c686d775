#!/usr/bin/env python3
"""
main.py - run stackrip from a checkout without installing it.
"""
import sys
from pathlib import Path

if __name__ == "__main__":
    sys.path.insert(0, str(Path(__file__).resolve().parent))
    from stackrip.cli import main

    sys.exit(main())
