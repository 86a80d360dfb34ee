#!/usr/bin/env python3
"""
Build pipeline hook: invalidate cached content after a content build.

Requires the project to be installed (pip install -e .).

Usage:
  python scripts/on_build_complete.py [--category agents ...] [--dry-run]
"""
import sys

from build_hook import main

if __name__ == "__main__":
    sys.exit(main())
