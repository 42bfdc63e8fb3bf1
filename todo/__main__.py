#!/usr/bin/env python3
"""
todo - Main entry point.
"""

import sys

from todo.cli.main import main

if __name__ == "__main__":
    sys.exit(main())
