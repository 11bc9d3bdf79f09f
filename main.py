#!/usr/bin/env python3
"""
terrarun - Main entry point.

Runs the command-line interface from a source checkout.
"""

import sys

from terrarun.main import main


if __name__ == "__main__":
    sys.exit(main())
