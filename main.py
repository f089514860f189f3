#!/usr/bin/env python3
"""
SubFix Entry Point Script

This script initializes the CLI handler and runs the subtitle correction process.
"""

import sys
from subfix.cli import CLIHandler

if __name__ == "__main__":
    if sys.version_info < (3, 8):
        sys.stderr.write("SubFix requires Python 3.8 or later.\n")
        sys.exit(1)

    cli = CLIHandler()
    cli.run()
