"""CLI entry point for embeddy.

This module acts as the central entry point for the project's CLI tools.
Commands are implemented in embeddy.cli.
"""

import sys

from embeddy.cli import main

if __name__ == "__main__":
    sys.exit(main())
