#!/usr/bin/env python3
"""
ashcode - AI coding assistant for your terminal.

Runs the CLI from a source checkout without installing the console script.
"""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent))


def main():
    from ashcode.main import cli

    try:
        cli()
    except KeyboardInterrupt:
        print("\n\nGoodbye!")
        sys.exit(0)


if __name__ == "__main__":
    main()
