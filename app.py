#!/usr/bin/env python3
"""
Packs Print - label printer service
Accepts print jobs over HTTP, prints them one at a time, and reports printer health.
"""

import sys

from packs_print.cli import main

if __name__ == "__main__":
    sys.exit(main())
