#!/usr/bin/env python3
"""Runner for a checkout without an installed console script"""
import sys
from pgbackup.cli import main

if __name__ == '__main__':
    sys.exit(main())
