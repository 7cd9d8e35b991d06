#!/usr/bin/env python3
"""Run pi-backup from a source checkout"""
import sys
from pibackup.cli import main

if __name__ == '__main__':
    sys.exit(main())
