#!/usr/bin/env python3
"""
Sync Autoreboot Entry Point

Runs the daemon straight from a source checkout:
    python run_daemon.py --server --client
"""

import os
import sys


def setup_path():
    """Make the autoreboot package importable from a source checkout."""
    base_path = os.path.dirname(os.path.abspath(__file__))
    if base_path not in sys.path:
        sys.path.insert(0, base_path)


def main():
    """Main entry point."""
    setup_path()

    from autoreboot.sync_daemon import main as daemon_main
    return daemon_main()


if __name__ == '__main__':
    sys.exit(main())
