#!/usr/bin/env python3
"""
SDK Admin Portal auth CLI - main entry point
"""

import os
import sys

# Make the backend modules importable when run from elsewhere
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))


def main():
    """Main CLI function"""
    from cli_app import AdminPortalCLI

    sys.exit(AdminPortalCLI().run())


if __name__ == "__main__":
    main()
