"""
Main entry point when running as module: python -m sitepublish
"""
import sys

from .cli import main

if __name__ == '__main__':
    sys.exit(main())
