"""
pescan Module Entry Point
==========================

Allows running the CLI via: python -m pescan
"""

from pescan.cli import main

if __name__ == "__main__":
    main()
