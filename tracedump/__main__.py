"""
tracedump CLI Entry Point

This module allows running tracedump as:
    python -m tracedump [command] [options]
"""

from tracedump.cli import main

if __name__ == "__main__":
    main()
