"""Termfleet server entry point.

Usage::

    python -m termfleet
"""

from termfleet.server import main

if __name__ == "__main__":
    main()
