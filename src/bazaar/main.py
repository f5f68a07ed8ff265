"""Main entry point for the bazaar CLI.

Usage:
    python -m bazaar.main --help
    bazaar --help  # If installed via pip/uv
"""

from bazaar.cli import main

if __name__ == "__main__":
    main()
