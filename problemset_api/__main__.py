"""
Entry point for running the API tooling as a module.

Usage:
    python -m problemset_api serve
"""

from problemset_api.cli import main

if __name__ == "__main__":
    main()
