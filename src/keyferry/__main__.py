"""
Entry point for running keyferry as a module.

Usage:
    python -m keyferry [command] [options]

This allows keyferry to be executed directly as a Python module,
which is useful for development and testing without installing
the package.
"""

from keyferry.cli import main

if __name__ == "__main__":
    main()
