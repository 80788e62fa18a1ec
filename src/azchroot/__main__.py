"""
azchroot - Main entry point

Allows `python -m azchroot` by delegating to cli.py.
"""

from .cli import cli

if __name__ == "__main__":
    cli()
