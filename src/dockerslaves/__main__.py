"""
Docker Slaves - Main entry point
"""

from .cli import cli

if __name__ == "__main__":
    cli()
