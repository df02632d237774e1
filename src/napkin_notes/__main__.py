"""CLI interface for napkin_notes package.

Usage:
    python -m napkin_notes                 # Start an upload session
    python -m napkin_notes --show-config   # Print resolved configuration
"""
import sys


def main():
    """Main CLI entry point."""
    from napkin_notes import main as run

    sys.exit(run())


if __name__ == "__main__":
    main()
