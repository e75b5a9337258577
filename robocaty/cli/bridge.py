"""
CLI entry point for the robocaty command.

This module provides the command-line interface for starting the TwinCAT <-> ABB robot bridge.
"""

from robocaty.server.cli import main


def main_entry():
    """Entry point for the robocaty command."""
    raise SystemExit(main())


if __name__ == "__main__":
    main_entry()
