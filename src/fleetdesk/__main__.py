"""Main entry point for the fleetdesk CLI.

Usage:
    python -m fleetdesk --help
    fleetdesk --help  # If installed via pip/uv
"""

from fleetdesk.cli import main

if __name__ == "__main__":
    main()
