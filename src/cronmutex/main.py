"""Main entry point for the cronmutex gate.

Usage:
    python -m cronmutex.main default nightly-report 30 && /usr/local/bin/report
    cronmutex --help  # If installed via pip/uv
"""

from cronmutex.cli import main

if __name__ == "__main__":
    main()
