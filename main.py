#!/usr/bin/env python3
"""
Main entry point for hookwarden.

Hook configuration for the assistant host points each lifecycle hook at:

    python main.py handle

Usage:
    python main.py handle < event.json      # Evaluate one event
    python main.py check-config             # Validate rules
    python main.py ledger list              # List session ledgers
    python main.py todos list SESSION_ID    # Show todos for a session
"""

import sys

from hookwarden.cli import main

if __name__ == "__main__":
    sys.exit(main())
