#!/usr/bin/env python3
"""
Loan Ledger Entry Point

Starts the FastAPI server with the loan ledger (host and port from LEDGER_* settings).
"""

import sys

from loan_ledger.api import run_server
from loan_ledger.config import get_config


if __name__ == "__main__":
    settings = get_config()
    print("Starting Loan Ledger...")
    print(f"Storage: {settings.database_url}")
    print(f"API available at: http://localhost:{settings.api_port}")
    print(f"Documentation at: http://localhost:{settings.api_port}/docs")
    print()

    try:
        run_server(debug="--reload" in sys.argv)
    except KeyboardInterrupt:
        print("\nShutting down Loan Ledger...")
    except Exception as e:
        print(f"Error starting server: {e}")
        sys.exit(1)
