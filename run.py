#!/usr/bin/env python3
"""
Ledger Engine Entry Point

Starts the FastAPI reporting server for the ledger engine.
"""

import sys
from pathlib import Path

# Add the project root to Python path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

from ledger_engine.api import run_server
from ledger_engine.config import get_config


if __name__ == "__main__":
    config = get_config()
    print("Starting Ledger Engine...")
    if config.directives_file:
        print(f"Loading directives from: {config.directives_file}")
    print(f"API available at: http://localhost:{config.api_port}")
    print(f"Documentation at: http://localhost:{config.api_port}/docs")
    print()

    try:
        run_server(
            host=config.api_host,
            port=config.api_port,
            debug=False  # Set to True for development
        )
    except KeyboardInterrupt:
        print("\nShutting down Ledger Engine...")
    except Exception as e:
        print(f"Error starting server: {e}")
        sys.exit(1)
