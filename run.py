#!/usr/bin/env python3
"""
Lending Engine Entry Point

Starts the FastAPI server, or with ``sweep`` runs one interest sweep over
all open loans and exits (for cron or any external scheduler).
"""

import sys
from pathlib import Path

# Add the project root to Python path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

from lending_core.config import get_config
from lending_core.logging_config import setup_logging


def run_sweep() -> int:
    from lending_core.api.dependencies import get_lending_system

    result = get_lending_system().interest_sweep.run()
    print(f"Processed {result.processed} loans: {result.updated} updated, "
          f"{result.late_fees_charged} late fees, {result.failed} failed")
    return 1 if result.failed else 0


if __name__ == "__main__":
    config = get_config()
    setup_logging(config.log_level, "lending", config.log_format, config.log_file)

    if len(sys.argv) > 1 and sys.argv[1] == "sweep":
        sys.exit(run_sweep())

    from lending_core.api import run_server

    print("💵 Starting Lending Engine...")
    print("🧮 All interest and payment math uses Decimal precision")
    print("🔒 Audit trail active")
    print(f"🌐 API available at: http://localhost:{config.api_port}")
    print(f"📚 Documentation at: http://localhost:{config.api_port}/docs")
    print()

    try:
        run_server(host=config.api_host, port=config.api_port, debug=False)
    except KeyboardInterrupt:
        print("\n👋 Shutting down Lending Engine...")
    except Exception as e:
        print(f"❌ Error starting server: {e}")
        sys.exit(1)
