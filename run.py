#!/usr/bin/env python3
"""
Bank Admin Back Office Entry Point

Opens the configured database, seeds it if empty and starts the FastAPI
server with uvicorn.
"""

import sys

import uvicorn

from bank_admin.api import create_app
from bank_admin.api.deps import BankAdminSystem
from bank_admin.config import get_config


def main() -> int:
    config = get_config()
    system = BankAdminSystem.from_config(config)
    app = create_app(system, config)

    print("🏦 Starting Bank Admin Back Office...")
    print(f"🗄️  Database: {config.database_url}")
    print(f"🔒 Authentication {'enabled' if config.auth_enabled else 'DISABLED'}")
    print(f"🌐 API available at: http://{config.api_host}:{config.api_port}")
    print(f"📚 Documentation at: http://{config.api_host}:{config.api_port}/docs")
    print()

    try:
        uvicorn.run(app, host=config.api_host, port=config.api_port, log_level=config.log_level.lower())
    except KeyboardInterrupt:
        print("\n👋 Shutting down Bank Admin Back Office...")
    finally:
        system.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
