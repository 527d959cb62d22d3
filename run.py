"""Entry point for the House Leads back-office API.

Launches the FastAPI application with Uvicorn.  It is intended to be
executed from the project root, for example under Docker, where you
only specify a single Python file to run.

Configuration (database path, secret key, log level) is read from
environment variables; see ``house_leads_api/app/core/config.py``.

Usage:
    python run.py
"""
import asyncio
import logging
import os
from uvicorn import Config, Server

from house_leads_api.app.main import app


async def run_api() -> None:
    """Start the API using Uvicorn.

    Host and port are read from environment variables `API_HOST` and
    `API_PORT`. Defaults are `0.0.0.0` and `8000`.
    """
    api_host = os.getenv("API_HOST", "0.0.0.0")
    api_port = int(os.getenv("API_PORT", "8000"))
    config = Config(app=app, host=api_host, port=api_port, reload=False, log_config=None)
    server = Server(config)
    await server.serve()


async def main() -> None:
    try:
        await run_api()
    except Exception:
        logging.exception("API server stopped with an error")
        raise


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except (KeyboardInterrupt, SystemExit):
        pass
