"""Main entry point for the agent economy server."""

import os
from pathlib import Path

import uvicorn
from dotenv import load_dotenv

from economy.api import create_fastapi_app
from economy.api.routes import control
from economy.logging_config import setup_logging
from sim import Sim


def main():
    """Run the application."""
    project_root = Path(__file__).resolve().parent.parent
    load_dotenv(project_root / ".env")

    setup_logging()

    # Get configuration from environment
    api_host = os.getenv("API_HOST", "localhost")
    api_port = int(os.getenv("API_PORT", "8000"))
    api_url = f"http://{api_host}:{api_port}"

    # SIM drives this same server over HTTP
    control.set_sim_instance(Sim(api_url=api_url))

    # Create FastAPI app
    app = create_fastapi_app()

    # Run with uvicorn
    uvicorn.run(
        app,
        host=api_host,
        port=api_port,
        log_level=os.getenv("LOG_LEVEL", "info").lower(),
    )


if __name__ == "__main__":
    main()
