"""Main entry point for the chatlink server."""

import os
from pathlib import Path

import uvicorn
from dotenv import load_dotenv

from chatlink.api import create_fastapi_app
from chatlink.api.routes import control
from chatlink.logging_config import get_logger, setup_logging
from sim import Sim

logger = get_logger(__name__)


def main():
    """Load .env, wire the SIM into the control routes and serve the API."""
    project_root = Path(__file__).resolve().parent.parent
    load_dotenv(project_root / ".env")
    setup_logging()

    api_host = os.getenv("API_HOST", "localhost")
    api_port = int(os.getenv("API_PORT", "8000"))

    # SIM drives the server over HTTP, so it needs the public address.
    if os.getenv("SIM_ENABLED", "true").lower() not in ("0", "false", "no"):
        control.set_sim_instance(Sim(api_url=f"http://{api_host}:{api_port}"))
    else:
        logger.info("SIM disabled")

    logger.info("Serving chatlink on %s:%s", api_host, api_port)
    uvicorn.run(
        create_fastapi_app(),
        host=api_host,
        port=api_port,
        log_level=os.getenv("LOG_LEVEL", "info").lower(),
        log_config=None,
    )


if __name__ == "__main__":
    main()
