"""Main entry point for the Conductor API server."""

import uvicorn
from dotenv import load_dotenv

from conductor.api import create_fastapi_app
from conductor.config import PROJECT_ROOT, Settings
from conductor.logging_config import setup_logging


def main():
    """Run the application."""
    load_dotenv(PROJECT_ROOT / ".env")
    setup_logging()

    settings = Settings.from_env()

    # Create FastAPI app
    app = create_fastapi_app()

    # Run with uvicorn
    uvicorn.run(
        app,
        host=settings.api_host,
        port=settings.api_port,
        log_level="info",
    )


if __name__ == "__main__":
    main()
