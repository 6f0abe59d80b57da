# -*- coding: utf-8 -*-
"""Location: ./teamgate/main.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0
Authors: Teamgate Contributors

Teamgate - Main FastAPI Application.

Responsibilities:
- Serves the team join and team overview routes.
- Initializes logging, the database, the shared HTTP client and the mail
  provider on startup and releases them on shutdown.
- Tags every request with a correlation ID.

Run with ``uvicorn teamgate.main:app``.
"""

# Standard
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict

# Third-Party
from fastapi import Depends, FastAPI
import httpx
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

# First-Party
from teamgate import __version__
from teamgate.config import settings
from teamgate.db import get_db, init_db
from teamgate.middleware.correlation_id import CorrelationIDMiddleware
from teamgate.observability import TelemetryClient
from teamgate.providers.mail import create_mail_provider
from teamgate.routers.teams import teams_router
from teamgate.services.logging_service import LoggingService

# Root handlers are installed by the lifespan; module loggers only need the level
logging_service = LoggingService()
logger = logging_service.get_logger("teamgate")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Set up logging, the approval store, the shared HTTP client and the mail provider.

    Args:
        app: The application; providers are kept on ``app.state``

    Yields:
        Control while the application serves requests

    Raises:
        Exception: Startup failures, after logging them
    """
    await logging_service.initialize()
    logger.info(f"Starting {settings.app_name} {__version__}")

    http_client = httpx.AsyncClient(timeout=settings.http_timeout)
    try:
        init_db()
        app.state.http_client = http_client
        app.state.mail_provider = create_mail_provider()
        app.state.telemetry = TelemetryClient()
        logger.info(f"Approval providers: {sorted(settings.approval_providers)}; mail provider: {settings.mail_provider}; directory provider: {settings.directory_provider}")
        if settings.github_workflow_repository is None and "issue_tracker" in settings.approval_providers:
            logger.warning("No workflow repository configured; issue tracker approvals are skipped")

        logging_service.configure_uvicorn_after_startup()
        yield
    except Exception as e:
        logger.error(f"Teamgate failed to start: {e}")
        raise
    finally:
        logger.info(f"Shutting down {settings.app_name}")
        await http_client.aclose()
        await logging_service.shutdown()


app = FastAPI(
    title=settings.app_name,
    version=__version__,
    description="Team join requests routed through maintainer approval",
    root_path=settings.app_root_path,
    lifespan=lifespan,
)

# Binds the ID every log line and mail of a request carries
if settings.correlation_id_enabled:
    app.add_middleware(CorrelationIDMiddleware)
    logger.info(f"Correlation ID tracking enabled (header: {settings.correlation_id_header})")

# Review links are built from the host the requester used, as seen through the proxy
app.add_middleware(ProxyHeadersMiddleware, trusted_hosts="*")

app.include_router(teams_router)


@app.get("/health")
async def healthcheck(db: Session = Depends(get_db)) -> Dict[str, Any]:
    """Report whether the approval store is reachable.

    Args:
        db: Database session

    Returns:
        Dict[str, Any]: ``status`` plus the configured approval providers, or the store error
    """
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error(f"Health check cannot reach the approval store: {e}")
        return {"status": "unhealthy", "error": f"Approval store unreachable: {e}"}
    return {"status": "healthy", "approval_providers": sorted(settings.approval_providers)}


def main() -> None:
    """Run the application with uvicorn."""
    # Third-Party
    import uvicorn  # pylint: disable=import-outside-toplevel

    uvicorn.run("teamgate.main:app", host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
