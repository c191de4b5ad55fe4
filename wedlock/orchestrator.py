"""
Wedlock — Service entrypoint.

1. Configures structured logging
2. Builds the wedding registry (clock, certificate registry, arbiters,
   event journal) from settings
3. Serves the HTTP API
"""

from __future__ import annotations

import logging

import structlog

from wedlock.config import WedlockSettings, settings
from wedlock.governance.arbiters import ArbiterRoster
from wedlock.integrations.certificates import (
    HttpCertificateRegistry,
    InMemoryCertificateRegistry,
)
from wedlock.integrations.clock import SystemClock
from wedlock.ledger.service import EventJournal
from wedlock.registry import WeddingRegistry

logger = logging.getLogger(__name__)


def configure_logging(config: WedlockSettings = settings) -> None:
    """Configure structured logging."""
    logging.basicConfig(level=logging.getLevelName(config.log_level))
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            (
                structlog.dev.ConsoleRenderer()
                if config.log_format != "json"
                else structlog.processors.JSONRenderer()
            ),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(config.log_level)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def build_registry(config: WedlockSettings = settings) -> WeddingRegistry:
    """Wire a WeddingRegistry from settings."""
    log = structlog.get_logger()
    clock = SystemClock(day_length=config.day_length_seconds)

    if config.certificate_registry_url:
        certificates = HttpCertificateRegistry(
            config.certificate_registry_url,
            timeout=config.certificate_registry_timeout,
        )
    else:
        certificates = InMemoryCertificateRegistry()

    journal = None
    if config.journal_enabled:
        journal = EventJournal(config.journal_database_url)
        journal.initialize(recorded_at=clock.now())

    log.info(
        "wedlock.orchestrator.registry_ready",
        arbiters=len(config.arbiters),
        certificate_registry=type(certificates).__name__,
        journal=config.journal_database_url if journal else None,
    )
    return WeddingRegistry(
        clock=clock,
        certificates=certificates,
        arbiters=ArbiterRoster(config.arbiters),
        journal=journal,
        strict_date_changes=config.strict_date_changes,
    )


def main() -> None:
    """Build the registry and serve the API."""
    import uvicorn

    from wedlock.api.app import app, state

    configure_logging()
    log = structlog.get_logger()
    log.info(
        "wedlock.orchestrator.starting",
        host=settings.api_host,
        port=settings.api_port,
    )

    registry = state.registry = build_registry()
    try:
        uvicorn.run(app, host=settings.api_host, port=settings.api_port)
    finally:
        registry.close()
        log.info("wedlock.orchestrator.stopped")


if __name__ == "__main__":
    main()
