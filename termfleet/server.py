"""Termfleet — standalone API server with the reconciler running in-process.

Start with::

    python -m termfleet
    # or
    uvicorn termfleet.server:create_app --factory --host 0.0.0.0 --port 3000
"""

from __future__ import annotations

import logging
import logging.handlers
import sys
import time
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI

from termfleet import __version__
from termfleet.api import install_error_handlers, router
from termfleet.config import ConfigError, Settings, load_settings, log_level_value
from termfleet.dns import DNSProvider, get_dns_provider
from termfleet.prober import HealthProber
from termfleet.reconciler import Reconciler
from termfleet.registrar import RegistrarCoordinator
from termfleet.store import WorkstationStore, get_store

logger = logging.getLogger(__name__)

_LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
_LOG_MAX_BYTES = 10 * 1024 * 1024
_LOG_BACKUPS = 5


def configure_logging(settings: Settings) -> None:
    """Console logging at the configured level, plus rotating files when
    ``TERMFLEET_LOG_DIR`` is set (``termfleet.log`` and ``errors.log``)."""
    level = log_level_value(settings)
    logging.basicConfig(level=level, format=_LOG_FORMAT)
    if not settings.log_dir:
        return

    log_dir = Path(settings.log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    root = logging.getLogger()
    formatter = logging.Formatter(_LOG_FORMAT)
    for filename, file_level in (("termfleet.log", level), ("errors.log", logging.ERROR)):
        handler = logging.handlers.RotatingFileHandler(
            log_dir / filename, maxBytes=_LOG_MAX_BYTES, backupCount=_LOG_BACKUPS,
        )
        handler.setLevel(file_level)
        handler.setFormatter(formatter)
        root.addHandler(handler)


def create_app(
    settings: Settings | None = None,
    *,
    store: WorkstationStore | None = None,
    dns: DNSProvider | None = None,
    prober: HealthProber | None = None,
    start_reconciler: bool = True,
) -> FastAPI:
    """Build the FastAPI app.

    Collaborators not passed in are built from *settings* (default: the
    environment) when the app starts.
    """
    if settings is None:
        settings = load_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app_store = store if store is not None else get_store(settings)
        app_dns = dns if dns is not None else get_dns_provider(settings)
        app_prober = prober if prober is not None else HealthProber(
            timeout=settings.probe_timeout,
            verify_tls=settings.probe_verify_tls,
        )
        reconciler = Reconciler(
            app_store,
            app_prober,
            interval=settings.check_interval,
            max_concurrency=settings.probe_concurrency,
            dns=app_dns,
            release_dns_on_prune=settings.release_dns_on_prune,
        )
        app.state.settings = settings
        app.state.registrar = RegistrarCoordinator(app_store, app_dns)
        app.state.reconciler = reconciler
        app.state.started_monotonic = time.monotonic()

        if start_reconciler:
            await reconciler.start()
        logger.info("Termfleet %s serving %s (env=%s)",
                    __version__, settings.base_domain, settings.environment)
        try:
            yield
        finally:
            await reconciler.stop()
            await app_prober.aclose()
            await app_dns.aclose()
            if store is None:
                app_store.close()

    app = FastAPI(title="Termfleet", version=__version__, lifespan=lifespan)
    install_error_handlers(app, expose_details=settings.is_development)
    app.include_router(router, prefix="/api")
    return app


def main() -> None:
    import uvicorn

    try:
        settings = load_settings()
    except ConfigError as exc:
        print(exc, file=sys.stderr)
        sys.exit(2)

    configure_logging(settings)
    logger.info("Starting Termfleet server on %s:%d", settings.host, settings.port)
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port, log_config=None)


if __name__ == "__main__":
    main()
