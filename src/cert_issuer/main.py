"""
Application entry point — wires dependencies and checks the deployment.

Composition root: creates concrete adapters (request store, crypto backend),
loads the issuing authority material and injects everything into the
IssuanceService. This is the ONLY place where concrete adapter classes are
instantiated; everything else depends on the Protocol ports.

`main()` backs the `cert-issuer-init` console script:
  1. Load and validate configuration from environment
  2. Configure structlog
  3. Create the PostgreSQL schema when that backend is selected
  4. Load the issuer material and check the key matches the certificate
  5. Exit 0 when the engine is ready to serve, 1 otherwise
"""

from __future__ import annotations

import logging
import sys

import structlog
from railway.result import Result

from cert_issuer import __version__
from cert_issuer.adapters.crypto import CryptographyBackend, load_issuer_material
from cert_issuer.adapters.memory_store import InMemoryRequestStore
from cert_issuer.adapters.repository import PsycopgRequestStore
from cert_issuer.config import AppSettings, StoreBackend
from cert_issuer.domain.models import IssuerMaterial
from cert_issuer.domain.ports import RequestStore
from cert_issuer.lifecycle import IssuanceService


def configure_structlog(log_level: str = "INFO") -> None:
    """Configure structlog with colored, human-readable console output."""
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, log_level.upper(), logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def create_store(settings: AppSettings) -> RequestStore:
    if settings.store_backend is StoreBackend.POSTGRES:
        assert settings.database is not None  # guaranteed by AppSettings validator
        return PsycopgRequestStore(dsn=settings.database.get_dsn())
    return InMemoryRequestStore()


def load_issuer(settings: AppSettings, backend: CryptographyBackend) -> Result[IssuerMaterial]:
    """Read the issuer files and check the key belongs to the certificate."""
    issuer = settings.issuer
    return load_issuer_material(
        certificate_path=issuer.certificate_path,
        private_key_path=issuer.private_key_path,
        chain_path=issuer.chain_path,
        root_certificate_path=issuer.root_certificate_path,
        private_key_password=issuer.password_bytes(),
    ).flat_map(backend.verify_issuer_material)


def create_service(
    settings: AppSettings,
    store: RequestStore | None = None,
) -> Result[IssuanceService]:
    """Build a ready IssuanceService, or the reason it cannot be built."""
    backend = CryptographyBackend()
    return load_issuer(settings, backend).map(
        lambda material: IssuanceService(
            store=store if store is not None else create_store(settings),
            backend=backend,
            issuer=material,
            validity_days=settings.issuer.validity_days,
            auto_approve=settings.auto_approve,
        )
    )


def main() -> None:
    """Validate configuration, bootstrap storage and check the issuer material."""
    try:
        settings = AppSettings()
    except Exception as e:
        print(f"FATAL: Configuration error — {e}", file=sys.stderr)  # noqa: T201
        sys.exit(1)

    configure_structlog(settings.log_level)
    log = structlog.get_logger()

    log.info(
        "app.starting",
        version=__version__,
        log_level=settings.log_level,
        store_backend=str(settings.store_backend),
        auto_approve=settings.auto_approve,
    )

    store = create_store(settings)
    if isinstance(store, PsycopgRequestStore):
        schema = store.ensure_schema()
        if schema.is_failure():
            err = schema.error()
            log.error("app.schema_failed", error=err.message, cause=err.cause())
            sys.exit(1)

    service = create_service(settings, store=store)
    if service.is_failure():
        err = service.error()
        log.error(
            "app.issuer_unavailable",
            code=err.code.value,
            error=err.message,
            cause=err.cause(),
        )
        sys.exit(1)

    log.info(
        "app.ready",
        validity_days=service.value().validity_days,
        issuer_certificate=str(settings.issuer.certificate_path),
    )


if __name__ == "__main__":
    main()
