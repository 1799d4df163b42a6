"""
Service wiring shared by the API, the worker and the CLI.

Every component receives its collaborators through its constructor; this
module is the one place that picks the concrete ones.
"""
from dataclasses import dataclass
from typing import Optional

import structlog
from sqlalchemy.orm import Session, sessionmaker

from .config import Settings, get_settings
from .core.events import EventBus
from .core.gateway import GatewayClient
from .core.lifecycle import TransactionLifecycle
from .core.orchestrator import ReferenceOrchestrator
from .core.reconciliation import ReconciliationEngine, ReconciliationQueue
from .core.store import TransactionStore
from .core.webhook import WebhookHandler, WebhookVerifier
from .database import SqlAlchemyTransactionStore, get_engine, get_session_factory, init_db
from .integrations.kpay_client import KPayClient
from .monitoring.health import HealthCheck

logger = structlog.get_logger(__name__)


@dataclass
class Services:
    """Fully wired application components."""

    settings: Settings
    gateway: GatewayClient
    store: TransactionStore
    events: EventBus
    lifecycle: TransactionLifecycle
    reconciliation_queue: ReconciliationQueue
    orchestrator: ReferenceOrchestrator
    webhook_handler: WebhookHandler
    reconciliation_engine: ReconciliationEngine
    health_check: HealthCheck

    def close(self) -> None:
        close = getattr(self.gateway, "close", None)
        if callable(close):
            close()


def build_services(
    settings: Optional[Settings] = None,
    gateway: Optional[GatewayClient] = None,
    store: Optional[TransactionStore] = None,
    events: Optional[EventBus] = None,
) -> Services:
    """
    Build the application components.

    Args:
        settings: Optional settings (defaults to the environment)
        gateway: Optional gateway client (defaults to KPayClient)
        store: Optional transaction store (defaults to the SQL store on
            ``settings.database_url``, creating tables if needed)
        events: Optional event bus to share with the host application

    Raises:
        ConfigurationError: If the default gateway client is built without credentials
    """
    settings = settings or get_settings()
    session_factory: Optional[sessionmaker[Session]] = None

    if store is None:
        init_db(get_engine(settings))
        session_factory = get_session_factory(settings)
        store = SqlAlchemyTransactionStore(session_factory)

    if gateway is None:
        gateway = KPayClient(settings)

    events = events or EventBus()
    lifecycle = TransactionLifecycle()
    queue = ReconciliationQueue()

    services = Services(
        settings=settings,
        gateway=gateway,
        store=store,
        events=events,
        lifecycle=lifecycle,
        reconciliation_queue=queue,
        orchestrator=ReferenceOrchestrator(
            gateway,
            store,
            settings=settings,
            lifecycle=lifecycle,
            events=events,
            reconciliation=queue,
        ),
        webhook_handler=WebhookHandler(
            WebhookVerifier(settings.webhook_secret, production=settings.is_production),
            store,
            lifecycle=lifecycle,
            events=events,
        ),
        reconciliation_engine=ReconciliationEngine(
            gateway,
            store,
            lifecycle=lifecycle,
            events=events,
            queue=queue,
        ),
        health_check=HealthCheck(session_factory=session_factory, settings=settings),
    )

    logger.info(
        "services_built",
        gateway=type(gateway).__name__,
        store=type(store).__name__,
        sandbox_mode=settings.sandbox_mode,
    )
    return services
