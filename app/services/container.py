"""
Wiring of the store and the services built on it.
"""
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncEngine

from app.core.config import Settings
from app.core.database import build_engine, build_session_factory, check_db_connection, init_db
from app.core.logging import get_logger
from app.services.ingestion import WebhookIngestor
from app.services.notifier import BroadcastNotifier, create_notifier
from app.services.outbound import MessageSender
from app.services.read_receipts import ReadReceiptCounter
from app.services.reconciler import ConversationReconciler
from app.services.status import StatusTransitionEngine
from app.services.store import MessageStore

logger = get_logger(__name__)


@dataclass
class Services:
    settings: Settings
    engine: AsyncEngine
    store: MessageStore
    notifier: object
    reconciler: ConversationReconciler
    status_engine: StatusTransitionEngine
    read_receipts: ReadReceiptCounter
    sender: MessageSender
    ingestor: WebhookIngestor

    @property
    def broadcaster(self):
        """The broadcaster, or None when running poll-only."""
        return self.notifier if isinstance(self.notifier, BroadcastNotifier) else None

    async def start(self) -> None:
        await init_db(self.engine)

    async def is_healthy(self) -> bool:
        return await check_db_connection(self.engine)

    async def close(self) -> None:
        await self.status_engine.shutdown()
        await self.engine.dispose()
        logger.info("Services closed")


def build_services(settings: Settings) -> Services:
    engine = build_engine(settings)
    store = MessageStore(build_session_factory(engine))
    notifier = create_notifier(settings.notifier_backend, settings.notifier_queue_size)

    reconciler = ConversationReconciler(
        store,
        business_wa_id=settings.business_wa_id,
        notifier=notifier,
        max_attempts=settings.reconcile_max_attempts,
    )
    status_engine = StatusTransitionEngine(store, notifier)
    delivery_delay = settings.simulated_delivery_delay_seconds if settings.simulated_delivery_enabled else None

    return Services(
        settings=settings,
        engine=engine,
        store=store,
        notifier=notifier,
        reconciler=reconciler,
        status_engine=status_engine,
        read_receipts=ReadReceiptCounter(store, settings.business_wa_id, notifier),
        sender=MessageSender(reconciler, status_engine, delivery_delay),
        ingestor=WebhookIngestor(reconciler, status_engine, settings.webhook_batch_timeout_seconds),
    )
