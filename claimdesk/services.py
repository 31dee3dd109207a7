"""
Component wiring.

build_services() assembles the engine from a config and a database engine.
The HTTP layer reads the assembled instance through get_services(); the app
lifespan (or a test) installs it with set_services().
"""

from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncEngine

from .commands import CommandInterpreter
from .config import ClaimDeskConfig
from .dedup import SqlDedupLedger
from .drive import GoogleDriveBlobStore, build_drive_service
from .gateway import RequestGateway
from .locks import AsyncioRequestLock
from .notifications.dispatcher import MessageDispatcher
from .notifications.scheduler import NotificationScheduler
from .store import SqlDocumentStore
from .sync import SyncCoordinator, get_merge_strategy
from .uploads import BlobUploadBroker


@dataclass
class Services:
    config: ClaimDeskConfig
    store: object
    ledger: object
    lock: object
    dispatcher: MessageDispatcher
    broker: BlobUploadBroker
    sync: SyncCoordinator
    commands: CommandInterpreter
    gateway: RequestGateway
    scheduler: NotificationScheduler


_services: Services | None = None


def build_services(
    config: ClaimDeskConfig,
    engine: AsyncEngine | None = None,
    blob_store=None,
    telegram_client=None,
) -> Services:
    """
    Assemble every component around one store, lock and ledger.

    When no blob store is passed, Google Drive is used if credentials are
    configured; otherwise uploads are rejected.
    """
    store = SqlDocumentStore(engine)
    ledger = SqlDedupLedger(engine, ttl_hours=config.dedup_ttl_hours)
    lock = AsyncioRequestLock(timeout_seconds=config.lock_timeout_seconds)
    dispatcher = MessageDispatcher(config, store, client=telegram_client)

    if blob_store is None:
        drive_service = build_drive_service()
        if drive_service is not None:
            blob_store = GoogleDriveBlobStore(drive_service, config.drive_folder_name)
    broker = BlobUploadBroker(blob_store)

    sync = SyncCoordinator(
        config, store, dispatcher, broker, strategy=get_merge_strategy(config.sync_merge)
    )
    commands = CommandInterpreter(config, store, dispatcher)
    gateway = RequestGateway(config, store, dispatcher, sync, commands, lock, ledger)
    scheduler = NotificationScheduler(config, store, dispatcher, lock, ledger)

    return Services(
        config=config,
        store=store,
        ledger=ledger,
        lock=lock,
        dispatcher=dispatcher,
        broker=broker,
        sync=sync,
        commands=commands,
        gateway=gateway,
        scheduler=scheduler,
    )


def set_services(services: Services | None) -> None:
    global _services
    _services = services


def get_services() -> Services:
    if _services is None:
        raise RuntimeError("Services not initialized. Call set_services() at startup.")
    return _services
