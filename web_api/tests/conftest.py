# web_api/tests/conftest.py
"""Pytest fixtures for web API tests.

Installs an engine assembled from in-memory fakes so route tests run without
a database or Telegram. The TestClient is used without its context manager,
so the app lifespan (scheduler, real services) never starts.
"""

import pytest

from claimdesk.commands import CommandInterpreter
from claimdesk.config import ClaimDeskConfig
from claimdesk.gateway import RequestGateway
from claimdesk.locks import AsyncioRequestLock
from claimdesk.notifications.scheduler import NotificationScheduler
from claimdesk.services import Services, set_services
from claimdesk.sync import SyncCoordinator
from claimdesk.tests.fakes import FakeBlobStore, FakeLedger, InMemoryStore, RecordingDispatcher
from claimdesk.uploads import BlobUploadBroker


@pytest.fixture
def api_config():
    return ClaimDeskConfig(
        telegram_webhook_secret="hook-secret",
        public_webhook_url="https://claims.example.com/api/telegram/webhook",
    )


@pytest.fixture
def api_services(api_config):
    """Install fake-backed services for the duration of a test."""
    store = InMemoryStore()
    dispatcher = RecordingDispatcher()
    ledger = FakeLedger()
    lock = AsyncioRequestLock(timeout_seconds=1)
    broker = BlobUploadBroker(FakeBlobStore())
    sync = SyncCoordinator(api_config, store, dispatcher, broker)
    commands = CommandInterpreter(api_config, store, dispatcher)
    services = Services(
        config=api_config,
        store=store,
        ledger=ledger,
        lock=lock,
        dispatcher=dispatcher,
        broker=broker,
        sync=sync,
        commands=commands,
        gateway=RequestGateway(api_config, store, dispatcher, sync, commands, lock, ledger),
        scheduler=NotificationScheduler(api_config, store, dispatcher, lock, ledger),
    )
    set_services(services)
    yield services
    set_services(None)
