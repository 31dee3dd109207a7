"""Root pytest configuration."""

import os
from pathlib import Path

import pytest
from dotenv import load_dotenv

_root = Path(__file__).parent
load_dotenv(_root / ".env")
load_dotenv(_root / ".env.local", override=True)

# Tests never reach a real database, Telegram or the scheduler
for _name in ("DATABASE_URL", "TELEGRAM_BOT_TOKEN", "TELEGRAM_CHAT_ID", "ADMIN_TOKEN"):
    os.environ.pop(_name, None)
os.environ["DISABLE_SCHEDULER"] = "true"


@pytest.fixture(scope="session")
def event_loop_policy():
    import asyncio

    return asyncio.DefaultEventLoopPolicy()
