import os
import tempfile
from datetime import datetime

# main.py builds a module-level app from the environment; keep it off the cwd
os.environ["DB_PATH"] = os.path.join(tempfile.mkdtemp(), "ledger.json")

import pytest

from app.bot.controller import ConversationController
from app.bot.replies import ReplyBuilder
from app.config import Settings
from app.db.repository import LedgerRepository

NOW = datetime(2024, 1, 15, 12, 30)


class FakeLineClient:
    def __init__(self):
        self.replies = []
        self.pushes = []

    async def reply(self, reply_token, replies):
        self.replies.append((reply_token, replies))

    async def push(self, user_id, replies):
        self.pushes.append((user_id, replies))

    async def close(self):
        pass


@pytest.fixture
def repo(tmp_path):
    repo = LedgerRepository(str(tmp_path / "ledger.json"))
    yield repo
    repo.close()


@pytest.fixture
def replies():
    return ReplyBuilder(currency_label="NT$", report_url="https://example.com/report")


@pytest.fixture
def controller(repo, replies):
    return ConversationController(repo, replies, clock=lambda: NOW)


@pytest.fixture
def settings(tmp_path):
    return Settings(
        _env_file=None,
        db_path=str(tmp_path / "api.json"),
        line_channel_secret="test-secret",
        line_channel_access_token="test-token",
        telegram_bot_token="",
        report_url="https://example.com/report",
        cron_secret="",
    )


@pytest.fixture
def fake_line():
    return FakeLineClient()
