import os
import shutil
import tempfile

# must run before tripstore is imported: config is read at import time
_TMP = tempfile.mkdtemp(prefix="tripstore-tests-")
DB_PATH = os.path.join(_TMP, "test.db")
UPLOAD_DIR = os.path.join(_TMP, "uploads")

os.environ.update({
    "DATABASE_URL": f"sqlite:///{DB_PATH}",
    "UPLOAD_DIR": UPLOAD_DIR,
    "ADMIN_USERNAME": "admin",
    "ADMIN_PASSWORD": "s3cret",
    "ADMIN_PASSWORD_HASH": "",
    "ADMIN_HASH_METHOD": "pbkdf2:sha256:1000",
    "SESSION_SECRET": "test-session-secret",
    "SESSION_BACKEND": "sql",
    "CASHIER_WEBHOOK_SECRET": "whsec_test",
    "REQUIRE_SCREENSHOT": "0",
    "SMTP_USER": "",
    "SMTP_PASS": "",
    "TELEGRAM_BOT_TOKEN": "",
    "TELEGRAM_CHAT_ID": "",
})

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from tripstore import server  # noqa: E402
from tripstore.infra.sql import Database  # noqa: E402
from tripstore.model.db import Base  # noqa: E402
from tripstore.notify import Notifier  # noqa: E402

ADMIN = {"username": "admin", "password": "s3cret"}

ORDER = {
    "name": "Ali",
    "playerId": "123",
    "email": "a@b.com",
    "ucAmount": "660",
    "totalAmount": "10",
    "transactionId": "TX1",
}

JPEG = b"\xff\xd8\xff\xe0\x00\x10JFIF\x00" + b"\x00" * 64 + b"\xff\xd9"


class RecordingNotifier(Notifier):
    staff_email = "staff@tripstore.test"

    def __init__(self):
        self.email_enabled = True
        self.telegram_enabled = True
        self.fail_email = False
        self.emails = []
        self.telegrams = []
        self.dispatched = []

    async def send_email(self, to, subject, html):
        if self.fail_email:
            raise RuntimeError("smtp down")
        self.emails.append((to, subject, html))

    async def send_telegram(self, text):
        self.telegrams.append(text)

    async def dispatch(self, note):
        self.dispatched.append(note)
        return await super().dispatch(note)

    def kinds(self):
        return [n.kind.value for n in self.dispatched]


def _reset_storage():
    for suffix in ("", "-wal", "-shm"):
        try:
            os.remove(DB_PATH + suffix)
        except FileNotFoundError:
            pass
    shutil.rmtree(UPLOAD_DIR, ignore_errors=True)


def uploaded_files():
    if not os.path.isdir(UPLOAD_DIR):
        return []
    return sorted(os.listdir(UPLOAD_DIR))


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def client(notifier):
    _reset_storage()
    server.app.dependency_overrides[server.get_notifier] = lambda: notifier
    with TestClient(server.app) as c:
        yield c
    server.app.dependency_overrides.clear()


@pytest.fixture
def admin(client):
    r = client.post("/api/admin/login", json=ADMIN)
    assert r.status_code == 200, r.text
    return client


@pytest.fixture
async def database(tmp_path):
    db = Database(f"sqlite:///{tmp_path}/repo.db")
    await db.create_schema(Base.metadata)
    yield db
    await db.dispose()


def submit_order(client, screenshot=JPEG, content_type="image/jpeg", **over):
    fields = {**ORDER, **over}
    fields = {k: v for k, v in fields.items() if v is not None}
    files = None
    if screenshot is not None:
        files = {"screenshot": ("shot.jpg", screenshot, content_type)}
    return client.post("/api/order", data=fields, files=files)
