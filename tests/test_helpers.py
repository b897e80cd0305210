import asyncio

import pytest

from tripstore.helpers import ct_equal, is_valid_email, to_iso
from tripstore.schemas import InvalidKind, InvalidRequest
from tripstore.uploads import ScreenshotStorage


@pytest.mark.parametrize("email,ok", [
    ("a@b.com", True),
    (" a@b.co ", True),
    ("a@b", False),
    ("a b@c.com", False),
    ("", False),
    (None, False),
])
def test_is_valid_email(email, ok):
    assert is_valid_email(email) is ok


def test_ct_equal_and_iso():
    assert ct_equal("admin", "admin")
    assert not ct_equal("admin", "Admin")
    assert to_iso(None) is None
    assert to_iso(0).startswith("1970-01-01T00:00:00")


# ----------------------------
# screenshot storage
# ----------------------------
async def test_storage_write_and_remove(tmp_path):
    store = ScreenshotStorage(str(tmp_path / "up"), 10, {"image/png": ".png"})
    name = await store.write(b"png", ".png")
    assert name.endswith(".png")
    assert (tmp_path / "up" / name).read_bytes() == b"png"

    assert store.remove(name) is True
    assert store.remove(name) is False
    assert store.remove(None) is False


def test_storage_refuses_paths_outside_directory(tmp_path):
    store = ScreenshotStorage(str(tmp_path), 10, {})
    victim = tmp_path.parent / "victim.txt"
    victim.write_text("keep")
    assert store.path_for("../victim.txt") is None
    assert store.remove("../victim.txt") is False
    assert victim.exists()


async def test_storage_writes_off_the_event_loop(tmp_path, monkeypatch):
    offloaded = []
    real_to_thread = asyncio.to_thread

    async def spy(fn, *args):
        offloaded.append(fn.__name__)
        return await real_to_thread(fn, *args)

    monkeypatch.setattr("tripstore.uploads.asyncio.to_thread", spy)
    store = ScreenshotStorage(str(tmp_path), 10, {})
    name = await store.write(b"webp", ".webp")
    assert offloaded == ["_write_file"]
    assert (tmp_path / name).read_bytes() == b"webp"


def test_reject_oversized_body(tmp_path):
    store = ScreenshotStorage(str(tmp_path), 100, {})
    store.form_overhead = 10
    store.reject_oversized("110")
    store.reject_oversized(None)
    store.reject_oversized("chunked")
    with pytest.raises(InvalidRequest) as exc:
        store.reject_oversized("111")
    assert exc.value.kind is InvalidKind.FILE_TOO_LARGE
