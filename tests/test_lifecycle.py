import pytest

from tripstore import server
from tripstore.infra.sql import Database


@pytest.fixture
def uvicorn_calls(monkeypatch):
    calls = []
    monkeypatch.setattr(server.uvicorn, "run",
                        lambda app, **kw: calls.append((app, kw)))
    return calls


def test_main_exits_when_datastore_cannot_open(tmp_path, monkeypatch,
                                               uvicorn_calls):
    # a directory is not an openable sqlite file
    monkeypatch.setattr(server, "database",
                        Database(f"sqlite:///{tmp_path}"))

    with pytest.raises(SystemExit) as exc:
        server.main()

    assert exc.value.code == 1
    assert uvicorn_calls == []


def test_main_exits_when_ping_fails(monkeypatch, uvicorn_calls):
    async def refuse():
        raise ConnectionRefusedError("datastore down")

    monkeypatch.setattr(server.database, "ping", refuse)

    with pytest.raises(SystemExit) as exc:
        server.main()

    assert exc.value.code == 1
    assert uvicorn_calls == []


def test_main_serves_once_datastore_answers(tmp_path, monkeypatch,
                                            uvicorn_calls):
    monkeypatch.setattr(server, "database",
                        Database(f"sqlite:///{tmp_path}/ok.db"))

    server.main()

    [(app, kw)] = uvicorn_calls
    assert app is server.app
    assert kw["port"] == server.config.PORT
