"""Tests for the reference remote server and end-to-end sync through it."""

from datetime import datetime, timedelta

import httpx
import pytest

from codeflow.config import Config, RemoteConfig, ServerConfig, StorageConfig, UserConfig
from codeflow.history import HistoryRecord, HistoryTier, SaveOutcome
from codeflow.identity import Authenticated, StaticIdentityProvider
from codeflow.vcs import Commit, SyncStatus

# Only run tests if fastapi is installed
pytest.importorskip("fastapi")


from fastapi.testclient import TestClient

from codeflow.server import RemoteDatabase, create_app
from codeflow.workspace import Workspace


@pytest.fixture
def database():
    """Create an in-memory remote database."""
    db = RemoteDatabase(":memory:")
    db.connect()
    yield db
    db.close()


@pytest.fixture
def config():
    return Config(server=ServerConfig(allowed_users=[]))


@pytest.fixture
def app(config, database):
    return create_app(config, database)


@pytest.fixture
def client(app):
    """Create a test client."""
    return TestClient(app)


def _put(client, user_id: str, commit: Commit, server_timestamp: bool = True):
    return client.put(
        f"/api/users/{user_id}/commits/{commit.id}",
        json={"commit": commit.to_dict(), "server_timestamp": server_timestamp},
    )


class TestRemoteDatabase:
    def test_put_commit_is_idempotent(self, database):
        commit = Commit.create("msg", "x", "Python").to_dict()

        first = database.put_commit("alice", commit)
        second = database.put_commit("alice", {**commit, "message": "changed"})

        assert first == second
        assert len(database.list_commits("alice")) == 1

    def test_server_timestamp(self, database):
        commit = Commit.create("msg", "x", "Python").to_dict()
        commit["timestamp"] = "2000-01-01T00:00:00"

        stored = database.put_commit("alice", commit, server_timestamp=True)

        assert stored["timestamp"] != "2000-01-01T00:00:00"
        assert datetime.fromisoformat(stored["timestamp"]).utcoffset() == timedelta(0)

    def test_commit_ids_scoped_per_user(self, database):
        commit = Commit.create("msg", "x", "Python").to_dict()

        database.put_commit("alice", commit)

        assert database.get_commit("bob", commit["id"]) is None

    def test_history_gets_server_ids(self, database):
        record = HistoryRecord.draft("x", "Go").as_local().to_dict()

        stored = database.add_history("alice", record)

        assert not stored["id"].startswith("local-")
        assert database.delete_history("bob", stored["id"]) is False
        assert database.delete_history("alice", stored["id"]) is True
        assert database.delete_history("alice", stored["id"]) is False

    def test_get_stats(self, database):
        database.put_commit("alice", Commit.create("m", "x", "C").to_dict())

        stats = database.get_stats()

        assert stats["commit_count"] == 1
        assert stats["history_count"] == 0


class TestServerRoutes:
    """Tests for the HTTP contract."""

    def test_health(self, client):
        response = client.get("/api/health")

        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_commit_roundtrip(self, client):
        commit = Commit.create("first", "print(1)", "Python", "Alice")

        assert client.get(f"/api/users/alice/commits/{commit.id}").status_code == 404
        assert _put(client, "alice", commit).status_code == 200
        assert client.get(f"/api/users/alice/commits/{commit.id}").status_code == 200

        listing = client.get("/api/users/alice/commits").json()["commits"]
        assert [c["id"] for c in listing] == [commit.id]

    def test_put_commit_id_mismatch(self, client):
        commit = Commit.create("first", "x", "Python")

        response = client.put(
            "/api/users/alice/commits/other-id",
            json={"commit": commit.to_dict()},
        )

        assert response.status_code == 422

    def test_put_invalid_commit(self, client):
        response = client.put(
            "/api/users/alice/commits/abc",
            json={"commit": {"id": "abc"}},
        )

        assert response.status_code == 422

    def test_history_routes(self, client):
        record = HistoryRecord.draft("SELECT 1", "SQL", comment="smoke")

        created = client.post("/api/users/alice/history", json={"record": record.to_dict()})
        assert created.status_code == 200
        record_id = created.json()["id"]

        records = client.get("/api/users/alice/history").json()["records"]
        assert [r["id"] for r in records] == [record_id]

        assert client.delete(f"/api/users/bob/history/{record_id}").status_code == 404
        assert client.delete(f"/api/users/alice/history/{record_id}").status_code == 200
        assert client.delete(f"/api/users/alice/history/{record_id}").status_code == 404

    def test_allowed_users(self, database):
        config = Config(server=ServerConfig(allowed_users=["alice"]))
        client = TestClient(create_app(config, database))

        assert client.get("/api/users/alice/commits").status_code == 200
        assert client.get("/api/users/mallory/commits").status_code == 403

        stored = database.add_history("alice", HistoryRecord.draft("x", "Go").to_dict())
        denied = client.delete(f"/api/users/mallory/history/{stored['id']}")

        assert denied.status_code == 403
        assert [r["id"] for r in database.list_history("alice")] == [stored["id"]]


def _workspace(app, tmp_path, user_id: str = "alice") -> Workspace:
    config = Config(
        user=UserConfig(user_id=user_id, display_name=user_id.title()),
        storage=StorageConfig(db_path=str(tmp_path / f"{user_id}-device.db")),
        remote=RemoteConfig(url="http://testserver", max_retries=1, backoff_seconds=0),
    )
    return Workspace(config, transport=httpx.ASGITransport(app=app))


class TestEndToEnd:
    """Clients syncing through the real server application."""

    @pytest.mark.asyncio
    async def test_two_devices_converge(self, app, tmp_path):
        laptop = _workspace(app, tmp_path / "laptop")
        desktop = _workspace(app, tmp_path / "desktop")

        laptop.commits.commit("from laptop", "print('l')", "Python", "Alice")
        desktop.commits.commit("from desktop", "print('d')", "Python", "Alice")

        assert (await laptop.sync.push(laptop.identity)).status == SyncStatus.SUCCESS
        assert (await desktop.sync.push(desktop.identity)).status == SyncStatus.SUCCESS

        laptop_view = await laptop.sync.pull(laptop.identity)
        desktop_view = await desktop.sync.pull(desktop.identity)

        assert {c.message for c in laptop_view.commits} == {"from laptop", "from desktop"}
        assert [c.id for c in laptop_view.commits] == [c.id for c in desktop_view.commits]
        assert all(c.is_synced for c in laptop.commits.list())

        await laptop.close()
        await desktop.close()

    @pytest.mark.asyncio
    async def test_repeated_push_writes_once(self, app, database, tmp_path):
        ws = _workspace(app, tmp_path)
        commit = ws.commits.commit("only once", "x", "Go", "Alice")

        await ws.sync.push(ws.identity, [commit])
        result = await ws.sync.push(ws.identity, [commit])

        assert result.entries_pushed == 0
        assert result.entries_confirmed == 1
        assert len(database.list_commits("alice")) == 1
        await ws.close()

    @pytest.mark.asyncio
    async def test_denied_user_falls_back_to_local_history(self, database, tmp_path):
        app = create_app(Config(server=ServerConfig(allowed_users=["alice"])), database)
        ws = _workspace(app, tmp_path, user_id="mallory")

        saved = await ws.history.save(ws.identity, HistoryRecord.draft("x", "C"))
        loaded = await ws.history.load(ws.identity)

        assert saved.outcome is SaveOutcome.LOCAL
        assert loaded.tier is HistoryTier.LOCAL
        assert [r.id for r in loaded.records] == [saved.record.id]
        await ws.close()

    @pytest.mark.asyncio
    async def test_history_through_server(self, app, tmp_path):
        ws = _workspace(app, tmp_path)

        saved = await ws.history.save(ws.identity, HistoryRecord.draft("x", "Rust"))
        loaded = await ws.history.load(ws.identity)

        assert saved.outcome is SaveOutcome.REMOTE
        assert loaded.tier is HistoryTier.REMOTE
        assert loaded.records[0].title == "Untitled Snippet"

        deleted = await ws.history.delete(ws.identity, saved.record.id)
        assert deleted.removed_remote
        await ws.close()

    @pytest.mark.asyncio
    async def test_identity_provider_is_injectable(self, app, tmp_path):
        ws = _workspace(app, tmp_path)
        ws.identity_provider = StaticIdentityProvider("")

        result = await ws.sync.pull(ws.identity)

        assert result.status == SyncStatus.SKIPPED
        assert not isinstance(ws.identity, Authenticated)
        await ws.close()
