"""FastAPI application implementing the codeflow remote store contract."""

import logging
from datetime import datetime
from typing import Any

from fastapi import Body, FastAPI, HTTPException, Response

from .. import __version__
from ..config import Config
from ..errors import ValidationError
from ..history.record import HistoryRecord
from ..vcs.commit_log import Commit
from .database import RemoteDatabase

logger = logging.getLogger(__name__)


def create_app(config: Config, database: RemoteDatabase) -> FastAPI:
    """Create the remote store application.

    Args:
        config: Application configuration; ``server.allowed_users`` restricts
            which users may read and write.
        database: Storage for commits and history.

    Returns:
        Configured FastAPI application.
    """
    app = FastAPI(
        title="Codeflow Remote",
        description="Cloud store for codeflow commits and run history",
        version=__version__,
    )

    # Store references for route handlers
    app.state.config = config
    app.state.database = database

    allowed = set(config.server.allowed_users)

    def authorize(user_id: str) -> None:
        if allowed and user_id not in allowed:
            logger.warning(f"Rejected request for user {user_id}")
            raise HTTPException(status_code=403, detail="permission denied")

    # ==================== Health ====================

    @app.get("/api/health")
    async def api_health() -> dict[str, Any]:
        """Health check endpoint."""
        health = {
            "status": "ok",
            "timestamp": datetime.now().isoformat(),
        }

        try:
            health.update(database.get_stats())
        except Exception as e:
            health["database_error"] = str(e)

        return health

    # ==================== Commits ====================

    @app.get("/api/users/{user_id}/commits")
    async def list_commits(user_id: str) -> dict[str, Any]:
        authorize(user_id)
        return {"commits": database.list_commits(user_id)}

    @app.get("/api/users/{user_id}/commits/{commit_id}")
    async def get_commit(user_id: str, commit_id: str) -> dict[str, Any]:
        authorize(user_id)
        commit = database.get_commit(user_id, commit_id)
        if commit is None:
            raise HTTPException(status_code=404, detail="commit not found")
        return commit

    @app.put("/api/users/{user_id}/commits/{commit_id}")
    async def put_commit(
        user_id: str,
        commit_id: str,
        payload: dict[str, Any] = Body(...),
    ) -> dict[str, Any]:
        authorize(user_id)

        try:
            commit = Commit.from_dict(payload["commit"])
        except (KeyError, TypeError, ValueError, ValidationError) as e:
            raise HTTPException(status_code=422, detail=f"invalid commit: {e}")

        if commit.id != commit_id:
            raise HTTPException(status_code=422, detail="commit id mismatch")
        if not commit.message.strip():
            raise HTTPException(status_code=422, detail="empty commit message")

        return database.put_commit(
            user_id,
            commit.to_dict(),
            server_timestamp=bool(payload.get("server_timestamp", True)),
        )

    # ==================== History ====================

    @app.get("/api/users/{user_id}/history")
    async def list_history(user_id: str) -> dict[str, Any]:
        authorize(user_id)
        return {"records": database.list_history(user_id)}

    @app.post("/api/users/{user_id}/history")
    async def add_history(
        user_id: str,
        payload: dict[str, Any] = Body(...),
    ) -> dict[str, Any]:
        authorize(user_id)

        data = payload.get("record") or {}
        try:
            record = HistoryRecord.from_dict({**data, "id": data.get("id") or "new"})
        except (KeyError, TypeError, ValueError, ValidationError) as e:
            raise HTTPException(status_code=422, detail=f"invalid record: {e}")

        return database.add_history(user_id, record.to_dict())

    @app.delete("/api/users/{user_id}/history/{record_id}")
    async def delete_history(user_id: str, record_id: str) -> Response:
        authorize(user_id)

        if not database.delete_history(user_id, record_id):
            raise HTTPException(status_code=404, detail="record not found")
        return Response(status_code=200)

    return app
