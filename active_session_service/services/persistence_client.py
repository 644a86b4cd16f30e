"""Client for the remote persistence API (the store of record)."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

import httpx
import structlog
from pydantic import ValidationError

from ..config import get_settings
from ..exceptions import RemoteGatewayError, UnauthorizedException
from ..http_client import ServiceClient, ServiceResponse
from ..schemas import ExerciseRef, PreviousStats, SessionDetail, SetWrite

logger = structlog.get_logger(__name__)


class PersistenceGateway:
    """
    Narrow set of calls made against the persistence API.

    Every call is scoped to the bound owner through the ``X-User-Id`` header;
    a call made without an owner raises ``UnauthorizedException`` before any
    request goes out. ``upsert_set`` is a PUT on the natural key
    ``(session, exercise, set_number)``, so repeating it never adds a row.
    """

    def __init__(
        self,
        base_url: str | None = None,
        owner_id: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        settings = get_settings()
        self.base_url = (base_url or settings.PERSISTENCE_API_URL).rstrip("/")
        self.owner_id = owner_id
        self.timeout = timeout if timeout is not None else settings.PERSISTENCE_API_TIMEOUT_SECONDS
        self._transport = transport

    def bind_owner(self, owner_id: str | None) -> None:
        self.owner_id = owner_id

    def ensure_owner(self) -> str:
        if not self.owner_id:
            logger.warning("persistence_call_without_owner")
            raise UnauthorizedException()
        return self.owner_id

    def _client(self) -> ServiceClient:
        owner_id = self.ensure_owner()
        return ServiceClient(
            base_url=self.base_url,
            headers={"X-User-Id": owner_id},
            timeout=self.timeout,
            transport=self._transport,
        )

    @staticmethod
    def _raise_for(operation: str, resp: ServiceResponse) -> None:
        if not resp.success:
            raise RemoteGatewayError(operation, status_code=resp.status_code, error=resp.error)

    async def create_session(self, routine_id: int | None = None) -> int:
        async with self._client() as client:
            resp = await client.post("/sessions", json={"routine_id": routine_id}, routine_id=routine_id)
        self._raise_for("create_session", resp)
        try:
            return int(resp.data["id"])
        except (TypeError, KeyError, ValueError) as exc:
            raise RemoteGatewayError("create_session", status_code=resp.status_code, error=str(exc)) from exc

    async def fetch_session_detail(self, session_id: int) -> SessionDetail | None:
        async with self._client() as client:
            resp = await client.get(f"/sessions/{session_id}", expected_status=(200, 404), session_id=session_id)
        self._raise_for("fetch_session_detail", resp)
        if resp.status_code == 404 or resp.data is None:
            return None
        try:
            return SessionDetail.model_validate(resp.data)
        except ValidationError as exc:
            logger.error("session_detail_invalid", session_id=session_id, error=str(exc))
            raise RemoteGatewayError("fetch_session_detail", status_code=resp.status_code, error="invalid payload") from exc

    async def fetch_previous_stats(self, exercise_id: int) -> PreviousStats | None:
        async with self._client() as client:
            resp = await client.get(
                f"/exercises/{exercise_id}/previous-stats",
                expected_status=(200, 204, 404),
                exercise_id=exercise_id,
            )
        self._raise_for("fetch_previous_stats", resp)
        if resp.status_code != 200 or not resp.data:
            return None
        try:
            return PreviousStats.model_validate(resp.data)
        except ValidationError:
            logger.warning("previous_stats_invalid", exercise_id=exercise_id, payload=resp.data)
            return None

    async def list_exercises(self) -> list[ExerciseRef]:
        async with self._client() as client:
            resp = await client.get("/exercises")
        self._raise_for("list_exercises", resp)
        exercises: list[ExerciseRef] = []
        for row in resp.data or []:
            try:
                exercises.append(ExerciseRef(id=row["id"], name=row["name"], kind=row.get("type")))
            except (TypeError, KeyError, ValidationError):
                logger.warning("catalog_row_discarded", row=row)
        return exercises

    async def upsert_set(self, session_id: int, exercise_id: int, set_number: int, payload: SetWrite) -> None:
        async with self._client() as client:
            resp = await client.put(
                f"/sessions/{session_id}/exercises/{exercise_id}/sets/{set_number}",
                json=payload.model_dump(),
                session_id=session_id,
                exercise_id=exercise_id,
                set_number=set_number,
            )
        self._raise_for("upsert_set", resp)

    async def patch_set(self, session_id: int, exercise_id: int, set_number: int, fields: dict[str, Any]) -> None:
        async with self._client() as client:
            resp = await client.patch(
                f"/sessions/{session_id}/exercises/{exercise_id}/sets/{set_number}",
                json=fields,
                session_id=session_id,
                exercise_id=exercise_id,
                set_number=set_number,
            )
        self._raise_for("patch_set", resp)

    async def finish_session(self, session_id: int, duration_seconds: int, end_time: datetime | None = None) -> datetime:
        end_time = end_time or datetime.now(UTC)
        async with self._client() as client:
            resp = await client.post(
                f"/sessions/{session_id}/finish",
                json={"duration_seconds": duration_seconds, "end_time": end_time.isoformat()},
                expected_status=(200, 204),
                session_id=session_id,
            )
        self._raise_for("finish_session", resp)
        return end_time
