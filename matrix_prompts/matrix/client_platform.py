"""Client platform backed by a matrix-nio AsyncClient.

Implements the ports used by the reaction handler and prompt lifecycle. nio
returns error responses instead of raising, so every call is checked and
turned into the matching MatrixTransportError.
"""

import asyncio
import logging
from typing import Any, Awaitable, Dict, Optional, Type
from urllib.parse import quote, urlencode

import aiohttp
from nio import AsyncClient, ErrorResponse
from pydantic import ValidationError

from matrix_prompts.core.exceptions import (
    EventFetchError,
    MatrixTransportError,
    MessageSendError,
    ReactionSendError,
    RedactionError,
    RelationsFetchError,
)
from matrix_prompts.matrix.metrics import matrix_api_calls_total
from matrix_prompts.reactions.models import ANNOTATION_RELATION_TYPE, RoomEvent
from matrix_prompts.reactions.ports import RelationCallback

logger = logging.getLogger(__name__)

RELATIONS_API_PATH = "/_matrix/client/v1/rooms/{room_id}/relations/{event_id}/{rel_type}/{event_type}"


class NioClientPlatform:
    """Matrix transport for reaction prompts.

    Attributes:
        client: nio AsyncClient, logged in
        op_timeout_seconds: Timeout applied to every request
        relations_page_limit: Page size when enumerating relations
    """

    def __init__(
        self,
        client: AsyncClient,
        op_timeout_seconds: float = 30.0,
        relations_page_limit: int = 50,
        ignore_unverified_devices: bool = True,
    ):
        self.client = client
        self.op_timeout_seconds = op_timeout_seconds
        self.relations_page_limit = relations_page_limit
        self.ignore_unverified_devices = ignore_unverified_devices

    async def get_event(self, room_id: str, event_id: str) -> RoomEvent:
        response = await self._call(
            EventFetchError,
            room_id,
            event_id,
            self.client.room_get_event(room_id, event_id),
        )
        source = getattr(response.event, "source", None) or {}
        try:
            return RoomEvent.from_source(source, room_id=room_id)
        except ValidationError as e:
            raise EventFetchError(
                room_id, event_id, f"unexpected event shape: {e.error_count()} errors"
            ) from e

    async def send_reaction(self, room_id: str, event_id: str, key: str) -> str:
        content = {
            "m.relates_to": {
                "rel_type": ANNOTATION_RELATION_TYPE,
                "event_id": event_id,
                "key": key,
            }
        }
        response = await self._call(
            ReactionSendError,
            room_id,
            event_id,
            self.client.room_send(
                room_id=room_id,
                message_type="m.reaction",
                content=content,
                ignore_unverified_devices=self.ignore_unverified_devices,
            ),
        )
        return response.event_id

    async def redact_event(
        self, room_id: str, event_id: str, reason: Optional[str] = None
    ) -> None:
        await self._call(
            RedactionError,
            room_id,
            event_id,
            self.client.room_redact(room_id, event_id, reason=reason),
        )

    async def send_message(self, room_id: str, content: Dict[str, Any]) -> str:
        response = await self._call(
            MessageSendError,
            room_id,
            None,
            self.client.room_send(
                room_id=room_id,
                message_type="m.room.message",
                content=content,
                ignore_unverified_devices=self.ignore_unverified_devices,
            ),
        )
        return response.event_id

    async def for_each_relation(
        self,
        room_id: str,
        event_id: str,
        *,
        relation_type: str,
        event_type: str,
        callback: RelationCallback,
    ) -> None:
        """Call ``callback`` for every related event, following pagination."""
        path = RELATIONS_API_PATH.format(
            room_id=quote(room_id, safe=""),
            event_id=quote(event_id, safe=""),
            rel_type=quote(relation_type, safe=""),
            event_type=quote(event_type, safe=""),
        )
        next_batch: Optional[str] = None
        while True:
            params = {"limit": str(self.relations_page_limit)}
            if next_batch:
                params["from"] = next_batch
            page = await self._get_relations_page(
                room_id, event_id, f"{path}?{urlencode(params)}"
            )
            chunk = page.get("chunk", [])
            if not isinstance(chunk, list):
                raise RelationsFetchError(
                    room_id, event_id, f"unexpected chunk: {type(chunk).__name__}"
                )
            for raw_event in chunk:
                if not isinstance(raw_event, dict):
                    logger.debug("Skipping non-object relation of %s", event_id)
                    continue
                try:
                    related = RoomEvent.from_source(raw_event, room_id=room_id)
                except ValidationError:
                    logger.debug("Skipping malformed relation of %s", event_id)
                    continue
                callback(related)
            next_batch = page.get("next_batch")
            if not next_batch:
                return

    async def _get_relations_page(
        self, room_id: str, event_id: str, path: str
    ) -> Dict[str, Any]:
        headers = {"Authorization": f"Bearer {self.client.access_token}"}
        try:
            response = await asyncio.wait_for(
                self.client.send("GET", path, headers=headers),
                timeout=self.op_timeout_seconds,
            )
            payload = await response.json()
        except asyncio.TimeoutError as e:
            matrix_api_calls_total.labels(method="relations", result="failure").inc()
            raise RelationsFetchError(
                room_id, event_id, f"timed out after {self.op_timeout_seconds}s"
            ) from e
        except (aiohttp.ClientError, ValueError) as e:
            matrix_api_calls_total.labels(method="relations", result="failure").inc()
            raise RelationsFetchError(room_id, event_id, str(e)) from e

        if response.status != 200 or not isinstance(payload, dict):
            matrix_api_calls_total.labels(method="relations", result="failure").inc()
            body = payload if isinstance(payload, dict) else {}
            raise RelationsFetchError(
                room_id,
                event_id,
                body.get("error", f"HTTP {response.status}"),
                body.get("errcode"),
            )
        matrix_api_calls_total.labels(method="relations", result="success").inc()
        return payload

    async def _call(
        self,
        error_cls: Type[MatrixTransportError],
        room_id: str,
        event_id: Optional[str],
        request: Awaitable[Any],
    ) -> Any:
        method = error_cls.operation
        try:
            response = await asyncio.wait_for(request, timeout=self.op_timeout_seconds)
        except asyncio.TimeoutError as e:
            matrix_api_calls_total.labels(method=method, result="failure").inc()
            raise error_cls(
                room_id, event_id, f"timed out after {self.op_timeout_seconds}s"
            ) from e
        except aiohttp.ClientError as e:
            matrix_api_calls_total.labels(method=method, result="failure").inc()
            raise error_cls(room_id, event_id, str(e)) from e

        if isinstance(response, ErrorResponse):
            matrix_api_calls_total.labels(method=method, result="failure").inc()
            raise error_cls(
                room_id, event_id, response.message, response.status_code
            )
        matrix_api_calls_total.labels(method=method, result="success").inc()
        return response
