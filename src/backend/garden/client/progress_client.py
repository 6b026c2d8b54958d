"""Caller-side delivery of progress updates.

A participant device submits each completed activity at least once: first
over the duplex channel if one is available, then over HTTP with bounded
retries, and finally into a local pending queue that is replayed later. The
server accepts repeats as no-ops, so replays are safe.

The duplex channel is supplied by the caller as a ``DuplexTransport``: an
object whose ``submit`` sends an ``update-submitted`` event over the
``/api/socket`` connection it owns and returns the matching
``update-acknowledged`` or ``update-rejected`` reply. Without one, delivery
starts at HTTP.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Protocol
from uuid import uuid4

import httpx

from garden.client.pending_queue import PendingQueue
from garden.schemas.events import UPDATE_ACKNOWLEDGED, UPDATE_SUBMITTED
from garden.schemas.participant import ProgressUpdate
from garden.services.errors import NotFound, PortalError, TransportTimeout, ValidationError

logger = logging.getLogger(__name__)

UPDATE_PATH = "/api/users/update-progress"


class DuplexTransport(Protocol):
    async def submit(self, event: dict[str, Any]) -> dict[str, Any]: ...


@dataclass
class DeliveryResult:
    request_id: str
    delivered: bool
    queued: bool = False
    transport: str | None = None
    final_level: int | None = None


def _client_error(status_code: int, detail: str) -> PortalError:
    if status_code == 404:
        return NotFound(detail or "User not found")
    return ValidationError(detail or f"Update rejected with status {status_code}")


def _final_level(response: httpx.Response) -> int | None:
    try:
        return int(response.json()["finalLevel"])
    except (ValueError, KeyError, TypeError):
        return None


def _response_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text
    detail = body.get("detail") if isinstance(body, dict) else None
    return detail if isinstance(detail, str) else str(detail or body)


class ProgressClient:
    def __init__(
        self,
        http: httpx.AsyncClient,
        *,
        duplex: DuplexTransport | None = None,
        pending: PendingQueue | None = None,
        ack_timeout_seconds: float = 5.0,
        max_attempts: int = 3,
        backoff_seconds: float = 0.5,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.http = http
        self.duplex = duplex
        self.pending = pending
        self.ack_timeout_seconds = ack_timeout_seconds
        self.max_attempts = max(1, max_attempts)
        self.backoff_seconds = backoff_seconds
        self._sleep = sleep

    async def submit(self, update: ProgressUpdate) -> DeliveryResult:
        payload = update.model_dump(mode="json", by_alias=True, exclude_none=True)
        request_id = f"req-{uuid4().hex[:12]}"

        if self.duplex is not None:
            final_level = await self._submit_duplex(self.duplex, request_id, payload)
            if final_level is not None:
                return DeliveryResult(request_id, True, transport="duplex", final_level=final_level)

        final_level = await self._submit_http(request_id, payload)
        if final_level is not None:
            return DeliveryResult(request_id, True, transport="http", final_level=final_level)

        if self.pending is None:
            logger.error("Update %s could not be delivered and no pending queue is set", request_id)
            return DeliveryResult(request_id, False)
        self.pending.enqueue(request_id, payload)
        logger.warning("Update %s queued for later delivery", request_id)
        return DeliveryResult(request_id, False, queued=True)

    async def flush_pending(self) -> int:
        if self.pending is None:
            return 0

        settled: set[str] = set()
        failed: set[str] = set()
        delivered = 0
        for item in self.pending.items():
            try:
                final_level = await self._submit_http(item.request_id, item.payload)
            except (NotFound, ValidationError) as exc:
                logger.error("Dropping pending update %s: %s", item.request_id, exc)
                settled.add(item.request_id)
                continue
            if final_level is None:
                failed.add(item.request_id)
            else:
                settled.add(item.request_id)
                delivered += 1

        remaining = []
        for item in self.pending.items():
            if item.request_id in settled:
                continue
            if item.request_id in failed:
                item.attempts += 1
            remaining.append(item)
        self.pending.replace(remaining)
        return delivered

    async def _submit_duplex(
        self, duplex: DuplexTransport, request_id: str, payload: dict[str, Any]
    ) -> int | None:
        event = {"type": UPDATE_SUBMITTED, "requestId": request_id, "payload": payload}
        try:
            ack = await asyncio.wait_for(duplex.submit(event), timeout=self.ack_timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning("%s (%s); falling back to HTTP", TransportTimeout(), request_id)
            return None
        except Exception as exc:
            # Disconnects surface as library-specific types (WebSocketDisconnect,
            # ConnectionClosed); all of them fall back.
            logger.warning("Duplex submit %s failed (%s); falling back to HTTP", request_id, exc)
            return None

        if ack.get("type") == UPDATE_ACKNOWLEDGED:
            return int(ack["finalLevel"])

        status_code = int(ack.get("statusCode") or 500)
        if status_code < 500:
            raise _client_error(status_code, str(ack.get("error") or ""))
        logger.warning("Duplex submit %s rejected by server (%s); falling back to HTTP", request_id, ack.get("error"))
        return None

    async def _submit_http(self, request_id: str, payload: dict[str, Any]) -> int | None:
        for attempt in range(1, self.max_attempts + 1):
            try:
                response = await self.http.post(UPDATE_PATH, json=payload)
            except httpx.TransportError as exc:
                logger.warning("HTTP submit %s attempt %d failed: %s", request_id, attempt, exc)
            else:
                if response.is_success:
                    final_level = _final_level(response)
                    if final_level is not None:
                        return final_level
                    logger.warning(
                        "HTTP submit %s attempt %d returned an unreadable body", request_id, attempt
                    )
                elif response.status_code < 500:
                    raise _client_error(response.status_code, _response_detail(response))
                else:
                    logger.warning(
                        "HTTP submit %s attempt %d returned %d", request_id, attempt, response.status_code
                    )
            if attempt < self.max_attempts:
                await self._sleep(self.backoff_seconds * 2 ** (attempt - 1))
        return None
