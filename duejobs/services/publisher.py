import hashlib
import hmac
import json
import logging
from typing import Any, Dict, Optional, Protocol

import httpx

from duejobs.domain.errors import PublishPermanentError, PublishTransientError

logger = logging.getLogger(__name__)

# The router refused the envelope itself; resending it unchanged cannot succeed.
# 404 (route missing on the router) stays transient
PERMANENT_STATUS_CODES = {400, 413, 422}

class EventPublisher(Protocol):
    """
    Hands a job payload to the event-routing layer.
    Consumers subscribe by pattern on routing_key; zero subscribers is still a success.
    Raises PublishTransientError or PublishPermanentError.
    """

    async def publish(self, routing_key: str, payload: Dict[str, Any], *, message_id: str) -> None: ...

class LoggingEventPublisher:
    """
    Logs each event instead of sending it anywhere. Default for local runs.
    """

    async def publish(self, routing_key: str, payload: Dict[str, Any], *, message_id: str) -> None:
        logger.info(f"PUBLISH: ID={message_id}, RoutingKey={routing_key}, Payload={payload}")

class HttpEventPublisher:
    """
    POSTs {message_id, routing_key, payload} to an event router endpoint.

    message_id is the job's sort key, stable across redeliveries, so consumers
    can drop duplicates. With a signing key the body carries an HMAC-SHA256
    signature in X-Signature.
    """

    def __init__(
        self,
        url: str,
        signing_key: Optional[str] = None,
        timeout: float = 5.0,
        client: Optional[httpx.AsyncClient] = None
    ):
        self.url = url
        self.signing_key = signing_key
        self.client = client or httpx.AsyncClient(timeout=timeout)

    @staticmethod
    def _serialize_body(json_body: Dict[str, Any]) -> bytes:
        # Stable encoding keeps signatures deterministic and payloads compact.
        return json.dumps(json_body, sort_keys=True, separators=(",", ":")).encode("utf-8")

    def _build_headers(self, body: bytes) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.signing_key:
            headers["X-Signature"] = hmac.new(
                self.signing_key.encode("utf-8"),
                body,
                hashlib.sha256,
            ).hexdigest()
        return headers

    async def publish(self, routing_key: str, payload: Dict[str, Any], *, message_id: str) -> None:
        try:
            content = self._serialize_body({
                "message_id": message_id,
                "routing_key": routing_key,
                "payload": payload,
            })
        except (TypeError, ValueError) as e:
            raise PublishPermanentError(f"Payload is not JSON serializable: {e}") from e

        try:
            resp = await self.client.post(self.url, content=content, headers=self._build_headers(content))
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            if status_code in PERMANENT_STATUS_CODES:
                raise PublishPermanentError(f"Event router rejected {message_id}: HTTP {status_code}") from e
            raise PublishTransientError(f"Event router returned HTTP {status_code} for {message_id}") from e
        except httpx.HTTPError as e:
            # Timeouts, connection resets, DNS: all worth another try
            raise PublishTransientError(f"Publish of {message_id} failed: {type(e).__name__}: {e}") from e

    async def close(self):
        await self.client.aclose()

def build_publisher(url: Optional[str], signing_key: Optional[str] = None, timeout: float = 5.0) -> EventPublisher:
    if url:
        return HttpEventPublisher(url, signing_key=signing_key, timeout=timeout)
    return LoggingEventPublisher()
