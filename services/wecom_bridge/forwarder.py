import asyncio
import json
import logging
from typing import Optional

import httpx

from services.wecom_bridge.config import BridgeConfig
from services.wecom_bridge.errors import ForwardError
from services.wecom_bridge.models import NormalizedEvent

logger = logging.getLogger(__name__)

# Response text kept in forward error logs
ERROR_BODY_LIMIT = 300


class Forwarder:
    """Best-effort relay of normalized events to the downstream hook.

    Each event is posted once. Failures are logged and reported as ``False``;
    nothing is raised to the caller and nothing is retried.
    """

    def __init__(self, config: BridgeConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._url = config.forward_url
        self._token = config.hook_token
        self._timeout = config.forward_timeout
        self._client = httpx.AsyncClient(timeout=self._timeout, transport=transport)

    @property
    def url(self) -> str:
        return self._url

    async def _post(self, event: NormalizedEvent) -> None:
        response = await self._client.post(
            self._url,
            json=event.to_payload(),
            headers={
                "Authorization": f"Bearer {self._token}",
                "Content-Type": "application/json",
            },
        )
        if not response.is_success:
            text = response.text[:ERROR_BODY_LIMIT]
            raise ForwardError(
                f"forward failed {response.status_code}: {text}",
                status=response.status_code,
                body=text,
            )

    async def forward(self, event: NormalizedEvent) -> bool:
        try:
            await asyncio.wait_for(self._post(event), timeout=self._timeout)
        except ForwardError as e:
            logger.error(json.dumps({
                "event": "wecom_bridge.forward.error",
                "url": self._url,
                "status": e.status,
                "body": e.body,
                "msg_type": event.msg_type,
                "error": e.detail
            }))
            return False
        except asyncio.TimeoutError:
            logger.error(json.dumps({
                "event": "wecom_bridge.forward.error",
                "url": self._url,
                "status": None,
                "msg_type": event.msg_type,
                "error": f"timed out after {self._timeout}s"
            }))
            return False
        except httpx.HTTPError as e:
            logger.error(json.dumps({
                "event": "wecom_bridge.forward.error",
                "url": self._url,
                "status": None,
                "msg_type": event.msg_type,
                "error": str(e) or type(e).__name__
            }))
            return False
        except Exception as e:
            logger.error(json.dumps({
                "event": "wecom_bridge.forward.error",
                "url": self._url,
                "status": None,
                "msg_type": event.msg_type,
                "error": f"{type(e).__name__}: {e}"
            }))
            return False

        logger.info(json.dumps({
            "event": "wecom_bridge.forward.success",
            "url": self._url,
            "msg_type": event.msg_type,
            "msg_id": event.msg_id
        }))
        return True

    async def aclose(self) -> None:
        await self._client.aclose()
