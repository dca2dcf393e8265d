import logging
from datetime import datetime
from typing import Any, Dict, Optional

import httpx

from app.integrations.events import StockChangeEvent

logger = logging.getLogger(__name__)

DEFAULT_WORKER_TIMEOUT = 5.0


def build_ingress_event(event: StockChangeEvent, occurred_at: datetime) -> Dict[str, Any]:
    """Shape expected by the worker's /ingest endpoint"""
    return {
        "type": "product.stock.updated",
        "occurredAt": occurred_at.isoformat(),
        "data": {
            "productId": event.product_id,
            "stock": event.stock,
            "threshold": event.threshold,
            "name": event.name,
            "sku": event.sku,
        },
    }


class WorkerIngressTransport:
    """
    Forwards low-stock events to an external worker ingress URL.

    An unset URL turns every send into a silent no-op.
    """

    def __init__(
        self,
        ingress_url: str,
        shared_secret: str = "",
        timeout: float = DEFAULT_WORKER_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.ingress_url = ingress_url or ""
        self.shared_secret = shared_secret or ""
        self.timeout = timeout
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.ingress_url)

    async def send(self, body: Dict[str, Any]) -> bool:
        if not self.configured:
            return False

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(
                    self.ingress_url,
                    json=body,
                    headers={"x-shared-secret": self.shared_secret},
                )
        except httpx.TimeoutException:
            logger.warning("Worker ingress timed out after %.1fs", self.timeout)
            return False
        except httpx.HTTPError as e:
            logger.error(f"Failed to emit stock event: {str(e)}")
            return False

        if not response.is_success:
            logger.error("Worker ingress error %s: %s", response.status_code, response.text)
            return False
        return True
