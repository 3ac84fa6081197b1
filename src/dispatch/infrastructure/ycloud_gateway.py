"""
YCloud WhatsApp Gateway
One HTTP call per message; failures surface as DeliveryError, never retried.
"""
from __future__ import annotations

from typing import Any, Dict, Optional

import httpx

from dispatch.domain.entities import ClinicCredentials, DeliveryReceipt, RenderedMessage
from dispatch.domain.exceptions import DeliveryError
from dispatch.domain.protocols import DeliveryGateway
from dispatch.domain.value_objects import MessageKind
from shared.observability.logger import get_logger

logger = get_logger(__name__)

DEFAULT_BASE_URL = "https://api.ycloud.com/v2"


def build_message_payload(to: str, message: RenderedMessage, sender: Optional[str] = None) -> Dict[str, Any]:
    """Build the YCloud /whatsapp/messages request body."""
    payload: Dict[str, Any] = {"to": to}
    if sender:
        payload["from"] = sender

    if message.kind is MessageKind.TEXT:
        payload["type"] = "text"
        payload["text"] = {"body": message.text or ""}
        return payload

    template: Dict[str, Any] = {
        "name": message.template_name,
        "language": {"code": message.language},
    }
    if message.parameters:
        template["components"] = [{
            "type": "body",
            "parameters": [{"type": "text", "text": p} for p in message.parameters],
        }]
    payload["type"] = "template"
    payload["template"] = template
    return payload


class YCloudGateway(DeliveryGateway):
    """
    DeliveryGateway backed by the YCloud WhatsApp API.

    Authenticates every request with the clinic's key in the X-API-Key
    header. An httpx client may be injected (tests pass one over
    httpx.MockTransport); otherwise the gateway owns its own.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 15.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout))

    async def send(
        self,
        credentials: ClinicCredentials,
        to: str,
        message: RenderedMessage,
    ) -> DeliveryReceipt:
        if not credentials.is_configured:
            raise DeliveryError("missing_credentials", "Clinic API key is not configured")

        url = f"{self.base_url}/whatsapp/messages"
        headers = {
            "Content-Type": "application/json",
            "X-API-Key": credentials.api_key or "",
        }
        payload = build_message_payload(to, message, credentials.sender)

        try:
            response = await self.client.post(url, headers=headers, json=payload)
        except httpx.TimeoutException as e:
            logger.warning("provider_timeout", to=to, error=str(e))
            raise DeliveryError("timeout", "Request to messaging provider timed out") from e
        except httpx.HTTPError as e:
            logger.warning("provider_transport_error", to=to, error=str(e))
            raise DeliveryError("transport_error", str(e) or e.__class__.__name__) from e
        except (httpx.InvalidURL, ValueError) as e:
            # Unencodable header value (e.g. a non-ASCII API key) or a malformed URL
            logger.warning("provider_invalid_request", to=to, error=str(e))
            raise DeliveryError("invalid_request", str(e) or e.__class__.__name__) from e

        data = self._json(response)

        if not response.is_success:
            code = self._error_code(data) or str(response.status_code)
            message_text = self._error_message(data) or f"Provider returned HTTP {response.status_code}"
            logger.warning(
                "provider_rejected",
                to=to,
                status_code=response.status_code,
                error_code=code,
                error=message_text,
            )
            raise DeliveryError(code, message_text, status_code=response.status_code)

        message_id = data.get("id")
        if not message_id:
            raise DeliveryError("invalid_response", "Provider response has no message id", response.status_code)

        return DeliveryReceipt(message_id=str(message_id), status=str(data.get("status") or "sent"))

    @staticmethod
    def _json(response: httpx.Response) -> Dict[str, Any]:
        try:
            data = response.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}

    @staticmethod
    def _error_code(data: Dict[str, Any]) -> Optional[str]:
        error = data.get("error")
        if isinstance(error, dict) and error.get("code"):
            return str(error["code"])
        if data.get("code"):
            return str(data["code"])
        return None

    @staticmethod
    def _error_message(data: Dict[str, Any]) -> Optional[str]:
        error = data.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str) and error:
            return error
        if data.get("message"):
            return str(data["message"])
        return None

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    async def __aenter__(self) -> "YCloudGateway":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()
