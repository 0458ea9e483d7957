"""
Inference backends for LLM nodes.

The engine only depends on the InferenceBackend protocol. The default
implementation calls the Cloudflare Workers AI REST API.
"""

from typing import Any, Dict, List, Optional, Protocol
from dataclasses import dataclass
import logging

import httpx


logger = logging.getLogger(__name__)


class InferenceError(RuntimeError):
    """The inference backend could not produce a completion."""


@dataclass
class InferenceResult:
    """Completion returned by a backend."""
    text: str
    raw: Optional[Dict[str, Any]] = None


class InferenceBackend(Protocol):
    """Anything that can turn chat messages into a completion."""

    async def infer(
        self,
        model: str,
        messages: List[Dict[str, str]],
        temperature: float,
    ) -> InferenceResult:
        ...


class WorkersAIBackend:
    """
    Cloudflare Workers AI over its REST API.

    Usage:
        backend = WorkersAIBackend(client, account_id="...", api_token="...")
        result = await backend.infer(model, [{"role": "user", "content": "hi"}], 0.7)
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        account_id: Optional[str],
        api_token: Optional[str],
        base_url: str = "https://api.cloudflare.com/client/v4",
    ):
        self.client = client
        self.account_id = account_id
        self.api_token = api_token
        self.base_url = base_url.rstrip("/")

    async def infer(
        self,
        model: str,
        messages: List[Dict[str, str]],
        temperature: float,
    ) -> InferenceResult:
        if not self.account_id or not self.api_token:
            raise InferenceError("Workers AI credentials are not configured")

        url = f"{self.base_url}/accounts/{self.account_id}/ai/run/{model}"
        logger.debug(f"Calling Workers AI model {model}")

        try:
            response = await self.client.post(
                url,
                headers={"Authorization": f"Bearer {self.api_token}"},
                json={"messages": messages, "temperature": temperature},
            )
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPStatusError as e:
            raise InferenceError(
                f"Workers AI returned {e.response.status_code} for model {model}"
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            raise InferenceError(f"Workers AI request failed: {e}") from e

        result = body.get("result") or {}
        text = result.get("response")
        if text is None:
            text = result.get("text")
        if text is None:
            errors = body.get("errors") or []
            raise InferenceError(f"Workers AI returned no text: {errors}")

        return InferenceResult(text=text, raw=body)
