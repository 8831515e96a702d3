"""Async HTTP client for the Ollama REST API."""
from typing import Any, Dict, List, Optional

import httpx
import structlog

from docsbot import config

logger = structlog.get_logger()

# Model listing is a liveness probe, so it gets a short timeout
TAGS_TIMEOUT = 5.0


class OllamaClient:
    """Thin wrapper over the /api/chat, /api/embeddings and /api/tags endpoints.

    Every call opens its own ``httpx.AsyncClient``; HTTP failures are
    logged with the endpoint and re-raised for the caller to translate.
    """

    def __init__(
        self,
        base_url: str = None,
        timeout: float = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize Ollama client.

        Args:
            base_url: API root (default from config)
            timeout: Request timeout in seconds (default from config)
            transport: Optional httpx transport, used by tests
        """
        self.base_url = (base_url or config.OLLAMA_BASE_URL).rstrip("/")
        self.timeout = timeout or config.OLLAMA_TIMEOUT
        self.transport = transport

    async def _request(
        self,
        method: str,
        endpoint: str,
        payload: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> Dict[str, Any]:
        url = f"{self.base_url}{endpoint}"
        try:
            async with httpx.AsyncClient(
                timeout=timeout or self.timeout,
                transport=self.transport,
            ) as client:
                response = await client.request(method, url, json=payload)
                response.raise_for_status()
                return response.json()

        except httpx.ConnectError as e:
            logger.error("ollama_unreachable", endpoint=endpoint, base_url=self.base_url, error=str(e))
            raise
        except httpx.HTTPStatusError as e:
            logger.error(
                "ollama_request_rejected",
                endpoint=endpoint,
                status_code=e.response.status_code,
                error=str(e),
            )
            raise
        except httpx.HTTPError as e:
            logger.error("ollama_request_failed", endpoint=endpoint, error=str(e))
            raise

    async def chat(
        self,
        messages: List[Dict[str, str]],
        model: str = None,
        temperature: Optional[float] = None,
    ) -> Dict[str, Any]:
        """Run a non-streaming chat completion.

        Args:
            messages: Ordered dicts with 'role' and 'content'
            model: Chat model (default from config)
            temperature: Optional sampling temperature

        Returns:
            Raw response; the reply is under ``["message"]["content"]``

        Raises:
            httpx.HTTPError: On transport or status errors
        """
        model = model or config.CHAT_MODEL
        payload: Dict[str, Any] = {"model": model, "messages": messages, "stream": False}
        if temperature is not None:
            payload["options"] = {"temperature": temperature}

        logger.info("ollama_chat_request", model=model, message_count=len(messages))
        data = await self._request("POST", "/api/chat", payload)
        logger.info(
            "ollama_chat_response",
            model=model,
            response_length=len(data.get("message", {}).get("content", "")),
        )
        return data

    async def embeddings(self, prompt: str, model: str = None) -> Dict[str, Any]:
        """Embed one prompt; the vector is under ``["embedding"]``."""
        model = model or config.EMBEDDING_MODEL
        data = await self._request("POST", "/api/embeddings", {"model": model, "prompt": prompt})
        logger.debug(
            "ollama_embedding_response",
            model=model,
            prompt_length=len(prompt),
            dimension=len(data.get("embedding") or []),
        )
        return data

    async def list_models(self) -> List[str]:
        data = await self._request("GET", "/api/tags", timeout=TAGS_TIMEOUT)
        return [m["name"] for m in data.get("models", [])]
