"""Handles the network exchange with the remote text-generation service."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx

logger = logging.getLogger(__name__)

DEFAULT_API_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_MODEL = "gemini-1.5-flash-002"
KNOWN_MODELS = (
    "gemini-1.5-flash-002",
    "gemini-1.5-flash-001",
    "gemini-1.5-flash-8b",
)
SAFETY_CATEGORIES = (
    "HARM_CATEGORY_HARASSMENT",
    "HARM_CATEGORY_HATE_SPEECH",
    "HARM_CATEGORY_SEXUALLY_EXPLICIT",
    "HARM_CATEGORY_DANGEROUS_CONTENT",
)


@dataclass(frozen=True)
class TransportResponse:
    """Status code and decoded JSON body (None when the body is not JSON) of one exchange."""
    status_code: int
    payload: Optional[Dict[str, Any]] = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


class Transport(ABC):
    """Abstract base class for the 'send prompt, receive response' collaborator."""

    @abstractmethod
    def send(self, prompt: str) -> TransportResponse:
        """
        Sends one prompt to the remote model.

        Args:
            prompt: The full instruction text.

        Returns:
            The response status and payload, for any HTTP status.

        Raises:
            Exception: On network failure, timeout, or an unreadable success body.
        """
        pass

    def close(self) -> None:
        pass


class GeminiTransport(Transport):
    """Calls the Gemini `generateContent` REST endpoint through httpx."""

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        temperature: float = 0.1,
        max_output_tokens: int = 8192,
        disable_safety_filters: bool = True,
        timeout: float = 120.0,
        api_base_url: str = DEFAULT_API_BASE_URL,
        client: Optional[httpx.Client] = None,
    ):
        """
        Initializes the GeminiTransport.

        Args:
            api_key: Google API key sent as the `key` query parameter.
            model: Model id, e.g. 'gemini-1.5-flash-002'.
            temperature: Sampling temperature; low values favor deterministic output.
            max_output_tokens: Upper bound on generated tokens.
            disable_safety_filters: Send BLOCK_NONE thresholds for every harm category.
            timeout: Per-request deadline in seconds.
            api_base_url: Base URL of the API version.
            client: Optional preconfigured httpx.Client (used by tests).
        """
        self.api_key = api_key
        self.model = model
        self.temperature = temperature
        self.max_output_tokens = max_output_tokens
        self.disable_safety_filters = disable_safety_filters
        self.url = f"{api_base_url.rstrip('/')}/models/{model}:generateContent"
        self._client = client or httpx.Client(timeout=httpx.Timeout(timeout))
        logger.info(f"Initializing GeminiTransport with model '{self.model}' (timeout {timeout}s)")

    def build_request_body(self, prompt: str) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {
                "temperature": self.temperature,
                "maxOutputTokens": self.max_output_tokens,
            },
        }
        if self.disable_safety_filters:
            body["safetySettings"] = self._safety_settings()
        return body

    @staticmethod
    def _safety_settings() -> List[Dict[str, str]]:
        return [{"category": category, "threshold": "BLOCK_NONE"} for category in SAFETY_CATEGORIES]

    def send(self, prompt: str) -> TransportResponse:
        logger.debug(f"POST {self.url} (prompt {len(prompt)} chars)")
        response = self._client.post(
            self.url,
            params={"key": self.api_key},
            json=self.build_request_body(prompt),
        )
        try:
            payload = response.json()
        except ValueError:
            if response.is_success:
                raise  # a 2xx without a JSON body is a transport failure
            payload = None
        if not isinstance(payload, dict):
            payload = None
        logger.debug(f"Received HTTP {response.status_code} from {self.model}")
        return TransportResponse(status_code=response.status_code, payload=payload)

    def close(self) -> None:
        self._client.close()
