"""
Responder adapters that produce automated replies for AI sessions.
"""
import logging
from typing import Any, List, Optional, Sequence

import httpx

from chatrelay.config import Settings
from chatrelay.errors import ResponderError
from chatrelay.models import Message, Role

logger = logging.getLogger(__name__)

STUB_MARKER = "[stub]"
NO_RESPONSE_TEXT = "No response from the model."


class Responder:
    """Produces a reply for a prompt given the prior conversation.

    Use as an async context manager so any held connections are released.
    """

    name = "base"

    async def respond(
        self,
        prompt: str,
        history: Sequence[Message] = (),
        system_prompt: Optional[str] = None,
    ) -> str:
        raise NotImplementedError

    async def aclose(self) -> None:
        pass

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()


class StubResponder(Responder):
    """Offline placeholder used when no model credential is configured."""

    name = "stub"

    async def respond(
        self,
        prompt: str,
        history: Sequence[Message] = (),
        system_prompt: Optional[str] = None,
    ) -> str:
        reply = f'{STUB_MARKER} You asked: "{prompt}".'
        if system_prompt:
            reply += f' System prompt: "{system_prompt}".'
        return reply + " Set GEMINI_API_KEY to use the remote model."


def build_contents(prompt: str, history: Sequence[Message]) -> List[dict[str, Any]]:
    """Map history plus the new prompt to generateContent ``contents``."""
    contents = [
        {
            "role": "user" if m.role == Role.USER else "model",
            "parts": [{"text": m.text}],
        }
        for m in history
    ]
    contents.append({"role": "user", "parts": [{"text": prompt}]})
    return contents


def extract_text(data: Any) -> str:
    """First candidate's text, stripped, or NO_RESPONSE_TEXT."""
    try:
        text = data["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError):
        text = None
    if isinstance(text, str) and text.strip():
        return text.strip()
    return NO_RESPONSE_TEXT


class GeminiResponder(Responder):
    """Calls the Gemini ``generateContent`` REST endpoint."""

    name = "gemini"

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-1.5-flash",
        api_base: str = "https://generativelanguage.googleapis.com/v1beta",
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key
        self.model = model
        self.url = f"{api_base.rstrip('/')}/models/{model}:generateContent"
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def respond(
        self,
        prompt: str,
        history: Sequence[Message] = (),
        system_prompt: Optional[str] = None,
    ) -> str:
        payload: dict[str, Any] = {"contents": build_contents(prompt, history)}
        if system_prompt:
            payload["systemInstruction"] = {"parts": [{"text": system_prompt}]}

        logger.debug("Calling %s with %d history turns", self.model, len(history))
        response = await self._client.post(
            self.url,
            params={"key": self.api_key},
            json=payload,
        )
        if not response.is_success:
            raise ResponderError(response.status_code, response.text)
        return extract_text(response.json())

    async def aclose(self) -> None:
        await self._client.aclose()


def build_responder(settings: Settings) -> Responder:
    """Pick the responder once at startup from the configured credential."""
    if settings.gemini_api_key:
        logger.info("Using Gemini responder with model %s", settings.gemini_model)
        return GeminiResponder(
            api_key=settings.gemini_api_key,
            model=settings.gemini_model,
            api_base=settings.gemini_api_base,
            timeout=settings.gemini_timeout,
        )
    logger.info("GEMINI_API_KEY not set, using stub responder")
    return StubResponder()
