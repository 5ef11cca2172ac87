"""
Support Chat — reply providers.

Every backend implements the same ReplyProvider capability. One provider is
built at startup by create_provider() and held by the orchestrator for the
life of the process; there is no per-request dispatch and no fallback chain.

Real backends send the store's system prompt, the last MAX_CHAT_HISTORY
transcript messages and the new user message, and classify their own
failures into the ProviderError subclasses in exceptions.py.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Protocol, Sequence

import httpx
import openai
from openai import AsyncOpenAI

from .config import Settings
from .exceptions import (
    EmptyProviderResponse,
    MissingCredential,
    ProviderAuthError,
    ProviderError,
    ProviderRateLimited,
    ProviderTimeout,
    ProviderUnreachable,
    error_for_status,
)
from .models import Message, Sender

logger = logging.getLogger(__name__)

HISTORY_WINDOW = 10
TEMPERATURE = 0.7

STORE_FAQ = """
Store Information:
- Shipping Policy: We offer free shipping on orders over $50. Standard shipping takes 5-7 business days. Express shipping (2-3 days) is available for $15.
- Return/Refund Policy: We accept returns within 30 days of purchase. Items must be unused and in original packaging. Refunds are processed within 5-10 business days.
- Support Hours: Our customer support team is available Monday-Friday, 9 AM - 6 PM EST. We aim to respond to all inquiries within 24 hours.
- Contact: You can reach us at support@example.com or call 1-800-123-4567.
"""

SYSTEM_PROMPT = f"""You are a helpful support agent for a small e-commerce store. Answer clearly and concisely.

{STORE_FAQ}

Be friendly, professional, and helpful. If you don't know something, admit it and offer to connect the user with a human agent."""


class ReplyProvider(Protocol):
    """Turns a transcript plus the new user message into reply text.

    `history` is the persisted transcript and already ends with the user turn
    carrying `new_message` (the orchestrator stores it before asking for a
    reply). A history that does not end with that turn gets it appended, so
    callers holding an unsaved message may pass the prior transcript instead;
    they must not pass a transcript whose last entry is an earlier user turn
    with the same text.
    """

    name: str

    async def generate_reply(self, history: Sequence[Message], new_message: str) -> str:
        ...


# --------------- Prompt helpers ---------------

def window_history(history: Sequence[Message], limit: int = HISTORY_WINDOW) -> List[Message]:
    """Most recent `limit` messages, oldest first."""
    if limit <= 0:
        return []
    return list(history)[-limit:]


def _ends_with(window: Sequence[Message], new_message: str) -> bool:
    return bool(window) and window[-1].sender == Sender.USER and window[-1].text == new_message


def build_chat_messages(
    history: Sequence[Message], new_message: str, limit: int = HISTORY_WINDOW
) -> List[Dict[str, str]]:
    """Role/content list for chat-completion style APIs."""
    window = window_history(history, limit)
    messages = [{"role": "system", "content": SYSTEM_PROMPT}]
    for msg in window:
        role = "user" if msg.sender == Sender.USER else "assistant"
        messages.append({"role": role, "content": msg.text})
    # A trailing user turn with this text is the new message itself; see ReplyProvider.
    if not _ends_with(window, new_message):
        messages.append({"role": "user", "content": new_message})
    return messages


def build_text_prompt(
    history: Sequence[Message], new_message: str, limit: int = HISTORY_WINDOW
) -> str:
    """Single-string prompt for plain text-generation APIs."""
    lines = []
    for item in build_chat_messages(history, new_message, limit)[1:]:
        role = "User" if item["role"] == "user" else "Assistant"
        lines.append(f"{role}: {item['content']}")
    return SYSTEM_PROMPT + "\n\n" + "\n".join(lines) + "\nAssistant:"


# --------------- Mock ---------------

MOCK_REPLIES = {
    "shipping": "We offer free shipping on orders over $50! Standard shipping takes 5-7 business days, and express shipping (2-3 days) is available for $15. We ship to most locations worldwide.",
    "returns": "We accept returns within 30 days of purchase. Items must be unused and in original packaging. Refunds are processed within 5-10 business days after we receive your return.",
    "support": "Our customer support team is available Monday-Friday, 9 AM - 6 PM EST. You can reach us at support@example.com or call 1-800-123-4567. We aim to respond to all inquiries within 24 hours!",
    "greeting": "Hello! Welcome to our store! I'm here to help you with any questions about shipping, returns, support hours, or anything else. How can I assist you today?",
    "fallback": "Thanks for your question! I'm currently running in demo mode. In production, I would provide detailed answers about our shipping policies, return process, and support hours. Feel free to ask about these topics to see example responses!",
}

# Checked in order; the first category with a matching keyword wins.
MOCK_KEYWORDS = (
    ("shipping", ("ship",)),
    ("returns", ("return", "refund")),
    ("support", ("support", "hours", "contact")),
    ("greeting", ("hello", "hi", "hey")),
)


def classify_message(text: str) -> str:
    lowered = text.lower()
    for category, keywords in MOCK_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return category
    return "fallback"


class MockProvider:
    """Canned keyword replies for demos and tests. Never fails."""

    name = "mock"

    def __init__(self, delay_seconds: float = 1.0):
        self.delay_seconds = delay_seconds

    async def generate_reply(self, history: Sequence[Message], new_message: str) -> str:
        if self.delay_seconds > 0:
            await asyncio.sleep(self.delay_seconds)
        return MOCK_REPLIES[classify_message(new_message)]


# --------------- OpenAI ---------------

class OpenAIProvider:
    name = "openai"

    def __init__(self, settings: Settings, client: Optional[AsyncOpenAI] = None):
        self._settings = settings
        self._client = client

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            if not self._settings.openai_api_key:
                raise MissingCredential("OPENAI_API_KEY")
            self._client = AsyncOpenAI(
                api_key=self._settings.openai_api_key,
                timeout=self._settings.llm_timeout_seconds,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.close()

    async def generate_reply(self, history: Sequence[Message], new_message: str) -> str:
        client = self._get_client()
        messages = build_chat_messages(history, new_message, self._settings.max_chat_history)
        try:
            response = await client.chat.completions.create(
                model=self._settings.model,
                messages=messages,
                max_tokens=self._settings.max_tokens,
                temperature=TEMPERATURE,
            )
        # APITimeoutError subclasses APIConnectionError, so it goes first.
        except openai.APITimeoutError as e:
            raise ProviderTimeout(self.name, str(e))
        except openai.APIConnectionError as e:
            raise ProviderUnreachable(self.name, str(e))
        except (openai.AuthenticationError, openai.PermissionDeniedError) as e:
            raise ProviderAuthError(self.name, str(e), e.status_code)
        except openai.RateLimitError as e:
            raise ProviderRateLimited(self.name, str(e), e.status_code)
        except openai.APIStatusError as e:
            raise ProviderError(self.name, str(e), e.status_code)

        reply = response.choices[0].message.content if response.choices else None
        if not reply or not reply.strip():
            raise EmptyProviderResponse(self.name, "No response from OpenAI")
        return reply


# --------------- httpx-based backends ---------------

class _HttpProvider:
    """Shared request handling for backends called with plain httpx."""

    name = "http"

    def __init__(self, settings: Settings, http_client: Optional[httpx.AsyncClient] = None):
        self._settings = settings
        self._http_client = http_client

    def _get_http_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self._settings.llm_timeout_seconds)
        return self._http_client

    async def _post(self, url: str, payload: Dict[str, Any], headers: Dict[str, str]) -> Any:
        client = self._get_http_client()
        try:
            response = await client.post(url, json=payload, headers=headers)
        except httpx.TimeoutException as e:
            raise ProviderTimeout(self.name, str(e))
        except httpx.RequestError as e:
            raise ProviderUnreachable(self.name, str(e))
        if response.status_code != 200:
            raise error_for_status(self.name, response.status_code, response.text[:500])
        try:
            return response.json()
        except ValueError:
            raise EmptyProviderResponse(self.name, "Response body was not JSON")

    async def aclose(self) -> None:
        if self._http_client is not None:
            await self._http_client.aclose()


class GeminiProvider(_HttpProvider):
    name = "gemini"

    API_URL = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"

    async def generate_reply(self, history: Sequence[Message], new_message: str) -> str:
        api_key = self._settings.gemini_api_key
        if not api_key:
            raise MissingCredential("GEMINI_API_KEY")

        prompt = build_text_prompt(history, new_message, self._settings.max_chat_history)
        data = await self._post(
            self.API_URL.format(model=self._settings.model),
            {
                "contents": [{"role": "user", "parts": [{"text": prompt}]}],
                "generationConfig": {
                    "maxOutputTokens": self._settings.max_tokens,
                    "temperature": TEMPERATURE,
                },
            },
            {"x-goog-api-key": api_key, "Content-Type": "application/json"},
        )

        parts = []
        candidates = data.get("candidates") if isinstance(data, dict) else None
        if candidates:
            parts = (candidates[0].get("content") or {}).get("parts") or []
        text = "".join(part.get("text", "") for part in parts)
        if not text.strip():
            raise EmptyProviderResponse(self.name, "No response from Gemini")
        return text


class HuggingFaceProvider(_HttpProvider):
    name = "huggingface"

    async def generate_reply(self, history: Sequence[Message], new_message: str) -> str:
        api_key = self._settings.huggingface_api_key
        if not api_key:
            raise MissingCredential("HUGGINGFACE_API_KEY")

        prompt = build_text_prompt(history, new_message, self._settings.max_chat_history)
        data = await self._post(
            f"{self._settings.huggingface_api_url.rstrip('/')}/{self._settings.model}",
            {
                "inputs": prompt,
                "parameters": {
                    "max_new_tokens": self._settings.max_tokens,
                    "temperature": TEMPERATURE,
                },
            },
            {"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"},
        )

        generated = ""
        if isinstance(data, list) and data and isinstance(data[0], dict):
            generated = data[0].get("generated_text") or ""
        # Text-generation endpoints echo the prompt; keep what follows the last marker.
        reply = generated.split("Assistant:")[-1].strip()
        if not reply:
            raise EmptyProviderResponse(self.name, "No response from Hugging Face")
        return reply


def create_provider(settings: Settings) -> ReplyProvider:
    """Build the single provider this process will use."""
    if settings.use_mock_ai:
        provider: ReplyProvider = MockProvider(settings.mock_delay_seconds)
    elif settings.llm_provider == "gemini":
        provider = GeminiProvider(settings)
    elif settings.llm_provider == "huggingface":
        provider = HuggingFaceProvider(settings)
    else:
        provider = OpenAIProvider(settings)
    logger.info("Reply provider: %s (model: %s)", provider.name, settings.model)
    return provider
