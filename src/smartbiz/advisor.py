from __future__ import annotations

import json
import time
import uuid
from typing import Any, List, Optional

import httpx
from openai import OpenAI, APIConnectionError, APITimeoutError, APIStatusError

from .config import AdvisorSettings
from .domain.constants import CURRENCY_SYMBOL, ROLE_MODEL, ROLE_USER
from .domain.models import AppSnapshot, ChatMessage
from .logging import get_logger


LOG = get_logger("advisor")

RECENT_TRANSACTIONS = 5

EMPTY_REPLY = "I couldn't generate a response at the moment. Please try again."
UNAVAILABLE_REPLY = (
    "Sorry, I'm having trouble connecting to the AI service right now. "
    "Please check your internet connection."
)
WELCOME_TEXT = (
    "Hello! I am SmartBiz AI. I can analyze your sales, inventory, and profit to give you "
    "business advice. What would you like to know?"
)


def build_context(snapshot: AppSnapshot) -> str:
    """Compact business summary prepended to every advisor query."""
    low = ", ".join(f"{p.name} ({p.stock} left)" for p in snapshot.low_stock()) or "None"
    recent = json.dumps(
        [t.as_dict() for t in snapshot.transactions[:RECENT_TRANSACTIONS]], ensure_ascii=False
    )
    return (
        "You are SmartBiz AI, an expert business consultant for small shop owners "
        "(e.g., kirana, salon, cafe).\n"
        "\n"
        "Current Business Data Context:\n"
        f"- Currency: Indian Rupee ({CURRENCY_SYMBOL})\n"
        f"- Inventory Count: {len(snapshot.inventory)} items\n"
        f"- Low Stock Items: {low}\n"
        f"- Total Transactions: {len(snapshot.transactions)}\n"
        f"- Recent Transactions (Last {RECENT_TRANSACTIONS}): {recent}\n"
        "\n"
        "Your Goal:\n"
        "- Provide actionable, short, and simple advice.\n"
        "- Focus on profitability, inventory management, and customer retention.\n"
        "- If the user asks about their data, use the provided context to answer accurately.\n"
        "- Keep the tone encouraging and professional but easy to understand."
    )


def build_prompt(query: str, snapshot: AppSnapshot) -> str:
    return f"{build_context(snapshot)}\n\nUser Query: {query}"


class BusinessAdvisor:
    """Single request/response call to an OpenAI-compatible chat completions API.

    Never raises on API trouble: failures are logged and turned into a
    fixed apology so the chat keeps working.
    """

    def __init__(self, settings: AdvisorSettings, *, client: Optional[Any] = None) -> None:
        self.settings = settings
        self._client = client

    def _get_client(self) -> Optional[Any]:
        if self._client is not None:
            return self._client
        if not self.settings.api_key:
            return None
        http_client = httpx.Client(
            timeout=httpx.Timeout(connect=10.0, read=float(self.settings.timeout), write=30.0, pool=10.0),
        )
        self._client = OpenAI(
            api_key=self.settings.api_key,
            base_url=self.settings.base_url,
            http_client=http_client,
            max_retries=0,
        )
        return self._client

    def ask(self, query: str, snapshot: AppSnapshot) -> str:
        client = self._get_client()
        if client is None:
            LOG.warning("Advisor called without OPENAI_API_KEY configured")
            return UNAVAILABLE_REPLY

        t0 = time.perf_counter()
        try:
            resp = client.chat.completions.create(
                model=self.settings.model,
                messages=[{"role": "user", "content": build_prompt(query, snapshot)}],
                stream=False,
            )
        except (APIConnectionError, APITimeoutError) as e:
            LOG.error("Network/timeout while calling the advisor API: %s", e)
            return UNAVAILABLE_REPLY
        except APIStatusError as e:
            body = getattr(getattr(e, "response", None), "text", None)
            LOG.error(
                "Advisor API returned %s. Body preview: %r",
                getattr(e, "status_code", "?"),
                (body[:300] if body else None),
            )
            return UNAVAILABLE_REPLY

        choices = getattr(resp, "choices", None) or []
        text = choices[0].message.content if choices else None
        LOG.info("Advisor replied in %.2fs model=%s (%s)", time.perf_counter() - t0, self.settings.model, "ok" if text else "empty")
        return text.strip() if text and text.strip() else EMPTY_REPLY


class Conversation:
    """Chat transcript for one signed-in session, opened by a welcome message."""

    def __init__(self, advisor: BusinessAdvisor) -> None:
        self.advisor = advisor
        self.messages: List[ChatMessage] = [
            ChatMessage(id="welcome", role=ROLE_MODEL, text=WELCOME_TEXT, timestamp=time.time())
        ]

    def send(self, query: str, snapshot: AppSnapshot) -> Optional[ChatMessage]:
        """Append the user's message and the advisor's reply; blank input is ignored."""
        if not query or not query.strip():
            return None
        self.messages.append(ChatMessage(id=str(uuid.uuid4()), role=ROLE_USER, text=query, timestamp=time.time()))
        reply = self.advisor.ask(query, snapshot)
        message = ChatMessage(id=str(uuid.uuid4()), role=ROLE_MODEL, text=reply, timestamp=time.time())
        self.messages.append(message)
        return message
