from __future__ import annotations

from types import SimpleNamespace
from typing import Any, Dict, List, Optional

import httpx
from openai import APIConnectionError, APIStatusError

from smartbiz.advisor import (
    EMPTY_REPLY,
    UNAVAILABLE_REPLY,
    WELCOME_TEXT,
    BusinessAdvisor,
    Conversation,
    build_context,
    build_prompt,
)
from smartbiz.config import AdvisorSettings
from smartbiz.domain.models import AppSnapshot
from smartbiz.pos import build_expense

from shop_fakes import product


class StubCompletions:
    def __init__(self, reply: Optional[str] = "Restock milk before the weekend.", error: Optional[Exception] = None) -> None:
        self.reply = reply
        self.error = error
        self.calls: List[Dict[str, Any]] = []

    def create(self, **kwargs: Any) -> Any:
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        message = SimpleNamespace(content=self.reply)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def _advisor(completions: StubCompletions) -> BusinessAdvisor:
    client = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    return BusinessAdvisor(AdvisorSettings(api_key="sk-test", model="test-model"), client=client)


SNAPSHOT = AppSnapshot(
    inventory=[product("Milk", stock=2), product("Bread", stock=30)],
    transactions=[build_expense(f"Expense {i}", 10 + i, date=f"2024-08-0{i + 1}T10:00:00Z") for i in range(7)],
)


def test_context_lists_low_stock_and_recent_transactions() -> None:
    ctx = build_context(SNAPSHOT)

    assert "SmartBiz AI" in ctx
    assert "Indian Rupee (₹)" in ctx
    assert "Inventory Count: 2 items" in ctx
    assert "Low Stock Items: Milk (2 left)" in ctx
    assert "Total Transactions: 7" in ctx
    assert "Expense 4" in ctx and "Expense 5" not in ctx


def test_context_without_low_stock_says_none() -> None:
    assert "Low Stock Items: None" in build_context(AppSnapshot(inventory=[product("Bread", stock=30)]))


def test_prompt_appends_user_query() -> None:
    assert build_prompt("How is business?", AppSnapshot()).endswith("\n\nUser Query: How is business?")


def test_ask_sends_single_user_message() -> None:
    completions = StubCompletions()

    reply = _advisor(completions).ask("What should I restock?", SNAPSHOT)

    assert reply == "Restock milk before the weekend."
    call = completions.calls[0]
    assert call["model"] == "test-model"
    assert len(call["messages"]) == 1
    assert call["messages"][0]["role"] == "user"
    assert call["messages"][0]["content"].endswith("User Query: What should I restock?")


def test_empty_completion_gets_placeholder() -> None:
    assert _advisor(StubCompletions(reply="  ")).ask("hi", SNAPSHOT) == EMPTY_REPLY


def test_connection_failure_gets_apology() -> None:
    error = APIConnectionError(request=httpx.Request("POST", "https://api.example.com/v1/chat/completions"))
    assert _advisor(StubCompletions(error=error)).ask("hi", SNAPSHOT) == UNAVAILABLE_REPLY


def test_status_error_gets_apology() -> None:
    request = httpx.Request("POST", "https://api.example.com/v1/chat/completions")
    response = httpx.Response(500, request=request, text="upstream exploded")
    error = APIStatusError("server error", response=response, body=None)
    assert _advisor(StubCompletions(error=error)).ask("hi", SNAPSHOT) == UNAVAILABLE_REPLY


def test_missing_api_key_gets_apology() -> None:
    advisor = BusinessAdvisor(AdvisorSettings(api_key=None))
    assert advisor.ask("hi", SNAPSHOT) == UNAVAILABLE_REPLY


def test_conversation_starts_with_welcome_and_ignores_blank_input() -> None:
    convo = Conversation(_advisor(StubCompletions()))

    assert [m.text for m in convo.messages] == [WELCOME_TEXT]
    assert convo.send("   ", SNAPSHOT) is None
    assert len(convo.messages) == 1


def test_conversation_appends_question_and_reply() -> None:
    convo = Conversation(_advisor(StubCompletions(reply="Bundle tea with biscuits.")))

    reply = convo.send("How do I sell more tea?", SNAPSHOT)

    assert reply is not None and reply.role == "model"
    assert [(m.role, m.text) for m in convo.messages[1:]] == [
        ("user", "How do I sell more tea?"),
        ("model", "Bundle tea with biscuits."),
    ]
