"""Pytest configuration and fixtures.

This module provides fixtures for:
- A fresh SQLite database per test (metadata tables created)
- Async session management
- A scripted fake LLM client
- FastAPI test client
"""
import json
import os
from types import SimpleNamespace
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.pool import NullPool

# Set test configuration before importing application modules
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ["INSERT_BATCH_DELAY"] = "0"

import db
from main import app
from services.llm.client import parse_json_object


def _sqlite_url(tmp_path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'test.db'}"


@pytest.fixture()
async def engine(tmp_path):
    """Per-test SQLite engine with the metadata tables created."""
    test_engine = db.create_engine_for(_sqlite_url(tmp_path), poolclass=NullPool)
    await db.init_models(test_engine)
    db.configure(test_engine)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture()
async def session(engine) -> AsyncIterator[AsyncSession]:
    """Provide an async database session for tests."""
    async with db.get_session_maker()() as test_session:
        yield test_session


@pytest.fixture()
def client(tmp_path):
    """Provide a FastAPI test client backed by a fresh database."""
    db.configure(db.create_engine_for(_sqlite_url(tmp_path), poolclass=NullPool))
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def tool_call(name: str, arguments: Dict[str, Any], call_id: Optional[str] = None) -> SimpleNamespace:
    """Build a tool call shaped like the OpenAI SDK's."""
    return SimpleNamespace(
        id=call_id or f"call_{name}",
        type="function",
        function=SimpleNamespace(name=name, arguments=json.dumps(arguments)),
    )


def completion(content: Optional[str] = None, tool_calls: Optional[List[SimpleNamespace]] = None) -> SimpleNamespace:
    """Build a chat completion response shaped like the OpenAI SDK's."""
    message = SimpleNamespace(content=content, tool_calls=tool_calls or None)
    return SimpleNamespace(choices=[SimpleNamespace(message=message)])


class FakeLLMClient:
    """Scripted stand-in for the OpenRouter client.

    ``replies`` feed ``complete``; ``responses`` feed ``complete_with_tools``.
    Every request is recorded in ``calls``.
    """

    def __init__(self, replies: Sequence[str] = (), responses: Sequence[SimpleNamespace] = ()):
        self.replies = list(replies)
        self.responses = list(responses)
        self.calls: List[Dict[str, Any]] = []

    async def complete(self, messages, model=None, temperature=0.7, max_tokens=2048) -> str:
        self.calls.append({"method": "complete", "messages": list(messages), "model": model})
        return self.replies.pop(0)

    async def complete_with_tools(self, messages, tools, model=None, temperature=0.7, max_tokens=2048):
        self.calls.append({"method": "complete_with_tools", "messages": list(messages), "tools": tools, "model": model})
        return self.responses.pop(0)

    def parse_json_response(self, response: str) -> Optional[Dict[str, Any]]:
        return parse_json_object(response)


class FakeSQLGenerator:
    """SQL generator returning a fixed query and recording its inputs."""

    def __init__(self, sql: str):
        self.sql = sql
        self.requests: List[Dict[str, Any]] = []

    async def generate(self, instructions, table_name, columns, sample) -> str:
        self.requests.append(
            {"instructions": list(instructions), "table_name": table_name, "columns": list(columns), "sample": list(sample)}
        )
        return self.sql


SALES_HEADERS = ["region", "amount"]
SALES_ROWS = [["north", "10"], ["south", "20"], ["east", "30"]]


@pytest.fixture()
def sales_csv() -> bytes:
    lines = [",".join(SALES_HEADERS)] + [",".join(row) for row in SALES_ROWS]
    return ("\n".join(lines) + "\n").encode()
