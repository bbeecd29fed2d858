"""Chat service for transformation conversations.

This module provides the agent loop: the model sees the latest version of a
dataset, calls the four transformation tools through the tool registry, and
answers. Both sides of every turn are persisted in the message store.
"""
from __future__ import annotations

import json
import uuid
from typing import Any, Dict, List, Optional

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from models.dataset import ChatResult, Message, ToolCallRecord
from protocols import LLMClient, SQLGenerator
from repositories.message import MessageRepository
from services.engine import SQLEngine
from services.llm.client import OpenRouterClient, get_llm_client
from services.llm.prompts import build_agent_prompt
from services.llm.sql_generator import SQLGenerationService
from services.llm.tools import AGENT_TOOLS
from services.reader import DatasetReader
from services.tools import ToolContext, ToolRegistry, get_tool_registry
from services.versions import VersionStore

MAX_ITERATIONS_REPLY = (
    "I could not finish this request within the allowed number of steps. "
    "Please try again with a more specific request."
)


def _text_part(text: str) -> Dict[str, Any]:
    return {"type": "text", "text": text}


def _history_to_messages(history: List[Message]) -> List[Dict[str, Any]]:
    """Replay stored turns as plain chat messages (tool traffic omitted)."""
    messages = []
    for message in history:
        if message.role not in ("user", "assistant"):
            continue
        text = message.text()
        if text:
            messages.append({"role": message.role, "content": text})
    return messages


def _assistant_entry(message: Any) -> Dict[str, Any]:
    return {
        "role": "assistant",
        "content": message.content or "",
        "tool_calls": [
            {
                "id": tool_call.id,
                "type": "function",
                "function": {"name": tool_call.function.name, "arguments": tool_call.function.arguments},
            }
            for tool_call in message.tool_calls
        ],
    }


class ChatService:
    """Service for tool-calling conversations about one dataset.

    Attributes:
        _session: Session shared by the tools and the message store.
        _client: LLM client for API calls.
        _registry: Registry of tool handlers.
    """

    def __init__(
        self,
        session: AsyncSession,
        client: Optional[LLMClient] = None,
        model: Optional[str] = None,
        sql_generator: Optional[SQLGenerator] = None,
        registry: Optional[ToolRegistry] = None,
    ):
        """Initialize the chat service.

        Args:
            session: Database session.
            client: LLM client instance (uses default if None).
            model: Optional model identifier to override the default.
            sql_generator: Generator for transformation SQL (built on ``client`` if None).
            registry: Tool registry (uses default if None).
        """
        self._session = session
        if client is not None:
            self._client = client
        elif model:
            # Use a dedicated client with the selected default model
            self._client = OpenRouterClient(default_model=model)
        else:
            self._client = get_llm_client()
        self._model = model
        self._sql_generator = sql_generator or SQLGenerationService(client=self._client)
        self._registry = registry or get_tool_registry()
        self._messages = MessageRepository(session)

    async def chat(self, dataset_id: int, content: str, message_id: Optional[str] = None) -> ChatResult:
        """Run one conversational turn.

        Args:
            dataset_id: Dataset the conversation is about.
            content: The user's message.
            message_id: Client-side id of the user message (generated if None).

        Returns:
            The stored assistant message and the tool calls made.

        Raises:
            NotFoundError: If the dataset does not exist.
            LLMRateLimitError: If the LLM rate limit is exceeded.
            LLMAPIError: If the LLM API returns an error.
        """
        system_prompt = await self._build_system_prompt(dataset_id)
        history = await self._messages.list_for_dataset(dataset_id)

        user_message = Message(id=message_id or uuid.uuid4().hex, role="user", parts=[_text_part(content)])
        await self._messages.upsert(dataset_id, user_message)
        await self._session.commit()

        messages: List[Dict[str, Any]] = [{"role": "system", "content": system_prompt}]
        messages.extend(_history_to_messages(history))
        messages.append({"role": "user", "content": content})

        reply, tool_calls = await self._run_agent(dataset_id, messages)

        parts = [
            {
                "type": f"tool-{call.name}",
                "toolCallId": call.id,
                "input": call.arguments,
                "output": call.result,
            }
            for call in tool_calls
        ]
        parts.append(_text_part(reply))
        assistant_message = await self._messages.upsert(
            dataset_id,
            Message(id=uuid.uuid4().hex, role="assistant", parts=parts, metadata={"model": self._model or ""}),
        )
        await self._session.commit()

        return ChatResult(assistant_message=assistant_message, tool_calls=tool_calls)

    async def _build_system_prompt(self, dataset_id: int) -> str:
        schema = await VersionStore(self._session).latest_schema(dataset_id)
        columns = await SQLEngine(self._session).describe_columns(schema.table_name)
        sample = await DatasetReader(self._session).sample(dataset_id, settings.datasets.sample_size)
        return build_agent_prompt(schema.table_name, [column.model_dump() for column in columns], sample)

    async def _run_agent(self, dataset_id: int, messages: List[Dict[str, Any]]) -> tuple[str, List[ToolCallRecord]]:
        """Call the model and execute its tool calls until it answers.

        Returns:
            Tuple of (final reply text, tool calls made).
        """
        context = ToolContext(session=self._session, dataset_id=dataset_id, sql_generator=self._sql_generator)
        calls: List[ToolCallRecord] = []
        iteration = 0
        max_iterations = settings.llm.max_tool_iterations

        message = await self._complete(messages)
        while message.tool_calls and iteration < max_iterations:
            iteration += 1
            messages.append(_assistant_entry(message))

            for tool_call in message.tool_calls:
                function_name = tool_call.function.name
                try:
                    arguments = json.loads(tool_call.function.arguments or "{}")
                except json.JSONDecodeError:
                    arguments = {}
                if not isinstance(arguments, dict):
                    arguments = {}

                logger.info("[Chat] Calling tool: {}({})", function_name, arguments)
                result = await self._registry.execute(context, function_name, arguments)
                logger.debug("[Chat] Result: {}", result)

                calls.append(ToolCallRecord(id=tool_call.id, name=function_name, arguments=arguments, result=result))
                messages.append({
                    "role": "tool",
                    "tool_call_id": tool_call.id,
                    "content": json.dumps(result, default=str),
                })

            message = await self._complete(messages)

        if message.tool_calls:
            logger.warning("[Chat] Stopped after {} tool iterations on dataset {}", iteration, dataset_id)
            return MAX_ITERATIONS_REPLY, calls
        return message.content or "", calls

    async def _complete(self, messages: List[Dict[str, Any]]) -> Any:
        response = await self._client.complete_with_tools(
            messages,
            tools=AGENT_TOOLS,
            model=self._model,
            temperature=0.3,
            max_tokens=2048,
        )
        return response.choices[0].message
