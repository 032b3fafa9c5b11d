"""
Assistant orchestrator - runs one user turn end to end.

A turn persists the user message, lets the intent recognizer pick and run
a tool, builds the model context from the stored summary and the active
messages, asks the MCP service for a reply (whole or streamed), persists
the reply and finally checks whether older messages should be folded into
the summary.

Turns on the same session are serialized by the session store's lock. A
turn whose model call fails leaves the user message stored without a
reply; context formatting accepts consecutive user messages.
"""

import time
from contextlib import aclosing
from dataclasses import dataclass
from typing import AsyncIterator, Literal

import structlog

from ..exceptions import AssistantError, SessionNotFoundError
from ..llm.base import LLMMessage
from ..models import MessageRecord, MessageRole, SessionRecord
from ..rpc.client import BaseMCPClient
from ..rpc.schemas import ChatRequest, WireChatMessage
from ..store.base import BaseMessageStore
from .compaction import CompactionConfig, plan_compaction
from .session import SessionStore
from .tokens import TokenCounter

logger = structlog.get_logger()

DEFAULT_ASSISTANT_ID = "da-assistant"


@dataclass
class StreamEvent:
    """One event of a streamed reply.

    ``data`` events carry the text added since the previous event, the
    ``end`` event the full reply and ``error`` events the failure reason.
    """

    type: Literal["data", "end", "error"]
    data: str = ""


def format_messages_for_model(
    messages: list[MessageRecord],
    summary: str | None,
    assistant_id: str,
) -> list[WireChatMessage]:
    """Summary first as a system message, then the messages in stored order."""
    formatted = []
    if summary:
        formatted.append(WireChatMessage(
            role="system",
            content=f"Summary of the earlier conversation: {summary}",
        ))
    for msg in messages:
        role = MessageRole.ASSISTANT if msg.sender_id == assistant_id else MessageRole.USER
        formatted.append(WireChatMessage(role=role.value, content=msg.content))
    return formatted


class AssistantService:
    """Coordinates the message store, the session store and the MCP service."""

    def __init__(
        self,
        store: BaseMessageStore,
        client: BaseMCPClient,
        sessions: SessionStore,
        counter: TokenCounter | None = None,
        compaction: CompactionConfig | None = None,
        assistant_id: str = DEFAULT_ASSISTANT_ID,
        default_model: str = "",
        temperature: float | None = None,
        max_tokens: int | None = None,
    ):
        self.store = store
        self.client = client
        self.sessions = sessions
        self.counter = counter or TokenCounter()
        self.compaction = compaction or CompactionConfig()
        self.assistant_id = assistant_id
        self.default_model = default_model
        self.temperature = temperature
        self.max_tokens = max_tokens

    async def create_session(self, user_id: str, title: str | None = None) -> str:
        """Create a session and return its id."""
        record = await self.store.create_session(user_id, title)
        self.sessions.get_or_create_session(record.id, user_id=user_id)
        return record.id

    async def get_user_sessions(self, user_id: str) -> list[SessionRecord]:
        return await self.store.get_user_sessions(user_id)

    async def get_session_messages(self, session_id: str) -> list[MessageRecord]:
        """All stored messages of a session, including summarized ones."""
        if await self.store.get_session(session_id) is None:
            raise SessionNotFoundError(session_id)
        return await self.store.get_all_messages(session_id)

    async def delete_session(self, session_id: str) -> bool:
        async with self.sessions.turn(session_id):
            deleted = await self.store.delete_session(session_id)
        self.sessions.delete_session(session_id)
        return deleted

    def _request_options(self, params: dict[str, str]) -> dict:
        try:
            temperature = float(params["temperature"]) if "temperature" in params else self.temperature
            max_tokens = int(params["max_tokens"]) if "max_tokens" in params else self.max_tokens
        except ValueError as e:
            raise AssistantError(f"Invalid request parameter: {e}") from e
        if max_tokens is not None and max_tokens <= 0:
            raise AssistantError(f"Invalid request parameter: max_tokens must be positive, got {max_tokens}")
        return {
            "model": params.get("model") or self.default_model,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }

    async def _prepare_turn(
        self,
        session_id: str,
        user_id: str,
        text: str,
        params: dict[str, str],
    ) -> ChatRequest:
        """Persist the user turn, run the tool path and build the model request."""
        options = self._request_options(params)

        await self.store.save_message(session_id, text, user_id)

        session = self.sessions.get_or_create_session(
            session_id,
            user_id=user_id,
            project_id=params.get("projectId"),
        )
        self.sessions.record_message(session, MessageRole.USER, text)

        tool_note: WireChatMessage | None = None
        recognizer = self.sessions.recognizer
        if recognizer is not None:
            intent = await recognizer.recognize_intent(text, session.context)
            if intent.has_tool:
                outcome = await recognizer.execute_tool(intent)
                tool_note = WireChatMessage(
                    role="system",
                    content=f"Result of tool {intent.name}: {outcome}",
                    metadata={"tool": intent.name},
                )

        context = await self.store.get_conversation_context(session_id)
        messages = format_messages_for_model(context.messages, context.summary, self.assistant_id)
        if tool_note is not None:
            messages.append(tool_note)

        return ChatRequest(
            messages=messages,
            client_id=user_id,
            session_id=session_id,
            parameters=dict(params),
            **options,
        )

    async def _finish_turn(self, session_id: str, content: str) -> None:
        await self.store.save_message(session_id, content, self.assistant_id)
        session = self.sessions.get_session(session_id)
        if session is not None:
            self.sessions.record_message(session, MessageRole.ASSISTANT, content)
            self.sessions.touch(session)
        await self.summarize_older_messages(session_id)

    async def send_message(
        self,
        session_id: str,
        user_id: str,
        text: str,
        params: dict[str, str] | None = None,
    ) -> str:
        """Run one turn and return the assistant reply."""
        started = time.perf_counter()
        async with self.sessions.turn(session_id):
            request = await self._prepare_turn(session_id, user_id, text, params or {})

            response = await self.client.chat(request)
            if response.error:
                raise AssistantError(f"Chat failed: {response.error}")
            content = response.message.content if response.message else ""
            if not content.strip():
                raise AssistantError("Model returned an empty reply")

            await self._finish_turn(session_id, content)

        logger.info(
            "Message processed",
            session_id=session_id,
            user_id=user_id,
            reply_chars=len(content),
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
        )
        return content

    async def send_message_stream(
        self,
        session_id: str,
        user_id: str,
        text: str,
        params: dict[str, str] | None = None,
    ) -> AsyncIterator[StreamEvent]:
        """Run one turn, yielding the reply as it is produced.

        The reply is persisted once, after the upstream stream has ended and
        before the ``end`` event. Errors yield an ``error`` event and persist
        no reply; closing the iterator early persists nothing either.
        """
        async with self.sessions.turn(session_id):
            try:
                request = await self._prepare_turn(session_id, user_id, text, params or {})
            except AssistantError as e:
                logger.error("Stream preparation failed", session_id=session_id, error=str(e))
                yield StreamEvent(type="error", data=str(e))
                return

            full = ""
            try:
                async with aclosing(self.client.chat_stream(request)) as responses:
                    async for response in responses:
                        if response.error:
                            logger.error("Chat stream error", session_id=session_id, error=response.error)
                            yield StreamEvent(type="error", data=response.error)
                            return

                        content = response.message.content if response.message else ""
                        if not content.startswith(full):
                            yield StreamEvent(type="error", data="ChatStream sent a non-cumulative chunk")
                            return
                        delta, full = content[len(full):], content
                        if delta:
                            yield StreamEvent(type="data", data=delta)
            except AssistantError as e:
                logger.error("Chat stream failed", session_id=session_id, error=str(e))
                yield StreamEvent(type="error", data=str(e))
                return

            if not full.strip():
                yield StreamEvent(type="error", data="Model returned an empty reply")
                return

            try:
                await self._finish_turn(session_id, full)
            except AssistantError as e:
                logger.error("Failed to store streamed reply", session_id=session_id, error=str(e))
                yield StreamEvent(type="error", data=str(e))
                return

        logger.info("Streamed message processed", session_id=session_id, user_id=user_id, reply_chars=len(full))
        yield StreamEvent(type="end", data=full)

    async def chat(
        self,
        user_id: str,
        text: str,
        params: dict[str, str] | None = None,
    ) -> tuple[str, str]:
        """One-off exchange in a new session; returns ``(session_id, reply)``."""
        session_id = await self.create_session(user_id, title="Temporary chat")
        reply = await self.send_message(session_id, user_id, text, params)
        return session_id, reply

    async def summarize_older_messages(self, session_id: str) -> str:
        """Fold older messages into the summary when the history is over budget.

        Returns the session summary (empty if there is none). Running it
        again without new messages changes nothing.
        """
        context = await self.store.get_conversation_context(session_id)
        messages = [
            LLMMessage(
                role="assistant" if m.sender_id == self.assistant_id else "user",
                content=m.content,
            )
            for m in context.messages
        ]

        result = plan_compaction(messages, context.summary, self.counter, self.compaction)
        if not result.compacted:
            return context.summary or ""

        summarized_count = context.summarized_count + result.folded_count
        await self.store.update_summary(session_id, result.summary or "", summarized_count)

        session = self.sessions.get_session(session_id)
        if session is not None:
            session.summary = result.summary
            # runtime history mirrors the store's active window
            self.sessions.trim_messages(session, len(messages) - result.folded_count)

        logger.info(
            "Summarized older messages",
            session_id=session_id,
            folded=result.folded_count,
            summarized_count=summarized_count,
        )
        return result.summary or ""
