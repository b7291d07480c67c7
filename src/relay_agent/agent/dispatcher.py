"""
Turn dispatcher - handles one inbound message end to end.

Sequence per message: store the user text, compact if the conversation is
too large, run the agent loop, store the reply, deliver images then text.
A rate-limit/overload failure triggers one compaction, a cool-down and a
single retry. Every other failure ends in a generic apology to the user.
"""

import asyncio
from typing import Any, Awaitable, Callable

import structlog

from ..channels import BaseChannel
from ..llm import is_overload_error
from ..memory import ConversationStore
from ..models import MessageRole
from .core import AgentLoop, AgentReply

logger = structlog.get_logger()

APOLOGY_MESSAGE = "Sorry, something went wrong while handling your message. Please try again."
DEFAULT_OVERLOAD_COOLDOWN_SECONDS = 5.0


class TurnDispatcher:
    """Entry point for inbound messages.

    Turns for the same identity are serialized with a per-identity lock;
    turns for different identities run concurrently.
    """

    def __init__(
        self,
        store: ConversationStore,
        agent: AgentLoop,
        channel: BaseChannel,
        overload_cooldown_seconds: float = DEFAULT_OVERLOAD_COOLDOWN_SECONDS,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.store = store
        self.agent = agent
        self.channel = channel
        self.overload_cooldown_seconds = overload_cooldown_seconds
        self._sleep = sleep
        self._locks: dict[str, asyncio.Lock] = {}

    def _get_lock(self, identity: str) -> asyncio.Lock:
        lock = self._locks.get(identity)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[identity] = lock
        return lock

    async def handle(self, identity: str, text: str) -> None:
        """Process one inbound message. Never raises."""
        async with self._get_lock(identity):
            await self._handle(identity, text)

    async def clear(self, identity: str) -> None:
        """Drop a conversation once any in-flight turn for it has finished."""
        async with self._get_lock(identity):
            self.store.clear(identity)
        logger.info("Conversation cleared", conversation=identity)

    async def _handle(self, identity: str, text: str) -> None:
        log = logger.bind(conversation=identity)
        try:
            self.store.append(identity, MessageRole.USER, text)

            if self.store.needs_compaction(identity):
                log.info("Proactive compaction", estimated_size=self.store.estimated_size(identity))
                self.store.compact(identity)

            try:
                reply = await self._run(identity)
            except Exception as e:
                if not is_overload_error(e):
                    raise
                log.warning(
                    "Model overloaded, compacting and retrying",
                    error=str(e),
                    cooldown_seconds=self.overload_cooldown_seconds,
                )
                self.store.compact(identity)
                await self._sleep(self.overload_cooldown_seconds)
                reply = await self._run(identity)

            await self._deliver(identity, reply)

        except Exception as e:
            log.error("Turn failed", error=str(e), exc_info=True)
            await self._send_apology(identity)

    async def _run(self, identity: str) -> AgentReply:
        return await self.agent.run(self.store.history(identity), identity=identity)

    async def _deliver(self, identity: str, reply: AgentReply) -> None:
        self.store.append(identity, MessageRole.ASSISTANT, reply.text)

        for image in reply.attachments:
            await self.channel.send_image(identity, image)

        if reply.text:
            await self.channel.send_text(identity, reply.text)

        logger.info(
            "Turn complete",
            conversation=identity,
            iterations=reply.iterations,
            attachments=len(reply.attachments),
            reply_chars=len(reply.text),
        )

    async def _send_apology(self, identity: str) -> None:
        try:
            await self.channel.send_text(identity, APOLOGY_MESSAGE)
        except Exception as e:
            logger.error("Failed to send apology", conversation=identity, error=str(e))
