"""mock assistant responder and deferred reply scheduling.

no real inference backend: replies are canned. anything implementing
``ClientProtocol`` can be dropped in without touching the tree model.
"""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Callable, Optional, Protocol, runtime_checkable

logger = logging.getLogger(__name__)


# --- configuration ---

DEFAULT_REPLY_DELAY = 1.0  # seconds

CANNED_RESPONSES = (
    "That's an interesting perspective! Can you tell me more about what led you to that conclusion?",
    "I see what you're getting at. How do you think this relates to what we discussed earlier?",
    "That's a great point. What would you say are the main implications of this?",
    "Fascinating! I'd love to explore this further. What aspects would you like to dive deeper into?",
    "You raise a compelling question. Let me think about the different angles we could consider...",
)


@runtime_checkable
class ClientProtocol(Protocol):
    """protocol for assistant backends (mock or real)."""

    async def complete(self, prompt: str) -> str:
        """send prompt and return response."""
        ...


class MockClient:
    """canned replies after a fixed delay."""

    def __init__(
        self,
        responses: Optional[dict[str, str]] = None,
        delay: float = DEFAULT_REPLY_DELAY,
        seed: Optional[int] = None,
    ):
        """init with optional response mapping.

        responses: dict mapping prompt substrings to responses.
        if prompt contains key (case-insensitive), return value.
        delay: simulated reply delay in seconds.
        seed: makes the canned choice reproducible.
        """
        self.responses = responses or {}
        self.calls: list[str] = []  # track all prompts sent
        self.delay = delay
        self._random = random.Random(seed)

    async def __aenter__(self) -> MockClient:
        return self

    async def __aexit__(self, *args) -> None:
        pass

    async def complete(self, prompt: str) -> str:
        """return mock response based on prompt."""
        self.calls.append(prompt)

        # simulate reply delay
        await asyncio.sleep(self.delay)

        # check for matching response (case-insensitive)
        prompt_lower = prompt.lower()
        for key, response in self.responses.items():
            if key.lower() in prompt_lower:
                return response

        return self._random.choice(CANNED_RESPONSES)


ReplyHandler = Callable[[str, str], None]


class ReplyScheduler:
    """deferred assistant replies, cancellable per node.

    each scheduled reply is an asyncio task keyed by the node it answers.
    on completion ``on_reply(node_id, text)`` is called once; it is
    expected to dispatch a single AddMessage.
    """

    def __init__(self, client: ClientProtocol, on_reply: ReplyHandler):
        self.client = client
        self.on_reply = on_reply
        self._pending: dict[str, set[asyncio.Task]] = {}

    def schedule(self, node_id: str, prompt: str) -> asyncio.Task:
        """start a reply for ``node_id``. needs a running event loop."""
        task = asyncio.get_running_loop().create_task(self._reply(node_id, prompt))
        self._pending.setdefault(node_id, set()).add(task)
        task.add_done_callback(lambda t: self._forget(node_id, t))
        return task

    def pending(self, node_id: str) -> int:
        return len(self._pending.get(node_id, ()))

    def has_pending(self) -> bool:
        """true while any reply, for any node, is still outstanding."""
        return bool(self._pending)

    def cancel(self, node_id: str) -> int:
        """cancel every pending reply for a node. returns how many."""
        tasks = self._pending.pop(node_id, set())
        for task in tasks:
            task.cancel()
        if tasks:
            logger.debug("cancelled %d pending replies for %s", len(tasks), node_id)
        return len(tasks)

    def cancel_all(self) -> None:
        for node_id in list(self._pending):
            self.cancel(node_id)

    async def _reply(self, node_id: str, prompt: str) -> None:
        text = await self.client.complete(prompt)
        # no longer pending once the handler sees it
        self._discard(node_id, asyncio.current_task())
        self.on_reply(node_id, text)

    def _discard(self, node_id: str, task: Optional[asyncio.Task]) -> None:
        tasks = self._pending.get(node_id)
        if tasks is not None:
            tasks.discard(task)
            if not tasks:
                del self._pending[node_id]

    def _forget(self, node_id: str, task: asyncio.Task) -> None:
        self._discard(node_id, task)
        if not task.cancelled() and task.exception() is not None:
            logger.warning("reply for %s failed: %s", node_id, task.exception())
