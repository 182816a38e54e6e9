"""Message channel between the page and background contexts."""

import asyncio
import copy
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol, Set, Tuple, Union

from formation_agent.core.exceptions import ChannelError

logger = logging.getLogger(__name__)

Message = Dict[str, Any]
Listener = Callable[[Message], Union[None, Awaitable[None]]]


class MessageChannel(Protocol):
    """At-most-once delivery of dict messages to the other context."""

    async def send(self, message: Message) -> None:
        """Send a message; raises ChannelError when nobody can receive it."""
        ...

    def add_listener(self, listener: Listener) -> None:
        ...

    def remove_listener(self, listener: Listener) -> None:
        ...


class LoopbackChannel:
    """One endpoint of an in-process channel pair.

    Messages are copied and delivered on the running event loop after the
    sending coroutine yields, the way a cross-process transport would.
    """

    def __init__(self, name: str = "endpoint"):
        self.name = name
        self.peer: Optional["LoopbackChannel"] = None
        self.closed = False
        self._listeners: List[Listener] = []
        self._tasks: Set[asyncio.Task] = set()

    @classmethod
    def pair(cls, first: str = "page", second: str = "background") -> Tuple["LoopbackChannel", "LoopbackChannel"]:
        a, b = cls(first), cls(second)
        a.peer, b.peer = b, a
        return a, b

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    async def send(self, message: Message) -> None:
        peer = self.peer
        if self.closed or peer is None or peer.closed or not peer._listeners:
            raise ChannelError(
                "Could not establish connection. Receiving end does not exist.",
                context={"from": self.name, "type": message.get("type")},
            )
        logger.debug(f"[{self.name}] -> {message.get('type')}")
        asyncio.get_running_loop().call_soon(peer._deliver, copy.deepcopy(message))

    def _deliver(self, message: Message) -> None:
        if self.closed:
            logger.debug(f"[{self.name}] dropped {message.get('type')}: endpoint closed")
            return
        for listener in list(self._listeners):
            try:
                result = listener(message)
            except Exception as e:
                logger.error(f"[{self.name}] listener failed on {message.get('type')}: {e}")
                continue
            if asyncio.iscoroutine(result):
                task = asyncio.ensure_future(result)
                self._tasks.add(task)
                task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"[{self.name}] listener task failed: {task.exception()}")

    async def drain(self) -> None:
        """Wait until listener coroutines started by delivered messages finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def close(self) -> None:
        self.closed = True
        for task in list(self._tasks):
            task.cancel()
