"""Correlates outbound confirmation requests with their later answers."""

import asyncio
import logging
import random
import string
import time
from typing import Any, Dict, List, Optional

from formation_agent.core.exceptions import ChannelError, ConfirmationAbandonedError
from formation_agent.core.models import ConfirmationAction
from formation_agent.messaging import message_types as mt
from formation_agent.messaging.channel import MessageChannel

logger = logging.getLogger(__name__)

_BASE36 = string.digits + string.ascii_lowercase


def generate_request_id(kind: mt.ConfirmationKind) -> str:
    """``{kind}-{epoch ms}-{9 base36 chars}``; unique enough within one page session."""
    suffix = "".join(random.choice(_BASE36) for _ in range(9))
    return f"{kind.value}-{int(time.time() * 1000)}-{suffix}"


class ConfirmationBridge:
    """Turns a request/later-response message pair into an awaitable.

    Each request is registered under its request id before it is sent; the
    only way it resolves is an inbound ``*_NOTIFICATION_RESPONSE`` carrying
    the same id. No timeout is applied: a prompt may legitimately stay open.
    Concurrent ``ask`` calls are independent.
    """

    def __init__(self, channel: MessageChannel):
        """
        Initialize the bridge and subscribe to responses.

        Args:
            channel: Page-side endpoint of the page/background channel
        """
        self.channel = channel
        self.logger = logging.getLogger(__name__)
        self._pending: Dict[str, asyncio.Future] = {}
        self._closed = False
        self.channel.add_listener(self._on_message)

    @property
    def pending_request_ids(self) -> List[str]:
        return list(self._pending)

    async def ask(self, kind: mt.ConfirmationKind, payload: Dict[str, Any]) -> ConfirmationAction:
        """
        Send a confirmation request and wait for its answer.

        Args:
            kind: Save or autofill confirmation
            payload: Message body; type and requestId are filled in here

        Returns:
            The user's decision

        Raises:
            ChannelError: The request could not be sent
            ConfirmationAbandonedError: The bridge was closed before an answer arrived
        """
        if self._closed:
            raise ChannelError("Confirmation bridge is closed", context={"kind": kind.value})

        request_id = generate_request_id(kind)
        future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        message = dict(payload, type=kind.request_type, requestId=request_id)

        self.logger.info(f"Requesting {kind.value} confirmation {request_id}")
        try:
            await self.channel.send(message)
        except ChannelError:
            self._pending.pop(request_id, None)
            self.logger.warning(f"Confirmation {request_id} could not be sent")
            raise

        try:
            action = await future
        finally:
            self._pending.pop(request_id, None)
        self.logger.info(f"Confirmation {request_id} resolved: {action.value}")
        return action

    async def ask_save(self, site_name: str, storage_key: Dict[str, str], values: Dict[str, str]) -> ConfirmationAction:
        return await self.ask(mt.ConfirmationKind.SAVE, mt.save_notification_request(site_name, storage_key, values))

    async def ask_autofill(self, site_name: str, preview_fields: List[str]) -> ConfirmationAction:
        return await self.ask(mt.ConfirmationKind.AUTOFILL, mt.autofill_notification_request(site_name, preview_fields))

    def _on_message(self, message: Dict[str, Any]) -> None:
        kind = mt.ConfirmationKind.for_response(message.get("type"))
        if kind is None:
            return
        request_id: Optional[str] = message.get("requestId")
        future = self._pending.get(request_id or "")
        if future is None or future.done():
            self.logger.warning(f"No pending confirmation for response {request_id}")
            return
        future.set_result(mt.parse_action(message.get("action")))

    def close(self) -> None:
        """Abandon every outstanding request and stop listening."""
        self._closed = True
        self.channel.remove_listener(self._on_message)
        for request_id, future in list(self._pending.items()):
            if not future.done():
                future.set_exception(ConfirmationAbandonedError(request_id))
        if self._pending:
            self.logger.info(f"Abandoned {len(self._pending)} pending confirmation(s)")
        self._pending.clear()
