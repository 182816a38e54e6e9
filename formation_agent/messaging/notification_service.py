"""Background-side service answering confirmation and save-mode messages."""

import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from formation_agent.core.exceptions import ChannelError
from formation_agent.core.models import ConfirmationAction
from formation_agent.messaging import message_types as mt
from formation_agent.messaging.channel import MessageChannel
from formation_agent.storage.site_policy import GlobalSaveMode

logger = logging.getLogger(__name__)

PromptCallback = Callable[[mt.ConfirmationKind, Dict[str, Any]], Awaitable[ConfirmationAction]]


class NotificationService:
    """Shows confirmations to the user and reports the answers back.

    The prompt itself is presentation code and is supplied by the host; any
    failure while prompting is answered as ``cancel``.
    """

    def __init__(self, channel: MessageChannel, save_mode: GlobalSaveMode, prompt: PromptCallback):
        """
        Initialize the notification service.

        Args:
            channel: Background endpoint of the page/background channel
            save_mode: Global save mode store
            prompt: Coroutine asking the user and returning their decision
        """
        self.channel = channel
        self.save_mode = save_mode
        self.prompt = prompt
        self.logger = logging.getLogger(__name__)
        self._attached = False

    def start(self) -> None:
        if not self._attached:
            self.channel.add_listener(self.handle_message)
            self._attached = True
            self.logger.info("Notification service listening")

    def stop(self) -> None:
        if self._attached:
            self.channel.remove_listener(self.handle_message)
            self._attached = False

    async def handle_message(self, message: Dict[str, Any]) -> None:
        message_type = message.get("type")
        kind = mt.ConfirmationKind.for_request(message_type)
        if kind is not None:
            await self._answer_confirmation(kind, message)
        elif message_type == mt.PING:
            await self._reply({"type": mt.PONG, "from": "background"})
        elif message_type == mt.GET_SAVE_MODE_STATUS:
            await self._reply({"type": mt.SAVE_MODE_STATUS, "isEnabled": await self.save_mode.is_enabled()})
        elif message_type == mt.TOGGLE_SAVE_MODE:
            await self.set_save_mode(bool(message.get("isEnabled")))
        else:
            self.logger.debug(f"Ignoring message type {message_type}")

    async def set_save_mode(self, is_enabled: bool) -> None:
        """Persist the global save mode and broadcast the change."""
        await self.save_mode.set(is_enabled)
        await self._reply(mt.save_mode_changed(is_enabled))

    async def _answer_confirmation(self, kind: mt.ConfirmationKind, message: Dict[str, Any]) -> None:
        request_id: Optional[str] = message.get("requestId")
        if not request_id:
            self.logger.warning(f"{message.get('type')} without requestId ignored")
            return

        self.logger.info(f"Prompting user for {kind.value} confirmation {request_id}")
        try:
            action = await self.prompt(kind, message)
        except Exception as e:
            self.logger.error(f"Prompt for {request_id} failed, answering cancel: {e}")
            action = ConfirmationAction.DECLINE

        await self._reply(mt.notification_response(kind, request_id, mt.wire_action(kind, action)))

    async def _reply(self, message: Dict[str, Any]) -> None:
        try:
            await self.channel.send(message)
        except ChannelError as e:
            self.logger.warning(f"Could not deliver {message.get('type')}: {e}")
