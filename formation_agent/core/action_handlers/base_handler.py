"""Base class for fill handlers."""
import logging
from dataclasses import dataclass
from typing import Any, Sequence

from formation_agent.core.browser_interface import DocumentInterface, ElementInfo
from formation_agent.tools.constants import FILL_EVENTS


@dataclass
class FillContext:
    """Everything a handler needs to fill one resolved field."""
    selector: str
    value: str
    handle: Any
    info: ElementInfo
    label: str = ""


class BaseActionHandler:
    def __init__(self, document: DocumentInterface, events: Sequence[str] = FILL_EVENTS):
        self.document = document
        self.events = tuple(events)
        self.logger = logging.getLogger(self.__class__.__name__)

    async def execute(self, context: FillContext) -> str:
        """Fill the field and return the value that was actually assigned.

        Raises FillError when the value cannot be applied.
        """
        raise NotImplementedError("Subclasses must implement the execute method.")

    async def _dispatch_fill_events(self, handle: Any) -> None:
        """Fire input, change and blur so reactive frameworks see the programmatic change."""
        for event_type in self.events:
            await self.document.dispatch_event(handle, event_type)
