"""Handles standard <select> elements."""

from typing import Sequence

from formation_agent.core.browser_interface import OptionInfo
from formation_agent.core.exceptions import FillError
from formation_agent.core.models import OptionMatch

from .base_handler import BaseActionHandler, FillContext


def match_option(options: Sequence[OptionInfo], value: str) -> OptionMatch:
    """
    Find the option a stored value refers to.

    Exact value or text wins; otherwise the first option whose text contains
    the value, or is contained in it.

    Args:
        options: Options of the select, in document order
        value: Stored value (an option value or its visible text)

    Returns:
        OptionMatch carrying the option value, or the reason nothing matched
    """
    for option in options:
        if option.value == value or option.text == value or option.text.strip() == value:
            return OptionMatch.found(option.value)

    if value:
        for option in options:
            text = option.text.strip()
            if text and (value in text or text in value):
                return OptionMatch.found(option.value)

    return OptionMatch.unmatched(f"no option matches '{value}' among {len(options)} options")


class SelectActionHandler(BaseActionHandler):
    """Selects the option matching the stored value."""

    async def execute(self, context: FillContext) -> str:
        match = match_option(context.info.options, context.value)
        if not match.matched:
            self.logger.warning(f"Select {context.selector}: {match.reason}")
            raise FillError(context.selector, match.reason)

        await self.document.set_value(context.handle, match.value)
        await self._dispatch_fill_events(context.handle)
        self.logger.debug(f"Selected option '{match.value}' in {context.selector}")
        return match.value
