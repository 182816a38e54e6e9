"""Handles text-like inputs and textareas."""

from .base_handler import BaseActionHandler, FillContext


class TextActionHandler(BaseActionHandler):
    """Assigns the stored value to inputs and textareas as-is."""

    async def execute(self, context: FillContext) -> str:
        await self.document.set_value(context.handle, context.value)
        await self._dispatch_fill_events(context.handle)
        self.logger.debug(f"Filled text field {context.selector}")
        return context.value
