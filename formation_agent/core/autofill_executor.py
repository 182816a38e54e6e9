"""Autofill executor - applies approved values and reports the outcome."""

import asyncio
import logging
from typing import Any, Dict, Optional, Sequence, Set

from formation_agent.core.browser_interface import DocumentInterface, FieldKind
from formation_agent.core.exceptions import ElementNotFoundError, FillError
from formation_agent.core.models import AutofillResult, FieldSnapshot
from formation_agent.core.action_handlers.base_handler import BaseActionHandler, FillContext
from formation_agent.core.action_handlers.select_handler import SelectActionHandler
from formation_agent.core.action_handlers.text_handler import TextActionHandler
from formation_agent.tools.constants import HIGHLIGHT_COLOR, HIGHLIGHT_DURATION, VERIFICATION_THRESHOLD
from formation_agent.tools.verification_helper import verify_field_value

logger = logging.getLogger(__name__)


class AutofillExecutor:
    """Dispatches each field to the handler for its kind.

    The executor never checks whether a field is empty; that decision is
    made before it is called, so the same executor serves both the
    confirmed and the unattended paths.
    """

    def __init__(
        self,
        document: DocumentInterface,
        highlight_color: str = HIGHLIGHT_COLOR,
        highlight_duration: float = HIGHLIGHT_DURATION,
        verification_threshold: float = VERIFICATION_THRESHOLD,
    ):
        """
        Initialize the executor and its handlers.

        Args:
            document: Document to fill
            highlight_color: Outline color applied to filled fields
            highlight_duration: Seconds before the outline is reverted
            verification_threshold: Minimum fuzzy score for a read-back value
        """
        self.document = document
        self.highlight_color = highlight_color
        self.highlight_duration = highlight_duration
        self.verification_threshold = verification_threshold
        self.logger = logging.getLogger(__name__)
        self._highlight_tasks: Set[asyncio.Task] = set()

        text_handler = TextActionHandler(document)
        self.handlers: Dict[FieldKind, BaseActionHandler] = {
            FieldKind.TEXT: text_handler,
            FieldKind.TEXTAREA: text_handler,
            FieldKind.SELECT: SelectActionHandler(document),
        }

    async def apply(
        self,
        fields: Sequence[FieldSnapshot],
        handles: Optional[Sequence[Any]] = None,
    ) -> AutofillResult:
        """
        Apply stored values to the page.

        Args:
            fields: Snapshots whose values should be written
            handles: Elements already resolved for ``fields``, position by
                position; a field without one is resolved by its selector

        Returns:
            AutofillResult; unresolvable selectors are skipped, fields whose
            value could not be applied are failed, neither aborts the rest
        """
        result = AutofillResult(total_count=len(fields))
        handles = list(handles) if handles is not None else []
        for index, snapshot in enumerate(fields):
            handle = handles[index] if index < len(handles) else None
            try:
                await self.fill_field(snapshot, handle)
                result.filled_count += 1
            except ElementNotFoundError as e:
                self.logger.info(f"Skipping {snapshot.selector}: {e.message}")
                result.skipped_count += 1
                result.skipped_selectors.append(snapshot.selector)
            except FillError as e:
                self.logger.warning(f"Fill failed for {snapshot.label or snapshot.selector}: {e.reason}")
                result.failed_count += 1
                result.failed_fields.append(snapshot.selector)
            except Exception as e:
                self.logger.error(f"Unexpected error filling {snapshot.selector}: {e}", exc_info=True)
                result.failed_count += 1
                result.failed_fields.append(snapshot.selector)

        self.logger.info(f"Autofill finished: {result.message}")
        return result

    async def fill_field(self, snapshot: FieldSnapshot, handle: Any = None) -> str:
        """Resolve (unless given a handle), fill, verify and highlight one field; returns the assigned value."""
        if handle is None:
            handle = await self._resolve(snapshot.selector)
        info = await self.document.inspect(handle)
        handler = self.handlers.get(info.kind)
        if handler is None:
            raise FillError(snapshot.selector, f"<{info.tag}> is not a fillable element")

        context = FillContext(
            selector=snapshot.selector,
            value=snapshot.value,
            handle=handle,
            info=info,
            label=snapshot.label,
        )
        assigned = await handler.execute(context)

        if not await verify_field_value(self.document, handle, assigned, self.verification_threshold):
            raise FillError(snapshot.selector, "value did not persist after fill")

        await self._highlight(handle)
        return assigned

    async def _resolve(self, selector: str) -> Any:
        try:
            handles = await self.document.query_selector_all(selector)
        except Exception as e:
            self.logger.debug(f"Selector {selector} could not be evaluated: {e}")
            raise ElementNotFoundError(selector) from e
        if not handles:
            raise ElementNotFoundError(selector)
        return handles[0]

    async def _highlight(self, handle: Any) -> None:
        previous_outline = await self.document.set_style(handle, "outline", f"2px solid {self.highlight_color}")
        previous_offset = await self.document.set_style(handle, "outline-offset", "1px")
        task = asyncio.create_task(self._revert_highlight(handle, previous_outline, previous_offset))
        self._highlight_tasks.add(task)
        task.add_done_callback(self._highlight_tasks.discard)

    async def _revert_highlight(self, handle: Any, outline: str, offset: str) -> None:
        await asyncio.sleep(self.highlight_duration)
        try:
            await self.document.set_style(handle, "outline", outline)
            await self.document.set_style(handle, "outline-offset", offset)
        except Exception as e:
            # The element may be gone by now; the highlight is cosmetic.
            self.logger.debug(f"Could not revert highlight: {e}")

    async def wait_for_highlights(self) -> None:
        if self._highlight_tasks:
            await asyncio.gather(*list(self._highlight_tasks), return_exceptions=True)

    async def close(self) -> None:
        """Cancel pending highlight reverts."""
        tasks = list(self._highlight_tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
