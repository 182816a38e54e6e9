"""Field memory service: user-selected fields captured and re-applied."""

import logging
from typing import Any, List, Optional, Sequence

from formation_agent.core.autofill_executor import AutofillExecutor
from formation_agent.core.browser_interface import DocumentInterface
from formation_agent.core.exceptions import StorageError
from formation_agent.core.models import AutofillResult, FieldMemory, FieldSnapshot, MatchConfidence
from formation_agent.messaging.notifier import LoggingNotifier, Notifier
from formation_agent.storage.field_memory_store import FieldMemoryStore
from formation_agent.tools.field_extractor import FieldSnapshotExtractor
from formation_agent.tools.match_scorer import MatchScorer

logger = logging.getLogger(__name__)

SELECTABLE_QUERY = "input, textarea, select"


class FieldMemoryService:
    """Backs the field selection mode and explicit memory application."""

    def __init__(
        self,
        document: DocumentInterface,
        memory_store: FieldMemoryStore,
        executor: AutofillExecutor,
        scorer: Optional[MatchScorer] = None,
        notifier: Optional[Notifier] = None,
    ):
        self.document = document
        self.memory_store = memory_store
        self.executor = executor
        self.scorer = scorer or MatchScorer()
        self.extractor: FieldSnapshotExtractor = self.scorer.extractor
        self.notifier = notifier or LoggingNotifier()
        self.logger = logging.getLogger(__name__)

    async def find_selectable_fields(self) -> List[Any]:
        """Handles of every element the user may pick for a memory."""
        selectable = []
        for handle in await self.document.query_selector_all(SELECTABLE_QUERY):
            if self.extractor.is_selectable(await self.document.inspect(handle)):
                selectable.append(handle)
        self.logger.debug(f"{len(selectable)} selectable field(s) on {self.document.url}")
        return selectable

    async def capture(self, handles: Sequence[Any]) -> List[FieldSnapshot]:
        """Snapshot the picked elements; ineligible ones are dropped."""
        snapshots = []
        for handle in handles:
            snapshot = await self.extractor.extract(self.document, handle)
            if snapshot is not None:
                snapshots.append(snapshot)
        return snapshots

    async def save_selection(self, handles: Sequence[Any], title: Optional[str] = None) -> Optional[FieldMemory]:
        """
        Capture the picked fields and store them as a new memory.

        Args:
            handles: Elements the user selected
            title: Memory title; the next free ``SET n`` when omitted

        Returns:
            The stored FieldMemory, or None when nothing was saved
        """
        snapshots = await self.capture(handles)
        if not snapshots:
            self.notifier.notify("No fields selected", "warning")
            return None

        try:
            title = (title or "").strip() or await self.memory_store.next_title(self.document.url)
            memory = await self.memory_store.save(self.document.url, title, snapshots)
        except StorageError as e:
            self.logger.error(f"Saving field memory failed: {e}")
            self.notifier.notify("Saving field data failed", "error")
            return None

        self.notifier.notify(f'"{memory.title}" saved ({len(snapshots)} fields)', "success")
        return memory

    async def apply_memory(self, memory_id: str) -> AutofillResult:
        """
        Apply a memory at the user's request.

        Every resolved field that is currently empty is filled, whatever its
        confidence; fields already holding a value are left alone.
        """
        try:
            memory = await self.memory_store.get_by_id(memory_id)
        except StorageError as e:
            self.logger.error(f"Could not read field memory {memory_id}: {e}")
            self.notifier.notify("Saved data could not be loaded", "error")
            return AutofillResult()
        if memory is None:
            self.notifier.notify("Saved data not found", "error")
            return AutofillResult()

        matches = await self.scorer.score_all(self.document, memory.fields)
        to_fill = [m for m in matches if m.confidence is not MatchConfidence.FAILED and m.is_empty]
        result = await self.executor.apply([m.snapshot for m in to_fill], [m.handle for m in to_fill])
        unresolved = [m.snapshot.selector for m in matches if m.confidence is MatchConfidence.FAILED]
        result.total_count = len(memory.fields)
        result.skipped_count += len(unresolved)
        result.skipped_selectors.extend(unresolved)

        if result.filled_count > 0:
            try:
                await self.memory_store.record_usage(memory_id)
            except StorageError as e:
                self.logger.warning(f"Could not record usage of memory {memory_id}: {e}")
            self.notifier.notify(f"{result.filled_count} field(s) filled", "success")
        else:
            self.notifier.notify("Autofill did not fill any field", "warning")
        return result

    async def list_for_current_page(self) -> List[FieldMemory]:
        return await self.memory_store.get_by_url(self.document.url)
