"""Per-form autofill decisions: look up, score, then apply, ask or stay quiet."""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from formation_agent.core.autofill_executor import AutofillExecutor
from formation_agent.core.browser_interface import DocumentInterface
from formation_agent.core.confirmation_bridge import ConfirmationBridge
from formation_agent.core.confirmation_queue import ConfirmationQueue
from formation_agent.core.exceptions import ChannelError, ConfirmationAbandonedError, StorageError
from formation_agent.core.models import (
    AutofillResult,
    ConfirmationAction,
    FieldMemory,
    FieldSnapshot,
    FormInfo,
    MatchConfidence,
    PolicyMode,
)
from formation_agent.messaging.notifier import LoggingNotifier, Notifier
from formation_agent.storage.field_memory_store import FieldMemoryStore
from formation_agent.storage.form_storage import FormStorage
from formation_agent.storage.site_policy import SitePolicyStore
from formation_agent.tools.match_scorer import FieldMatch, MatchScorer
from formation_agent.tools.url_pattern import hostname_of, origin_of

logger = logging.getLogger(__name__)


class FormState(Enum):
    """Where a form's evaluation stands."""
    IDLE = "idle"
    CHECKED_NO_DATA = "checked_no_data"
    CHECKED_HAS_DATA = "checked_has_data"
    QUEUED = "queued"
    APPLIED = "applied"
    SUPPRESSED = "suppressed"


TERMINAL_STATES = (FormState.CHECKED_NO_DATA, FormState.APPLIED, FormState.SUPPRESSED)


def memory_policy_id(memory_id: str) -> str:
    return f"memory_{memory_id}"


@dataclass
class FormEvaluation:
    """Context for one form's (or one memory's) autofill evaluation."""
    key: str
    origin: str
    policy_id: str
    memory_id: Optional[str] = None
    state: FormState = FormState.IDLE
    history: List[FormState] = field(default_factory=list)
    matches: List[FieldMatch] = field(default_factory=list)
    autofillable: List[FieldSnapshot] = field(default_factory=list)
    action: Optional[ConfirmationAction] = None
    result: Optional[AutofillResult] = None
    reason: str = ""

    def transition(self, state: FormState, reason: str = "") -> None:
        self.history.append(self.state)
        self.state = state
        if reason:
            self.reason = reason
        logger.info(f"{self.key}: {self.history[-1].value} -> {state.value}{f' ({reason})' if reason else ''}")

    @property
    def is_settled(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def filled_count(self) -> int:
        return self.result.filled_count if self.result else 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "state": self.state.value,
            "reason": self.reason,
            "autofillable": [s.selector for s in self.autofillable],
            "action": self.action.value if self.action else None,
            "result": self.result.to_dict() if self.result else None,
        }


class AutofillDecisionEngine:
    """Decides, per detected form, whether stored data is applied.

    Forms are evaluated independently and concurrently. Confirmations go
    through a sequential queue so only one prompt is outstanding at a time.
    """

    def __init__(
        self,
        document: DocumentInterface,
        form_storage: FormStorage,
        policies: SitePolicyStore,
        scorer: MatchScorer,
        executor: AutofillExecutor,
        bridge: ConfirmationBridge,
        memory_store: Optional[FieldMemoryStore] = None,
        notifier: Optional[Notifier] = None,
        queue: Optional[ConfirmationQueue] = None,
    ):
        self.document = document
        self.form_storage = form_storage
        self.policies = policies
        self.scorer = scorer
        self.executor = executor
        self.bridge = bridge
        self.memory_store = memory_store
        self.notifier = notifier or LoggingNotifier()
        self.queue = queue or ConfirmationQueue()
        self.logger = logging.getLogger(__name__)

    # --- Entry points --------------------------------------------------

    async def evaluate_forms(self, forms: Sequence[FormInfo]) -> List[FormEvaluation]:
        """Evaluate every detected plain form concurrently."""
        return list(await asyncio.gather(*(self.evaluate_form(form) for form in forms)))

    async def evaluate_form(self, form: FormInfo) -> FormEvaluation:
        """
        Evaluate one plain form against its stored data.

        Args:
            form: Detected form

        Returns:
            FormEvaluation; queued evaluations keep changing state until
            their confirmation resolves (see ``wait_until_idle``)
        """
        key = form.storage_key
        evaluation = FormEvaluation(key=str(key), origin=key.origin, policy_id=key.form_signature)
        try:
            stored = await self.form_storage.get(key)
        except StorageError as e:
            self.logger.warning(f"Could not read stored data for {key}: {e}")
            evaluation.transition(FormState.CHECKED_NO_DATA, "storage unavailable")
            return evaluation

        if stored is None or not stored.fields:
            evaluation.transition(FormState.CHECKED_NO_DATA, "no stored data")
            return evaluation
        evaluation.transition(FormState.CHECKED_HAS_DATA)

        for form_field in form.fields:
            if form_field.name not in stored.fields:
                continue
            info = await self.document.inspect(form_field.handle)
            snapshot = FieldSnapshot(
                selector=form_field.selector,
                value=stored.fields[form_field.name],
                label=form_field.name,
                type=form_field.type,
                is_stable=True,
                kind=info.kind,
            )
            # Name-keyed data carries no label or type to compare; the name is the identity.
            confidence = MatchConfidence.EXACT if self.scorer.extractor.is_selectable(info) else MatchConfidence.FAILED
            evaluation.matches.append(
                FieldMatch(snapshot, confidence, handle=form_field.handle, info=info, similarity=1.0)
            )

        await self._decide(evaluation, confirm_all=False)
        return evaluation

    async def evaluate_memories(self) -> List[FormEvaluation]:
        """Evaluate every field memory whose URL pattern matches the page."""
        if self.memory_store is None:
            return []
        try:
            memories = await self.memory_store.get_by_url(self.document.url)
        except StorageError as e:
            self.logger.warning(f"Could not read field memories for {self.document.url}: {e}")
            return []
        return list(await asyncio.gather(*(self.evaluate_memory(memory) for memory in memories)))

    async def evaluate_memory(self, memory: FieldMemory) -> FormEvaluation:
        origin = origin_of(self.document.url)
        evaluation = FormEvaluation(
            key=f"memory:{memory.id}",
            origin=origin,
            policy_id=memory_policy_id(memory.id),
            memory_id=memory.id,
        )
        if not memory.fields:
            evaluation.transition(FormState.CHECKED_NO_DATA, "memory holds no fields")
            return evaluation
        evaluation.transition(FormState.CHECKED_HAS_DATA)
        evaluation.matches = await self.scorer.score_all(self.document, memory.fields)
        await self._decide(evaluation, confirm_all=True)
        return evaluation

    async def wait_until_idle(self) -> None:
        """Wait until every queued confirmation has resolved."""
        await self.queue.wait_until_processed()

    # --- Decision ------------------------------------------------------

    async def _decide(self, evaluation: FormEvaluation, confirm_all: bool) -> None:
        usable = [m for m in evaluation.matches if m.is_usable and m.is_empty]
        evaluation.autofillable = [m.snapshot for m in usable]
        if not usable:
            evaluation.transition(FormState.SUPPRESSED, "no empty field with a usable match")
            return

        try:
            policy = await self.policies.get(evaluation.origin, evaluation.policy_id)
        except StorageError as e:
            self.logger.warning(f"Could not read policy for {evaluation.key}, asking: {e}")
            mode = PolicyMode.ASK
        else:
            mode = policy.autofill_mode

        if mode is PolicyMode.ALWAYS:
            await self._apply(evaluation, usable)
        elif mode is PolicyMode.NEVER:
            evaluation.transition(FormState.SUPPRESSED, "autofill mode is never")
        else:
            # User-confirmed fills may use any resolved match, not only usable ones.
            if confirm_all:
                on_confirm = [m for m in evaluation.matches if m.confidence is not MatchConfidence.FAILED and m.is_empty]
            else:
                on_confirm = usable
            evaluation.transition(FormState.QUEUED, f"{len(on_confirm)} field(s) awaiting confirmation")
            await self.queue.add_task(self._confirm, evaluation, on_confirm)

    async def _confirm(self, evaluation: FormEvaluation, candidates: List[FieldMatch]) -> None:
        site_name = hostname_of(evaluation.origin) or evaluation.origin
        preview = [m.snapshot.label for m in candidates]
        try:
            action = await self.bridge.ask_autofill(site_name, preview)
        except ChannelError as e:
            self.logger.warning(f"Autofill confirmation for {evaluation.key} not delivered: {e}")
            self.notifier.notify("Could not show the autofill prompt. Reload the page to try again.", "warning")
            action = ConfirmationAction.DECLINE
        except ConfirmationAbandonedError:
            action = ConfirmationAction.DECLINE

        evaluation.action = action
        if action is ConfirmationAction.PRIMARY:
            await self._apply(evaluation, await self._still_empty(candidates))
        elif action is ConfirmationAction.NEVER:
            try:
                await self.policies.save(evaluation.origin, evaluation.policy_id, autofill_mode=PolicyMode.NEVER)
            except StorageError as e:
                self.logger.error(f"Could not persist never-autofill for {evaluation.key}: {e}")
                self.notifier.notify("Could not save your preference", "error")
            evaluation.transition(FormState.SUPPRESSED, "user chose never")
        else:
            evaluation.transition(FormState.SUPPRESSED, "user declined")

    async def _still_empty(self, candidates: List[FieldMatch]) -> List[FieldMatch]:
        """Fields the user filled while the prompt was open are left alone."""
        still_empty = []
        for match in candidates:
            try:
                info = await self.document.inspect(match.handle)
            except Exception as e:
                self.logger.debug(f"Could not re-read {match.snapshot.selector}: {e}")
                still_empty.append(match)
                continue
            if not (info.value or "").strip():
                still_empty.append(match)
        return still_empty

    async def _apply(self, evaluation: FormEvaluation, matches: List[FieldMatch]) -> None:
        # Fill the scored elements themselves, never the first page-wide selector match.
        result = await self.executor.apply([m.snapshot for m in matches], [m.handle for m in matches])
        # Stored fields whose selector no longer resolves are reported as skipped.
        unresolved = [m.snapshot.selector for m in evaluation.matches if m.handle is None]
        result.total_count += len(unresolved)
        result.skipped_count += len(unresolved)
        result.skipped_selectors.extend(unresolved)
        evaluation.result = result
        evaluation.transition(FormState.APPLIED, result.message)

        if evaluation.result.filled_count > 0:
            self.notifier.notify(f"Autofill complete ({evaluation.result.filled_count} fields)", "success")
            if evaluation.memory_id and self.memory_store is not None:
                try:
                    await self.memory_store.record_usage(evaluation.memory_id)
                except StorageError as e:
                    self.logger.warning(f"Could not record usage of memory {evaluation.memory_id}: {e}")
        else:
            self.notifier.notify("There were no fields to fill", "info")
