"""Wires the engine's collaborators together for one page context."""

import logging
from typing import Any, Dict, List, Optional

from formation_agent.config import Config
from formation_agent.core.autofill_executor import AutofillExecutor
from formation_agent.core.browser_interface import DocumentInterface
from formation_agent.core.confirmation_bridge import ConfirmationBridge
from formation_agent.core.confirmation_queue import ConfirmationQueue
from formation_agent.core.decision_engine import AutofillDecisionEngine, FormEvaluation
from formation_agent.core.field_memory_service import FieldMemoryService
from formation_agent.core.models import FormInfo, SaveOutcome
from formation_agent.core.save_service import SaveService
from formation_agent.messaging import message_types as mt
from formation_agent.messaging.channel import MessageChannel
from formation_agent.messaging.notifier import LoggingNotifier, Notifier
from formation_agent.storage.backends import KeyValueStore
from formation_agent.storage.field_memory_store import FieldMemorySettings, FieldMemoryStore
from formation_agent.storage.form_storage import FormStorage
from formation_agent.storage.site_policy import GlobalSaveMode, SitePolicyStore
from formation_agent.tools.field_extractor import FieldSnapshotExtractor
from formation_agent.tools.form_detector import FormDetector
from formation_agent.tools.match_scorer import MatchScorer
from formation_agent.tools.selector_generator import SelectorGenerator
from formation_agent.tools.url_pattern import UrlMatchingOptions

logger = logging.getLogger(__name__)


class FormOrchestrator:
    """Page-side entry point.

    The host calls ``on_page_settled`` once the DOM is stable, the submit
    and unload hooks when the user leaves a form, and ``teardown`` when the
    page context goes away.
    """

    def __init__(
        self,
        document: DocumentInterface,
        store: KeyValueStore,
        channel: MessageChannel,
        notifier: Optional[Notifier] = None,
        scorer: Optional[MatchScorer] = None,
        executor: Optional[AutofillExecutor] = None,
        detector: Optional[FormDetector] = None,
        memory_store: Optional[FieldMemoryStore] = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            document: Document of the current page
            store: Key-value backend shared by all stores
            channel: Page-side endpoint of the page/background channel
            notifier: Toast presenter
            scorer: Match scorer; defaults are used when omitted
            executor: Autofill executor; defaults are used when omitted
            detector: Form detector; defaults are used when omitted
            memory_store: Field memory store; defaults are used when omitted
        """
        self.document = document
        self.channel = channel
        self.notifier = notifier or LoggingNotifier()
        self.logger = logging.getLogger(__name__)

        self.scorer = scorer or MatchScorer()
        self.executor = executor or AutofillExecutor(document)
        self.detector = detector or FormDetector(self.scorer.extractor.selector_generator)
        self.form_storage = FormStorage(store)
        self.policies = SitePolicyStore(store)
        self.save_mode = GlobalSaveMode(store)
        self.memory_store = memory_store or FieldMemoryStore(store)

        self.bridge = ConfirmationBridge(channel)
        self.queue = ConfirmationQueue()
        self.engine = AutofillDecisionEngine(
            document,
            self.form_storage,
            self.policies,
            self.scorer,
            self.executor,
            self.bridge,
            memory_store=self.memory_store,
            notifier=self.notifier,
            queue=self.queue,
        )
        self.save_service = SaveService(
            document, self.detector, self.form_storage, self.policies, self.save_mode, self.bridge, self.notifier
        )
        self.field_memories = FieldMemoryService(document, self.memory_store, self.executor, self.scorer, self.notifier)

        self.forms: List[FormInfo] = []
        self.evaluations: List[FormEvaluation] = []
        self.save_mode_enabled: Optional[bool] = None
        self.channel.add_listener(self._on_message)

    @classmethod
    def from_config(
        cls,
        document: DocumentInterface,
        store: KeyValueStore,
        channel: MessageChannel,
        config: Config,
        notifier: Optional[Notifier] = None,
    ) -> "FormOrchestrator":
        """Build an orchestrator with every tunable taken from configuration."""
        selector_generator = SelectorGenerator(config.get('selectors.test_id_attributes'))
        extractor = FieldSnapshotExtractor(
            selector_generator,
            min_visible_size=config.get('fields.min_visible_size'),
            excluded_types=config.get('fields.excluded_types'),
        )
        scorer = MatchScorer(
            extractor,
            exact_threshold=config.get('matching.exact_similarity'),
            medium_threshold=config.get('matching.medium_similarity'),
            compatible_types=config.get_compatible_types(),
        )
        executor = AutofillExecutor(
            document,
            highlight_color=config.get('executor.highlight_color'),
            highlight_duration=config.get('executor.highlight_duration'),
            verification_threshold=config.get('executor.verification_threshold'),
        )
        memory_defaults = FieldMemorySettings(
            max_memories_per_site=config.get('retention.max_memories_per_site'),
            max_total_memories=config.get('retention.max_total_memories'),
            auto_cleanup_days=config.get('retention.auto_cleanup_days'),
            url_matching=UrlMatchingOptions.from_dict(config.get('url_matching')),
        )
        return cls(
            document,
            store,
            channel,
            notifier=notifier,
            scorer=scorer,
            executor=executor,
            detector=FormDetector(selector_generator),
            memory_store=FieldMemoryStore(store, defaults=memory_defaults),
        )

    async def on_page_settled(self) -> List[FormEvaluation]:
        """Detect forms and run autofill evaluation for forms and field memories.

        Queued confirmations keep running after this returns; use
        ``wait_until_idle`` to wait for them.
        """
        self.forms = await self.detector.detect_forms(self.document)
        self.logger.info(f"{len(self.forms)} form(s) detected on {self.document.url}")
        self.evaluations = await self.engine.evaluate_forms(self.forms)
        self.evaluations.extend(await self.engine.evaluate_memories())
        return self.evaluations

    async def wait_until_idle(self) -> None:
        await self.engine.wait_until_idle()

    async def on_form_submit(self, form_index: Optional[int]) -> Optional[SaveOutcome]:
        """Run the save flow for the submitted form (None for the page-level group)."""
        forms = await self.detector.detect_forms(self.document)
        for form in forms:
            if form.index == form_index:
                return await self.save_service.check_for_save(form)
        self.logger.debug(f"Submitted form {form_index} has no savable fields")
        return None

    async def on_before_unload(self) -> List[SaveOutcome]:
        """Run the save flow for every detected form before the page goes away."""
        outcomes = []
        for form in await self.detector.detect_forms(self.document):
            outcomes.append(await self.save_service.check_for_save(form))
        return outcomes

    async def teardown(self) -> None:
        """Abandon outstanding confirmations and stop background work."""
        self.channel.remove_listener(self._on_message)
        self.bridge.close()
        await self.queue.stop()
        await self.executor.close()
        self.logger.info(f"Page context for {self.document.url} torn down")

    def _on_message(self, message: Dict[str, Any]) -> None:
        if message.get("type") != mt.SAVE_MODE_CHANGED:
            return
        self.save_mode_enabled = bool(message.get("isEnabled"))
        self.notifier.notify(f"Save mode {'on' if self.save_mode_enabled else 'off'}", "info")
