"""Save-side policy: decides whether a submitted form's values are stored."""

import logging
from typing import Dict, Optional

from formation_agent.core.browser_interface import DocumentInterface
from formation_agent.core.confirmation_bridge import ConfirmationBridge
from formation_agent.core.exceptions import ChannelError, ConfirmationAbandonedError, StorageError
from formation_agent.core.models import ConfirmationAction, FormInfo, PolicyMode, SaveOutcome, SaveStatus
from formation_agent.messaging.notifier import LoggingNotifier, Notifier
from formation_agent.storage.form_storage import FormStorage
from formation_agent.storage.site_policy import GlobalSaveMode, SitePolicyStore
from formation_agent.tools.form_detector import FormDetector
from formation_agent.tools.url_pattern import hostname_of

logger = logging.getLogger(__name__)


class SaveService:
    """Stores form values on submit or unload, subject to policy.

    Nothing is saved unless the global save mode is armed, and a successful
    save disarms it again. While a prompt for a storage key is open, further
    triggers for the same key are dropped.
    """

    def __init__(
        self,
        document: DocumentInterface,
        detector: FormDetector,
        form_storage: FormStorage,
        policies: SitePolicyStore,
        save_mode: GlobalSaveMode,
        bridge: ConfirmationBridge,
        notifier: Optional[Notifier] = None,
    ):
        self.document = document
        self.detector = detector
        self.form_storage = form_storage
        self.policies = policies
        self.save_mode = save_mode
        self.bridge = bridge
        self.notifier = notifier or LoggingNotifier()
        self.logger = logging.getLogger(__name__)
        self.pending_saves: Dict[str, Dict[str, str]] = {}

    async def check_for_save(self, form: FormInfo) -> SaveOutcome:
        """
        Run the save flow for one form.

        Args:
            form: Detected form whose current values should be considered

        Returns:
            SaveOutcome describing what happened
        """
        key = form.storage_key
        storage_key = str(key)
        values = await self.detector.collect_values(self.document, form)
        if not values:
            return SaveOutcome(SaveStatus.NO_VALUES, storage_key)

        if storage_key in self.pending_saves:
            self.logger.info(f"Save prompt already open for {storage_key}, ignoring trigger")
            return SaveOutcome(SaveStatus.DUPLICATE, storage_key, len(values))

        self.pending_saves[storage_key] = values
        try:
            return await self._run(form, values)
        finally:
            self.pending_saves.pop(storage_key, None)

    async def _run(self, form: FormInfo, values: Dict[str, str]) -> SaveOutcome:
        key = form.storage_key
        storage_key = str(key)
        try:
            if not await self.save_mode.is_enabled():
                self.logger.debug(f"Save mode off, not saving {storage_key}")
                return SaveOutcome(SaveStatus.DISARMED, storage_key, len(values))
            policy = await self.policies.get(key.origin, key.form_signature)
        except StorageError as e:
            self.logger.error(f"Could not read save settings for {storage_key}: {e}")
            return SaveOutcome(SaveStatus.FAILED, storage_key, len(values), str(e))

        self.logger.info(f"Savable values for {storage_key} ({len(values)} fields), mode {policy.save_mode.value}")

        if policy.save_mode is PolicyMode.NEVER:
            return SaveOutcome(SaveStatus.SUPPRESSED, storage_key, len(values), "save mode is never")
        if policy.save_mode is PolicyMode.ALWAYS:
            return await self._save(form, values)

        try:
            action = await self.bridge.ask_save(hostname_of(key.origin), key.to_dict(), values)
        except ChannelError as e:
            self.logger.warning(f"Save confirmation for {storage_key} not delivered: {e}")
            self.notifier.notify("Could not show the save prompt. Reload the page to try again.", "warning")
            return SaveOutcome(SaveStatus.DECLINED, storage_key, len(values), "prompt unavailable")
        except ConfirmationAbandonedError:
            return SaveOutcome(SaveStatus.DECLINED, storage_key, len(values), "prompt abandoned")

        if action is ConfirmationAction.PRIMARY:
            return await self._save(form, values)
        if action is ConfirmationAction.NEVER:
            try:
                await self.policies.save(key.origin, key.form_signature, save_mode=PolicyMode.NEVER)
            except StorageError as e:
                self.logger.error(f"Could not persist never-save for {storage_key}: {e}")
                self.notifier.notify("Could not save your preference", "error")
                return SaveOutcome(SaveStatus.FAILED, storage_key, len(values), str(e))
            return SaveOutcome(SaveStatus.NEVER, storage_key, len(values))

        self.logger.info(f"User declined saving {storage_key}")
        return SaveOutcome(SaveStatus.DECLINED, storage_key, len(values))

    async def _save(self, form: FormInfo, values: Dict[str, str]) -> SaveOutcome:
        storage_key = str(form.storage_key)
        try:
            await self.form_storage.save(form.storage_key, values)
        except StorageError as e:
            self.logger.error(f"Saving {storage_key} failed: {e}")
            self.notifier.notify("Saving form data failed", "error")
            return SaveOutcome(SaveStatus.FAILED, storage_key, len(values), str(e))

        self.notifier.notify(f"Form data saved ({len(values)} fields)", "success")
        await self._disarm()
        return SaveOutcome(SaveStatus.SAVED, storage_key, len(values))

    async def _disarm(self) -> None:
        try:
            await self.save_mode.set(False)
        except StorageError as e:
            self.logger.error(f"Could not turn save mode off after saving: {e}")
