"""Per-site policy and the global save mode toggle."""

import logging
from typing import Optional

from formation_agent.core.models import PolicyMode, SitePolicy
from formation_agent.storage.backends import KeyValueStore

logger = logging.getLogger(__name__)

GLOBAL_SAVE_MODE_KEY = "global_save_mode"


def policy_key(origin: str, form_signature: str) -> str:
    return f"settings_{origin}_{form_signature}"


class SitePolicyStore:
    """Save/autofill policy per (origin, form signature); absent means ask."""

    def __init__(self, store: KeyValueStore):
        self.store = store
        self.logger = logging.getLogger(__name__)

    async def get(self, origin: str, form_signature: str) -> SitePolicy:
        key = policy_key(origin, form_signature)
        result = await self.store.get([key])
        return SitePolicy.from_dict(result.get(key))

    async def save(
        self,
        origin: str,
        form_signature: str,
        save_mode: Optional[PolicyMode] = None,
        autofill_mode: Optional[PolicyMode] = None,
    ) -> SitePolicy:
        """
        Update part of a policy, keeping the other mode as stored.

        Args:
            origin: Site origin
            form_signature: Form signature (or memory policy id)
            save_mode: New save mode, None to keep
            autofill_mode: New autofill mode, None to keep

        Returns:
            The policy as written
        """
        existing = await self.get(origin, form_signature)
        updated = SitePolicy(
            save_mode=save_mode or existing.save_mode,
            autofill_mode=autofill_mode or existing.autofill_mode,
        )
        await self.store.set({policy_key(origin, form_signature): updated.to_dict()})
        self.logger.info(
            f"Policy for {origin} / {form_signature}: save={updated.save_mode.value}, "
            f"autofill={updated.autofill_mode.value}"
        )
        return updated

    async def reset(self, origin: str, form_signature: str) -> None:
        await self.store.remove([policy_key(origin, form_signature)])
        self.logger.info(f"Policy reset for {origin} / {form_signature}")


class GlobalSaveMode:
    """Page-wide one-shot arming switch for saving; off by default."""

    def __init__(self, store: KeyValueStore):
        self.store = store
        self.logger = logging.getLogger(__name__)

    async def is_enabled(self) -> bool:
        result = await self.store.get([GLOBAL_SAVE_MODE_KEY])
        return bool((result.get(GLOBAL_SAVE_MODE_KEY) or {}).get("isEnabled", False))

    async def set(self, is_enabled: bool) -> None:
        await self.store.set({GLOBAL_SAVE_MODE_KEY: {"isEnabled": bool(is_enabled)}})
        self.logger.info(f"Global save mode {'ON' if is_enabled else 'OFF'}")

    async def toggle(self) -> bool:
        new_state = not await self.is_enabled()
        await self.set(new_state)
        return new_state
