"""Persistence of plain, name-keyed form data."""

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from formation_agent.core.models import SitePolicy, StorageKey, StoredFormData
from formation_agent.storage.backends import KeyValueStore
from formation_agent.tools.url_pattern import origin_of, path_of

logger = logging.getLogger(__name__)

FORM_KEY_PREFIX = "form_"
SETTINGS_KEY_PREFIX = "settings_"


@dataclass
class StoredFormEntry:
    """A stored form record with its key split back into parts."""
    storage_key: str
    origin: str
    path: str
    form_signature: str
    data: StoredFormData
    policy: SitePolicy


def parse_form_key(storage_key: str, data: Optional[StoredFormData] = None) -> Optional[StorageKey]:
    """
    Split ``form_{origin}{path}_{signature}`` back into its parts.

    Args:
        storage_key: Key as written by ``FormStorage.save``
        data: The stored record; its URL pins down where the signature starts

    Returns:
        StorageKey, or None when the key is not a form key
    """
    if not storage_key.startswith(FORM_KEY_PREFIX):
        return None
    body = storage_key[len(FORM_KEY_PREFIX):]

    if data is not None and data.url and body.startswith(data.url + "_"):
        url_part, signature = data.url, body[len(data.url) + 1:]
    elif body.endswith("_empty"):
        url_part, signature = body[: -len("_empty")], "empty"
    else:
        split_at = body.find("_fields_")
        if split_at < 0:
            return None
        url_part, signature = body[:split_at], body[split_at + 1:]

    origin = origin_of(url_part)
    if not origin:
        return None
    return StorageKey(origin=origin, path=path_of(url_part), form_signature=signature)


class FormStorage:
    """Reads and writes ``form_*`` records."""

    def __init__(self, store: KeyValueStore):
        self.store = store
        self.logger = logging.getLogger(__name__)

    async def save(self, key: StorageKey, values: Dict[str, str]) -> StoredFormData:
        data = StoredFormData(fields=dict(values), url=f"{key.origin}{key.path}")
        await self.store.set({str(key): data.to_dict()})
        self.logger.info(f"Saved form data under {key} ({len(values)} fields)")
        return data

    async def get(self, key: StorageKey) -> Optional[StoredFormData]:
        storage_key = str(key)
        result = await self.store.get([storage_key])
        if storage_key not in result:
            return None
        data = StoredFormData.from_dict(result[storage_key])
        self.logger.debug(f"Loaded form data {storage_key} ({len(data.fields)} fields)")
        return data

    async def delete(self, key: StorageKey) -> None:
        await self.store.remove([str(key)])
        self.logger.info(f"Deleted form data {key}")

    async def delete_key(self, storage_key: str) -> None:
        await self.store.remove([storage_key])
        self.logger.info(f"Deleted {storage_key}")

    async def clear_site(self, origin: str) -> List[str]:
        """Remove every form record and site policy of an origin."""
        form_prefix = f"{FORM_KEY_PREFIX}{origin}/"
        settings_prefix = f"{SETTINGS_KEY_PREFIX}{origin}_"
        removed = [
            key for key in await self.store.keys()
            if key.startswith(form_prefix) or key.startswith(settings_prefix)
        ]
        if removed:
            await self.store.remove(removed)
            self.logger.info(f"Cleared {len(removed)} record(s) for {origin}")
        return removed

    async def list_all(self) -> List[StoredFormEntry]:
        """Every stored form record, newest first, with its site policy."""
        all_data = await self.store.get_all()
        entries: List[StoredFormEntry] = []
        for storage_key, raw in all_data.items():
            if not storage_key.startswith(FORM_KEY_PREFIX) or not isinstance(raw, dict):
                continue
            data = StoredFormData.from_dict(raw)
            key = parse_form_key(storage_key, data)
            if key is None:
                self.logger.warning(f"Ignoring malformed storage key {storage_key}")
                continue
            policy = SitePolicy.from_dict(all_data.get(f"{SETTINGS_KEY_PREFIX}{key.origin}_{key.form_signature}"))
            entries.append(
                StoredFormEntry(
                    storage_key=storage_key,
                    origin=key.origin,
                    path=key.path,
                    form_signature=key.form_signature,
                    data=data,
                    policy=policy,
                )
            )
        entries.sort(key=lambda entry: entry.data.timestamp, reverse=True)
        return entries

    async def storage_info(self) -> Dict[str, Any]:
        all_data = await self.store.get_all()
        return {
            "bytes_in_use": len(json.dumps(all_data)),
            "item_count": len(all_data),
            "form_data_count": sum(1 for key in all_data if key.startswith(FORM_KEY_PREFIX)),
        }
