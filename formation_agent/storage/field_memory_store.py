"""Persistence of named field memories with a URL-pattern index."""

import json
import logging
import re
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

from formation_agent.core.models import FieldMemory, FieldSnapshot, now_ms
from formation_agent.storage.backends import KeyValueStore
from formation_agent.tools.constants import AUTO_CLEANUP_DAYS, MAX_MEMORIES_PER_SITE, MAX_TOTAL_MEMORIES
from formation_agent.tools.url_pattern import UrlMatchingOptions, generate_pattern, hostname_of, url_matches

logger = logging.getLogger(__name__)

MEMORY_PREFIX = "field_memory_"
INDEX_KEY = "field_memory_index"
SETTINGS_KEY = "field_memory_settings"

DAY_MS = 24 * 60 * 60 * 1000
_TITLE_RE = re.compile(r"^SET (\d+)$")


@dataclass
class FieldMemorySettings:
    """Retention limits and URL matching options for field memories."""
    max_memories_per_site: int = MAX_MEMORIES_PER_SITE
    max_total_memories: int = MAX_TOTAL_MEMORIES
    auto_cleanup_days: int = AUTO_CLEANUP_DAYS
    url_matching: UrlMatchingOptions = field(default_factory=UrlMatchingOptions)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "max_memories_per_site": self.max_memories_per_site,
            "max_total_memories": self.max_total_memories,
            "auto_cleanup_days": self.auto_cleanup_days,
            "url_matching": self.url_matching.to_dict(),
        }

    def merged_with(self, data: Optional[Dict[str, Any]]) -> "FieldMemorySettings":
        data = data or {}
        return FieldMemorySettings(
            max_memories_per_site=int(data.get("max_memories_per_site", self.max_memories_per_site)),
            max_total_memories=int(data.get("max_total_memories", self.max_total_memories)),
            auto_cleanup_days=int(data.get("auto_cleanup_days", self.auto_cleanup_days)),
            url_matching=UrlMatchingOptions.from_dict({**self.url_matching.to_dict(), **(data.get("url_matching") or {})}),
        )


def memory_key(memory_id: str) -> str:
    return f"{MEMORY_PREFIX}{memory_id}"


def is_memory_key(key: str) -> bool:
    return key.startswith(MEMORY_PREFIX) and key not in (INDEX_KEY, SETTINGS_KEY)


class FieldMemoryStore:
    """Stores field memories under ``field_memory_{id}``.

    An index ``{url_pattern: [ids]}`` kept under ``field_memory_index``
    avoids scanning every record when looking memories up by URL.
    """

    def __init__(
        self,
        store: KeyValueStore,
        defaults: Optional[FieldMemorySettings] = None,
        clock: Callable[[], int] = now_ms,
    ):
        """
        Initialize the memory store.

        Args:
            store: Key-value backend
            defaults: Settings used where nothing is stored under field_memory_settings
            clock: Source of epoch-millisecond timestamps
        """
        self.store = store
        self.defaults = defaults or FieldMemorySettings()
        self.clock = clock
        self.logger = logging.getLogger(__name__)

    # --- Settings ------------------------------------------------------

    async def get_settings(self) -> FieldMemorySettings:
        result = await self.store.get([SETTINGS_KEY])
        return self.defaults.merged_with(result.get(SETTINGS_KEY))

    async def update_settings(self, **changes: Any) -> FieldMemorySettings:
        current = (await self.get_settings()).to_dict()
        if "url_matching" in changes and isinstance(changes["url_matching"], UrlMatchingOptions):
            changes["url_matching"] = changes["url_matching"].to_dict()
        current.update(changes)
        await self.store.set({SETTINGS_KEY: current})
        return self.defaults.merged_with(current)

    # --- Index ---------------------------------------------------------

    async def _get_index(self) -> Dict[str, List[str]]:
        result = await self.store.get([INDEX_KEY])
        return result.get(INDEX_KEY) or {}

    async def _add_to_index(self, url_pattern: str, memory_id: str) -> None:
        index = await self._get_index()
        ids = index.setdefault(url_pattern, [])
        if memory_id not in ids:
            ids.append(memory_id)
        await self.store.set({INDEX_KEY: index})

    async def _remove_from_index(self, url_pattern: str, memory_id: str) -> None:
        index = await self._get_index()
        if url_pattern in index:
            index[url_pattern] = [i for i in index[url_pattern] if i != memory_id]
            if not index[url_pattern]:
                del index[url_pattern]
        await self.store.set({INDEX_KEY: index})

    async def rebuild_index(self) -> Dict[str, List[str]]:
        """Recreate the URL-pattern index from the stored records."""
        index: Dict[str, List[str]] = {}
        for memory in await self.get_all():
            index.setdefault(memory.url_pattern, []).append(memory.id)
        await self.store.set({INDEX_KEY: index})
        self.logger.info(f"Rebuilt field memory index ({len(index)} patterns)")
        return index

    # --- Records -------------------------------------------------------

    async def save(
        self,
        url: str,
        title: str,
        fields: Sequence[FieldSnapshot],
        url_pattern: Optional[str] = None,
    ) -> FieldMemory:
        """
        Create a new memory.

        Args:
            url: Exact capture URL
            title: User-supplied title
            fields: Captured snapshots
            url_pattern: Matching key; generated from the URL when omitted

        Returns:
            The stored FieldMemory with its generated id
        """
        settings = await self.get_settings()
        memory = FieldMemory(
            id=str(uuid.uuid4()),
            url=url,
            url_pattern=url_pattern or generate_pattern(url, settings.url_matching),
            title=title,
            timestamp=self.clock(),
            use_count=0,
            fields=list(fields),
        )
        await self.store.set({memory_key(memory.id): memory.to_dict()})
        await self._add_to_index(memory.url_pattern, memory.id)
        self.logger.info(f"Saved field memory {memory.id} '{title}' for {url} ({len(memory.fields)} fields)")
        await self.auto_cleanup()
        return memory

    async def get_by_id(self, memory_id: str) -> Optional[FieldMemory]:
        key = memory_key(memory_id)
        result = await self.store.get([key])
        if key not in result:
            return None
        return FieldMemory.from_dict(result[key])

    async def get_by_url(self, url: str) -> List[FieldMemory]:
        """Memories whose pattern matches a URL, most used then most recent first."""
        settings = await self.get_settings()
        memories: List[FieldMemory] = []
        for url_pattern, ids in (await self._get_index()).items():
            if not url_matches(url, url_pattern, settings.url_matching):
                continue
            for memory_id in ids:
                memory = await self.get_by_id(memory_id)
                if memory is not None:
                    memories.append(memory)
        memories.sort(key=lambda m: (m.use_count, m.last_activity), reverse=True)
        return memories

    async def get_all(self) -> List[FieldMemory]:
        all_data = await self.store.get_all()
        memories = [
            FieldMemory.from_dict(value)
            for key, value in all_data.items()
            if is_memory_key(key) and isinstance(value, dict)
        ]
        memories.sort(key=lambda m: m.timestamp, reverse=True)
        return memories

    async def update(
        self,
        memory_id: str,
        title: Optional[str] = None,
        url_pattern: Optional[str] = None,
        use_count: Optional[int] = None,
        last_used: Optional[int] = None,
    ) -> Optional[FieldMemory]:
        """Update title, pattern or usage metadata; fields are never rewritten."""
        memory = await self.get_by_id(memory_id)
        if memory is None:
            return None
        previous_pattern = memory.url_pattern
        if title is not None:
            memory.title = title
        if url_pattern is not None:
            memory.url_pattern = url_pattern
        if use_count is not None:
            memory.use_count = max(0, use_count)
        if last_used is not None:
            memory.last_used = last_used
        await self.store.set({memory_key(memory_id): memory.to_dict()})
        if memory.url_pattern != previous_pattern:
            await self._remove_from_index(previous_pattern, memory_id)
            await self._add_to_index(memory.url_pattern, memory_id)
        return memory

    async def record_usage(self, memory_id: str) -> Optional[FieldMemory]:
        memory = await self.get_by_id(memory_id)
        if memory is None:
            return None
        return await self.update(memory_id, use_count=memory.use_count + 1, last_used=self.clock())

    async def delete(self, memory_id: str) -> bool:
        memory = await self.get_by_id(memory_id)
        if memory is None:
            return False
        await self.store.remove([memory_key(memory_id)])
        await self._remove_from_index(memory.url_pattern, memory_id)
        self.logger.info(f"Deleted field memory {memory_id}")
        return True

    async def delete_by_site(self, hostname: str) -> int:
        deleted = 0
        for memory in await self.get_all():
            if hostname_of(memory.url) == hostname and await self.delete(memory.id):
                deleted += 1
        return deleted

    async def next_title(self, url: str) -> str:
        """Next free ``SET n`` title among the memories matching a URL."""
        numbers = [
            int(match.group(1))
            for match in (_TITLE_RE.match(m.title) for m in await self.get_by_url(url))
            if match
        ]
        return f"SET {max(numbers, default=0) + 1}"

    async def get_stats(self) -> Dict[str, Any]:
        memories = await self.get_all()
        domain_counts: Dict[str, int] = {}
        for memory in memories:
            domain = hostname_of(memory.url)
            if domain:
                domain_counts[domain] = domain_counts.get(domain, 0) + 1
        most_used_sites = sorted(
            ({"domain": domain, "count": count} for domain, count in domain_counts.items()),
            key=lambda item: item["count"],
            reverse=True,
        )[:10]
        recently_used = sorted(
            (m for m in memories if m.last_used), key=lambda m: m.last_used, reverse=True
        )[:10]
        return {
            "total_memories": len(memories),
            "total_fields": sum(len(m.fields) for m in memories),
            "most_used_sites": most_used_sites,
            "recently_used": recently_used,
            "storage_size": len(json.dumps([m.to_dict() for m in memories])),
        }

    async def auto_cleanup(self) -> int:
        """
        Apply the retention policy.

        Drops never-used memories older than ``auto_cleanup_days``, then trims
        each site and finally the whole store to their limits, least recently
        used first.

        Returns:
            Number of memories deleted
        """
        settings = await self.get_settings()
        cutoff = self.clock() - settings.auto_cleanup_days * DAY_MS
        doomed = {m.id for m in await self.get_all() if m.timestamp < cutoff and not m.last_used}

        remaining = [m for m in await self.get_all() if m.id not in doomed]
        by_site: Dict[str, List[FieldMemory]] = {}
        for memory in remaining:
            by_site.setdefault(hostname_of(memory.url), []).append(memory)
        for site_memories in by_site.values():
            excess = len(site_memories) - settings.max_memories_per_site
            if excess > 0:
                site_memories.sort(key=lambda m: m.last_activity)
                doomed.update(m.id for m in site_memories[:excess])

        remaining = [m for m in remaining if m.id not in doomed]
        excess = len(remaining) - settings.max_total_memories
        if excess > 0:
            remaining.sort(key=lambda m: m.last_activity)
            doomed.update(m.id for m in remaining[:excess])

        for memory_id in doomed:
            await self.delete(memory_id)
        if doomed:
            self.logger.info(f"Retention cleanup removed {len(doomed)} field memories")
        return len(doomed)

    async def clear_all(self) -> int:
        keys = [k for k in await self.store.keys() if k.startswith(MEMORY_PREFIX)]
        if keys:
            await self.store.remove(keys)
        self.logger.info(f"Cleared all field memories ({len(keys)} keys)")
        return len(keys)
