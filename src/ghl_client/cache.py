import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from .models import Pipeline, StageMatch

PIPELINE_CACHE_TTL = 60 * 60 * 1000  # 1 hour, ms

PipelineFetcher = Callable[[str], Awaitable[list[Pipeline]]]


@dataclass
class CacheEntry:
    pipelines: dict[str, Pipeline]
    fetched_at: float  # epoch ms


class PipelineCache:
    """Per-location pipeline maps, valid for ``ttl`` ms after they were fetched.

    Expired entries are only replaced when next read; nothing is swept and the
    number of locations is not bounded.
    """

    def __init__(self, ttl: float = PIPELINE_CACHE_TTL, clock: Callable[[], float] | None = None):
        self.ttl = ttl
        self._clock = clock or (lambda: time.time() * 1000)
        self._entries: dict[str, CacheEntry] = {}
        self._logger = logging.getLogger("ghl_client")

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, location_id: str) -> bool:
        return self._fresh(location_id) is not None

    def get_entry(self, location_id: str) -> CacheEntry | None:
        return self._entries.get(location_id)

    async def load(self, location_id: str, fetch: PipelineFetcher) -> dict[str, Pipeline]:
        entry = self._fresh(location_id)
        if entry is not None:
            self._logger.debug(f"using cached pipelines location={location_id}")
            return entry.pipelines

        self._logger.debug(f"fetching fresh pipelines location={location_id}")
        pipelines = await fetch(location_id)
        mapping = {p.id: p for p in pipelines}
        self._entries[location_id] = CacheEntry(pipelines=mapping, fetched_at=self._clock())
        return mapping

    async def find_stage_by_name(
        self, location_id: str, pipeline_id: str, name: str, fetch: PipelineFetcher
    ) -> StageMatch | None:
        pipelines = await self.load(location_id, fetch)
        pipeline = pipelines.get(pipeline_id)
        if pipeline is None:
            return None
        wanted = name.casefold()
        for stage in pipeline.stages:
            if stage.name.casefold() == wanted:
                return StageMatch(id=stage.id, name=stage.name)
        return None

    def clear(self, location_id: str | None = None) -> None:
        if location_id is not None:
            self._entries.pop(location_id, None)
        else:
            self._entries.clear()

    def _fresh(self, location_id: str) -> CacheEntry | None:
        entry = self._entries.get(location_id)
        if entry is None or self._clock() - entry.fetched_at >= self.ttl:
            return None
        return entry
