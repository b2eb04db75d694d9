"""
Fingerprint Store

Concurrent map from a metric fingerprint to the most recently computed
MetricSample. Shared by every scheduler, every pipeline task and the
exposition collector.

Entries are sharded by fingerprint; each shard has its own lock, held only
for a single insert or while copying that shard during a snapshot. Entries are
never deleted: samples of build configurations that disappear from TeamCity
stay until the process restarts.

Usage:
    store = FingerprintStore()
    store.put(sample)                # same name+labels overwrite
    for sample in store.snapshot_all():
        ...
"""

import threading
from collections.abc import Iterator

from teamcity_exporter.domain.metrics import MetricSample

DEFAULT_SHARD_COUNT = 32


class _Shard:
    __slots__ = ("entries", "lock")

    def __init__(self) -> None:
        self.entries: dict[str, MetricSample] = {}
        self.lock = threading.Lock()


class FingerprintStore:
    """
    Thread-safe, sharded fingerprint → sample map.

    Safe to call from asyncio tasks and from the HTTP server thread at the
    same time. A snapshot is eventually consistent: writes landing in a shard
    after it was copied are picked up by the next snapshot.
    """

    def __init__(self, shard_count: int = DEFAULT_SHARD_COUNT):
        if shard_count < 1:
            raise ValueError("shard_count must be >= 1")
        self._shards = [_Shard() for _ in range(shard_count)]

    def _shard_for(self, fingerprint: str) -> _Shard:
        return self._shards[hash(fingerprint) % len(self._shards)]

    def set(self, fingerprint: str, sample: MetricSample) -> None:
        """Insert or overwrite the sample stored under fingerprint"""
        shard = self._shard_for(fingerprint)
        with shard.lock:
            shard.entries[fingerprint] = sample

    def put(self, sample: MetricSample) -> str:
        """Store sample under its own fingerprint and return the fingerprint"""
        self.set(sample.fingerprint, sample)
        return sample.fingerprint

    def get(self, fingerprint: str) -> MetricSample | None:
        shard = self._shard_for(fingerprint)
        with shard.lock:
            return shard.entries.get(fingerprint)

    def snapshot_all(self) -> list[MetricSample]:
        """
        Copy of every current entry.

        Shards are copied one at a time, so a writer waits at most for the
        copy of one shard.
        """
        snapshot: list[MetricSample] = []
        for shard in self._shards:
            with shard.lock:
                snapshot.extend(shard.entries.values())
        return snapshot

    def __iter__(self) -> Iterator[MetricSample]:
        return iter(self.snapshot_all())

    def __len__(self) -> int:
        total = 0
        for shard in self._shards:
            with shard.lock:
                total += len(shard.entries)
        return total
