from __future__ import annotations

import logging
import os
import re
import threading
import time
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Mapping, Optional

from pydantic import ValidationError

from engine.errors import StorageError
from schemas.timing_ir import TimingSample

logger = logging.getLogger(__name__)

Bucketer = Callable[[str, Mapping[str, float]], str]

_SECONDS_PER_DAY = 86400.0


def _file_stem(tool: str) -> str:
    return re.sub(r"[^A-Za-z0-9_.-]", "_", tool) or "_"


class _ToolSamples:
    """Samples of one tool in write order, also grouped by bucket."""

    def __init__(self, samples: Iterable[TimingSample] = ()) -> None:
        self.samples: List[TimingSample] = []
        self.by_bucket: Dict[str, List[TimingSample]] = {}
        for sample in samples:
            self.add(sample)

    def add(self, sample: TimingSample) -> None:
        self.samples.append(sample)
        self.by_bucket.setdefault(sample.bucket, []).append(sample)


class TimingStore:
    """Append-only store of timing samples.

    With a ``path`` every tool gets its own JSONL file under that directory;
    without one samples live in memory for the life of the process.

    A tool's file is read once, on first use, and kept in an index grouped by
    bucket; later appends go to both the file and the index. Each tool has
    its own write lock, so appends for different tools never wait on each
    other. Queries on an indexed tool take no lock. One store instance owns
    a directory; appends by other processes are only seen after a restart.

    ``bucketer`` must be the same function the estimator uses to build its
    lookup key, normally ``FeatureBucketer(catalog).bucket_key``.
    """

    def __init__(
        self,
        bucketer: Bucketer,
        path: Optional[Path] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if not callable(bucketer):
            raise TypeError("TimingStore needs a bucketer callable as its first argument")
        self.bucketer = bucketer
        self.path = path
        self.clock = clock
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()
        self._index: Dict[str, _ToolSamples] = {}
        if path is not None:
            try:
                path.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                raise StorageError(f"cannot create timing store at {path}: {exc}") from exc

    def _lock_for(self, tool: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(tool)
            if lock is None:
                lock = threading.Lock()
                self._locks[tool] = lock
            return lock

    def _file_for(self, tool: str) -> Path:
        assert self.path is not None
        return self.path / f"{_file_stem(tool)}.jsonl"

    def record(
        self,
        tool: str,
        features: Optional[Mapping[str, float]],
        duration_ms: int,
        mode: Optional[str] = None,
    ) -> TimingSample:
        features = dict(features or {})
        try:
            sample = TimingSample(
                tool=tool,
                features=features,
                bucket=self.bucketer(tool, features),
                duration_ms=int(duration_ms),
                timestamp=self.clock(),
                mode=mode,
            )
        except (ValidationError, TypeError, ValueError) as exc:
            raise StorageError(f"invalid timing sample for {tool}: {exc}") from exc
        self.record_sample(sample)
        return sample

    def record_sample(self, sample: TimingSample) -> None:
        with self._lock_for(sample.tool):
            if self.path is not None:
                line = sample.model_dump_json() + "\n"
                try:
                    with self._file_for(sample.tool).open("a", encoding="utf-8") as handle:
                        handle.write(line)
                except OSError as exc:
                    raise StorageError(
                        f"cannot append timing sample for {sample.tool}: {exc}"
                    ) from exc
            index = self._index.get(sample.tool)
            if index is None and self.path is None:
                index = self._index[sample.tool] = _ToolSamples()
            # An unindexed file is picked up whole on its first query.
            if index is not None:
                index.add(sample)

    def _index_for(self, tool: str) -> _ToolSamples:
        index = self._index.get(tool)
        if index is not None:
            return index
        with self._lock_for(tool):
            return self._index_locked(tool)

    def _index_locked(self, tool: str) -> _ToolSamples:
        index = self._index.get(tool)
        if index is None:
            index = _ToolSamples(self._read_file(tool) if self.path is not None else ())
            self._index[tool] = index
        return index

    def _read_file(self, tool: str) -> List[TimingSample]:
        path = self._file_for(tool)
        if not path.exists():
            return []
        try:
            raw = path.read_bytes()
        except OSError as exc:
            raise StorageError(f"cannot read timing samples for {tool}: {exc}") from exc
        samples: List[TimingSample] = []
        # The segment after the last newline is empty or a write in flight.
        for line in raw.split(b"\n")[:-1]:
            line = line.strip()
            if not line:
                continue
            try:
                sample = TimingSample.model_validate_json(line)
            except ValidationError:
                logger.debug("skipping unreadable timing sample in %s", path)
                continue
            if sample.tool == tool:
                samples.append(sample)
        logger.debug("indexed %d timing samples for %s", len(samples), tool)
        return samples

    def query_samples(
        self,
        tool: str,
        bucket: Optional[str] = None,
        since: Optional[float] = None,
    ) -> List[TimingSample]:
        index = self._index_for(tool)
        if bucket is None:
            samples = list(index.samples)
        else:
            samples = list(index.by_bucket.get(bucket, ()))
        if since is not None:
            samples = [sample for sample in samples if sample.timestamp >= since]
        return samples

    def count(self, tool: str, bucket: Optional[str] = None, since: Optional[float] = None) -> int:
        return len(self.query_samples(tool, bucket=bucket, since=since))

    def tools(self) -> List[str]:
        names = {tool for tool, index in list(self._index.items()) if index.samples}
        if self.path is not None:
            for path in self.path.glob("*.jsonl"):
                for sample in self._load_path_head(path):
                    names.add(sample.tool)
        return sorted(names)

    def _load_path_head(self, path: Path) -> List[TimingSample]:
        try:
            with path.open("rb") as handle:
                first = handle.readline()
        except OSError as exc:
            raise StorageError(f"cannot read {path}: {exc}") from exc
        if not first.endswith(b"\n"):
            return []
        try:
            return [TimingSample.model_validate_json(first.strip())]
        except ValidationError:
            return []

    def prune(
        self,
        tool: str,
        max_age_days: Optional[float] = None,
        max_samples: Optional[int] = None,
    ) -> int:
        """Drop samples older than ``max_age_days`` and keep at most the newest
        ``max_samples``. Returns how many samples were removed."""
        if max_age_days is None and max_samples is None:
            return 0
        cutoff = None
        if max_age_days is not None:
            cutoff = self.clock() - max_age_days * _SECONDS_PER_DAY
        with self._lock_for(tool):
            samples = self._index_locked(tool).samples
            kept = samples
            if cutoff is not None:
                kept = [sample for sample in kept if sample.timestamp >= cutoff]
            if max_samples is not None and len(kept) > max_samples:
                kept = kept[len(kept) - max_samples:] if max_samples > 0 else []
            removed = len(samples) - len(kept)
            if removed:
                if self.path is not None:
                    self._rewrite_file(tool, kept)
                self._index[tool] = _ToolSamples(kept)
        if removed:
            logger.info("pruned %d timing samples for %s", removed, tool)
        return removed

    def _rewrite_file(self, tool: str, samples: List[TimingSample]) -> None:
        target = self._file_for(tool)
        tmp = target.with_suffix(".jsonl.tmp")
        try:
            with tmp.open("w", encoding="utf-8") as handle:
                for sample in samples:
                    handle.write(sample.model_dump_json())
                    handle.write("\n")
            os.replace(tmp, target)
        except OSError as exc:
            raise StorageError(f"cannot rewrite timing samples for {tool}: {exc}") from exc
