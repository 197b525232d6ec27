"""Concurrent bulk download of tile request descriptors.

A run is organised in rounds. Every descriptor of the current round is handed
to a fixed pool of worker tasks; the round ends once all of them reported
back, and only the descriptors that failed are carried into the next round.
The number of retry rounds is bounded, so a run always terminates and returns
a :class:`FetchReport` instead of raising when tiles keep failing.
"""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Sequence, Tuple

import httpx

from .auth import Authenticator
from .errors import ConfigurationError, TransientFetchError
from .planner import TileRequestDescriptor
from .sinks import TileSink

logger = logging.getLogger(__name__)

FETCH_CONCURRENCY_ENV = "GEOSTREAM_FETCH_CONCURRENCY"
REQUEST_TIMEOUT_ENV = "GEOSTREAM_REQUEST_TIMEOUT"
DEFAULT_CONCURRENCY = 16
DEFAULT_REQUEST_TIMEOUT = 30.0
DEFAULT_MAX_RETRY_ROUNDS = 5
SHUTDOWN_TIMEOUT = 10.0
PROGRESS_STEP = 25

ProgressCallback = Callable[[int, int], None]


@dataclass
class FetchOutcome:
    key: str
    ok: bool
    path: Path | None = None
    error: str | None = None


@dataclass
class FetchReport:
    """Summary of a bulk run; ``failed`` counts descriptors still failing at the end."""

    failed: int
    attempts: int
    succeeded: int
    failures: Dict[str, str] = field(default_factory=dict)


class _RoundState:
    def __init__(self, number: int, total: int, progress: ProgressCallback | None) -> None:
        self.number = number
        self.total = total
        self.progress = progress
        self.successes = 0
        self.milestone = 0
        self.failed: Dict[str, Tuple[TileRequestDescriptor, str]] = {}
        self.lock = asyncio.Lock()

    def emit(self, percent: int) -> None:
        logger.info("Round %d: %d%% complete", self.number, percent)
        if self.progress is None:
            return
        try:
            self.progress(self.number, percent)
        except Exception:
            logger.exception("Progress callback failed at %d%% of round %d", percent, self.number)

    def record_success(self) -> None:
        self.successes += 1
        reached = (self.successes * 100 // self.total) // PROGRESS_STEP * PROGRESS_STEP
        while self.milestone < reached:
            self.milestone += PROGRESS_STEP
            self.emit(self.milestone)

    async def record_failure(self, descriptor: TileRequestDescriptor, cause: str) -> None:
        async with self.lock:
            self.failed[descriptor.key] = (descriptor, cause)


def default_concurrency() -> int:
    raw_value = os.getenv(FETCH_CONCURRENCY_ENV, "").strip()
    if not raw_value:
        return DEFAULT_CONCURRENCY
    try:
        value = int(raw_value)
    except ValueError:
        return DEFAULT_CONCURRENCY
    return max(1, value)


def _request_timeout_seconds() -> float:
    raw_value = os.getenv(REQUEST_TIMEOUT_ENV, "").strip()
    if not raw_value:
        return DEFAULT_REQUEST_TIMEOUT
    try:
        timeout = float(raw_value)
    except ValueError:
        return DEFAULT_REQUEST_TIMEOUT
    return timeout if timeout > 0 else DEFAULT_REQUEST_TIMEOUT


def _short_error_detail(detail: str) -> str:
    detail = detail.strip()
    if len(detail) > 160:
        return f"{detail[:157]}..."
    return detail or "(no detail)"


def _unique(descriptors: Iterable[TileRequestDescriptor]) -> List[TileRequestDescriptor]:
    seen: Dict[str, TileRequestDescriptor] = {}
    for descriptor in descriptors:
        if descriptor.key in seen:
            logger.warning("Ignoring duplicate tile request for key %s", descriptor.key)
            continue
        seen[descriptor.key] = descriptor
    return list(seen.values())


class BulkFetchEngine:
    """Fetch tiles concurrently, persist them through ``sink`` and retry failures."""

    def __init__(
        self,
        sink: TileSink,
        authenticator: Authenticator | str,
        *,
        progress: ProgressCallback | None = None,
        shutdown_timeout: float = SHUTDOWN_TIMEOUT,
    ) -> None:
        self.sink = sink
        self.authenticator = authenticator
        self.progress = progress
        self.shutdown_timeout = shutdown_timeout

    def _token(self) -> str:
        if isinstance(self.authenticator, str):
            return self.authenticator
        return self.authenticator.current_token()

    async def run(
        self,
        descriptors: Sequence[TileRequestDescriptor],
        concurrency: int | None = None,
        max_retry_rounds: int = DEFAULT_MAX_RETRY_ROUNDS,
    ) -> FetchReport:
        """Download every descriptor, retrying the failed subset between rounds."""

        concurrency = default_concurrency() if concurrency is None else concurrency
        if concurrency < 1:
            raise ConfigurationError(f"Concurrency must be at least 1, got {concurrency}")
        if max_retry_rounds < 0:
            raise ConfigurationError(f"Retry rounds must not be negative, got {max_retry_rounds}")

        working_set = _unique(descriptors)
        if not working_set:
            return FetchReport(failed=0, attempts=0, succeeded=0)

        token = self._token()
        headers = {"Authorization": f"Bearer {token}"}
        queue: asyncio.Queue = asyncio.Queue()
        succeeded = 0
        attempts = 0
        last_failures: Dict[str, str] = {}

        async with httpx.AsyncClient(
            timeout=httpx.Timeout(_request_timeout_seconds()),
            limits=httpx.Limits(max_connections=concurrency),
        ) as client:
            workers = [
                asyncio.create_task(self._worker(client, headers, queue))
                for _ in range(concurrency)
            ]
            try:
                while working_set:
                    attempts += 1
                    if attempts > 1:
                        logger.info(
                            "Some tile requests failed, retrying %d failed requests, retry attempt: %d",
                            len(working_set),
                            attempts - 1,
                        )
                    state = _RoundState(attempts, len(working_set), self.progress)
                    state.emit(0)
                    for descriptor in working_set:
                        queue.put_nowait((descriptor, state))
                    await queue.join()

                    succeeded += state.successes
                    working_set = [descriptor for descriptor, _ in state.failed.values()]
                    last_failures = {key: cause for key, (_, cause) in state.failed.items()}
                    if attempts > max_retry_rounds:
                        break
            finally:
                await self._shutdown(workers, queue)

        if last_failures:
            logger.warning(
                "%d tile requests still failing after %d rounds", len(last_failures), attempts
            )
        return FetchReport(
            failed=len(last_failures),
            attempts=attempts,
            succeeded=succeeded,
            failures=last_failures,
        )

    def run_sync(
        self,
        descriptors: Sequence[TileRequestDescriptor],
        concurrency: int | None = None,
        max_retry_rounds: int = DEFAULT_MAX_RETRY_ROUNDS,
    ) -> FetchReport:
        return asyncio.run(self.run(descriptors, concurrency, max_retry_rounds))

    async def _worker(
        self,
        client: httpx.AsyncClient,
        headers: Dict[str, str],
        queue: asyncio.Queue,
    ) -> None:
        while True:
            item = await queue.get()
            if item is None:
                queue.task_done()
                return
            descriptor, state = item
            try:
                try:
                    outcome = await self._fetch_one(client, headers, descriptor)
                except Exception as exc:
                    logger.exception("Unexpected error while fetching tile %s", descriptor.key)
                    outcome = FetchOutcome(key=descriptor.key, ok=False, error=f"unexpected error: {exc}")

                if outcome.ok:
                    state.record_success()
                else:
                    logger.warning("Tile %s failed: %s", descriptor.key, outcome.error)
                    await state.record_failure(descriptor, outcome.error or "unknown error")
            finally:
                queue.task_done()

    async def _fetch_one(
        self,
        client: httpx.AsyncClient,
        headers: Dict[str, str],
        descriptor: TileRequestDescriptor,
    ) -> FetchOutcome:
        try:
            payload = await self._download(client, headers, descriptor)
        except TransientFetchError as exc:
            return FetchOutcome(key=descriptor.key, ok=False, error=str(exc))

        try:
            path = self.sink.write(descriptor.key, payload)
        except OSError as exc:
            return FetchOutcome(key=descriptor.key, ok=False, error=f"unable to persist tile: {exc}")
        return FetchOutcome(key=descriptor.key, ok=True, path=path)

    async def _download(
        self,
        client: httpx.AsyncClient,
        headers: Dict[str, str],
        descriptor: TileRequestDescriptor,
    ) -> bytes:
        try:
            response = await client.get(descriptor.url, headers=headers)
        except httpx.RequestError as exc:
            raise TransientFetchError(f"request error: {exc}") from exc

        if not 200 <= response.status_code < 300:
            detail = _short_error_detail(response.text)
            raise TransientFetchError(f"{response.status_code} {detail}")
        logger.debug("Fetched tile %s (%d bytes)", descriptor.key, len(response.content))
        return response.content

    async def _shutdown(self, workers: List[asyncio.Task], queue: asyncio.Queue) -> None:
        for _ in workers:
            queue.put_nowait(None)
        _, pending = await asyncio.wait(workers, timeout=self.shutdown_timeout)
        if pending:
            logger.warning(
                "%d fetch workers did not stop within %.1f seconds; abandoning them",
                len(pending),
                self.shutdown_timeout,
            )
