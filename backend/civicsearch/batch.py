"""
batch.py - Resolve many query points against one catalog.

Output order always matches input order. Lookups can run on a thread pool:
the catalog is immutable, so workers share nothing mutable and take no
locks. A cancellation event stops scheduling new work; chunks already
running finish the point in hand and report the rest as CANCELLED.
"""

from __future__ import annotations

import logging
import threading
from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Iterable, Optional

from civicsearch import config
from civicsearch.catalog import DistrictCatalog
from civicsearch.models import LocationResult, LocationStatus, QueryPoint
from civicsearch.services import PointLocator, to_query_point

logger = logging.getLogger(__name__)


class BatchResolver:
    """
    Args:
        catalog:      Fully built catalog.
        max_workers:  Worker threads; 1 or less resolves sequentially.
        chunk_size:   Points handed to a worker at a time.
        cancel_event: Optional event; once set, no new points are resolved.
    """

    def __init__(
        self,
        catalog: DistrictCatalog,
        max_workers: int = config.BATCH_WORKERS,
        chunk_size: int = config.BATCH_CHUNK_SIZE,
        cancel_event: Optional[threading.Event] = None,
    ):
        self.locator = PointLocator(catalog)
        self.max_workers = max_workers
        self.chunk_size = max(1, chunk_size)
        self.cancel_event = cancel_event or threading.Event()

    def cancel(self):
        self.cancel_event.set()

    def resolve_all(self, points: Iterable[Any]) -> list[LocationResult]:
        """
        Resolve every point, one result per input, in input order.

        Args:
            points: QueryPoints, Points or (x, y) pairs. Inputs that are not
                    QueryPoints are tagged with their position.

        Returns:
            List of LocationResult, same length and order as ``points``.
        """
        queries = [to_query_point(value, row) for row, value in enumerate(points)]
        results: list[Optional[LocationResult]] = [None] * len(queries)

        if not queries:
            return []

        logger.info("Resolving %d points", len(queries))
        if self.max_workers <= 1:
            self._resolve_chunk(queries, 0, results)
        else:
            self._resolve_parallel(queries, results)

        resolved = [
            result if result is not None else _cancelled(query)
            for query, result in zip(queries, results)
        ]
        self._log_summary(resolved)
        return resolved

    def _resolve_chunk(self, queries: list[QueryPoint], start: int, results: list):
        for offset, query in enumerate(queries):
            if self.cancel_event.is_set():
                return
            results[start + offset] = self.locator.resolve(query)

    def _resolve_parallel(self, queries: list[QueryPoint], results: list):
        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = []
            for start in range(0, len(queries), self.chunk_size):
                if self.cancel_event.is_set():
                    logger.info("Batch cancelled; %d points not scheduled", len(queries) - start)
                    break
                chunk = queries[start:start + self.chunk_size]
                futures.append(executor.submit(self._resolve_chunk, chunk, start, results))

            for future in futures:
                # Lookups do not raise; anything here is a programming error
                future.result()

    @staticmethod
    def _log_summary(results: list[LocationResult]):
        counts = Counter(r.status for r in results)
        ambiguous = sum(1 for r in results if r.ambiguous)
        logger.info(
            "Batch done: %d found, %d not found, %d invalid, %d cancelled, %d ambiguous",
            counts[LocationStatus.FOUND],
            counts[LocationStatus.NOT_FOUND],
            counts[LocationStatus.INVALID],
            counts[LocationStatus.CANCELLED],
            ambiguous,
        )


def _cancelled(query: QueryPoint) -> LocationResult:
    return LocationResult(query, status=LocationStatus.CANCELLED, reason="batch was cancelled")


def resolve_all(catalog: DistrictCatalog, points: Iterable[Any], **options) -> list[LocationResult]:
    """Resolve ``points`` with a BatchResolver built from ``options``."""
    return BatchResolver(catalog, **options).resolve_all(points)
