"""Multithreaded processor implementation - uses thread pool for parallelism."""

import threading
from typing import List, Optional
from concurrent.futures import ThreadPoolExecutor, as_completed

from ..core.models import ProcessingOutcome, RawFile
from ..core.protocols import ProcessingService
from .common import failure_outcome


def process_batch(
    batch: List[RawFile],
    service: ProcessingService,
    cancel_event: Optional[threading.Event] = None,
    max_workers: int = 4,
) -> List[ProcessingOutcome]:
    """
    Process a batch of uploads using multithreading.

    Decoding and encoding release the GIL inside Pillow, so threads give
    real overlap for resize work as well as for disk writes.

    Args:
        batch: Files in request order
        service: Per-file pipeline
        cancel_event: Set to abandon unfinished files
        max_workers: Upper bound on worker threads

    Returns:
        One result per file, in input order regardless of completion order
    """
    if not batch:
        return []

    results: List[Optional[ProcessingOutcome]] = [None] * len(batch)
    workers = max(1, min(max_workers, len(batch)))

    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="upload") as executor:
        future_to_index = {
            executor.submit(service.process_file, raw_file, position, cancel_event): position
            for position, raw_file in enumerate(batch)
        }

        for future in as_completed(future_to_index):
            position = future_to_index[future]
            try:
                results[position] = future.result()
            except Exception as e:
                results[position] = failure_outcome(batch[position], e)

    return results  # type: ignore[return-value]
