"""Serial processor implementation - processes uploads one by one."""

import threading
from typing import List, Optional

from ..core.models import ProcessingOutcome, RawFile
from ..core.protocols import ProcessingService


def process_batch(
    batch: List[RawFile],
    service: ProcessingService,
    cancel_event: Optional[threading.Event] = None,
) -> List[ProcessingOutcome]:
    """
    Processes a batch of uploads serially, one by one, in the current thread.

    Args:
        batch: Files in request order.
        service: Per-file pipeline; it never raises for a failing file.
        cancel_event: Set to abandon the files that have not finished yet.

    Returns:
        One `ProcessingOutcome` per file, in input order.
    """
    results = []

    for position, raw_file in enumerate(batch):
        result = service.process_file(raw_file, position, cancel_event)
        results.append(result)

    return results
