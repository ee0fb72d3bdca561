"""AsyncIO processor implementation - drives worker threads from an event loop."""

import asyncio
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from functools import partial
from typing import List, Optional

from ..core import get_logger
from ..core.models import ProcessingOutcome, RawFile
from ..core.protocols import ProcessingService
from .common import failure_outcome


def _discard_finished_upload(service: ProcessingService, future: Future) -> None:
    """Remove a file that finished after its request was cancelled."""
    if future.cancelled() or future.exception() is not None:
        return
    outcome = future.result()
    if outcome.success:
        service.discard(outcome)


async def _process_one(
    loop: asyncio.AbstractEventLoop,
    executor: ThreadPoolExecutor,
    service: ProcessingService,
    raw_file: RawFile,
    position: int,
    cancel_event: threading.Event,
) -> ProcessingOutcome:
    future = executor.submit(service.process_file, raw_file, position, cancel_event)
    try:
        return await asyncio.wrap_future(future, loop=loop)
    except asyncio.CancelledError:
        cancel_event.set()
        future.add_done_callback(partial(_discard_finished_upload, service))
        raise


async def process_batch_async(
    batch: List[RawFile],
    service: ProcessingService,
    cancel_event: Optional[threading.Event] = None,
    max_workers: int = 4,
) -> List[ProcessingOutcome]:
    """
    Process a batch of uploads concurrently without blocking the event loop.

    Cancelling the awaiting task sets ``cancel_event``; files still in
    flight clean up at their next checkpoint and files that already
    succeeded are removed, so an abandoned request leaves nothing behind.
    """
    logger = get_logger("asyncio-processor")
    if not batch:
        return []

    if cancel_event is None:
        cancel_event = threading.Event()

    loop = asyncio.get_running_loop()
    executor = ThreadPoolExecutor(
        max_workers=max(1, min(max_workers, len(batch))),
        thread_name_prefix="upload-async",
    )
    tasks = [
        asyncio.ensure_future(
            _process_one(loop, executor, service, raw_file, position, cancel_event)
        )
        for position, raw_file in enumerate(batch)
    ]

    try:
        results = await asyncio.gather(*tasks, return_exceptions=True)
    except asyncio.CancelledError:
        cancel_event.set()
        logger.warning(f"Upload batch of {len(batch)} files cancelled, removing its files")
        for task in tasks:
            if task.done() and not task.cancelled() and task.exception() is None:
                outcome = task.result()
                if outcome.success:
                    service.discard(outcome)
        raise
    finally:
        executor.shutdown(wait=False)

    processed_results: List[ProcessingOutcome] = []
    for position, result in enumerate(results):
        if isinstance(result, BaseException):
            processed_results.append(failure_outcome(batch[position], result))
        else:
            processed_results.append(result)

    return processed_results


def process_batch(
    batch: List[RawFile],
    service: ProcessingService,
    cancel_event: Optional[threading.Event] = None,
    max_workers: int = 4,
) -> List[ProcessingOutcome]:
    """
    Process a batch of uploads using asyncio.

    This is the synchronous wrapper that runs the async function. Callers
    already inside an event loop should await `process_batch_async`.
    """
    return asyncio.run(
        process_batch_async(batch, service, cancel_event, max_workers=max_workers)
    )
