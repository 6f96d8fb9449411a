"""
Batch orchestration with per-item failure isolation.
"""
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Sequence, TypeVar

from ..shared.interfaces import BatchItem

logger = logging.getLogger(__name__)

T = TypeVar('T')


class BatchOrchestrator:
    """
    Runs one operation per input and collects a BatchItem for each.

    A failing item is recorded as an error and never stops the remaining
    items. Results always come back in input order. With max_workers > 1
    items run on a bounded thread pool; results are still collected in
    submission order.
    """

    def __init__(self, max_workers: int = 1):
        self.max_workers = max(1, max_workers)

    def run(self, inputs: Sequence[T], operation: Callable[[T], object],
            describe: Callable[[T], str] = str) -> List[BatchItem]:
        if self.max_workers == 1 or len(inputs) <= 1:
            results = [self._run_one(item, operation, describe) for item in inputs]
        else:
            with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                futures = [executor.submit(self._run_one, item, operation, describe) for item in inputs]
                results = [future.result() for future in futures]

        failed = sum(1 for r in results if not r.ok)
        logger.info(f"Batch completed: {len(results) - failed}/{len(results)} succeeded")
        return results

    def _run_one(self, item: T, operation: Callable[[T], object],
                 describe: Callable[[T], str]) -> BatchItem:
        try:
            return BatchItem(path=str(operation(item)))
        except Exception as e:
            logger.error(f"Batch item failed for {describe(item)}: {e}")
            return BatchItem(path='', error=str(e) or e.__class__.__name__)
