"""
Upsert Writer

Persists normalized tender rows in fixed-size batches. Upserts inside a batch
run concurrently; batches run one after another with a short pause between
them. A failed record is logged and counted, never raised.
"""
import time
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Any, Callable, Dict, List, Optional, Sequence

from models.sync import WriteStats
from services.tender_store import TenderStore
from utils.logging_config import get_logger

logger = get_logger(__name__, "sync")

MAX_WORKERS = 16


class UpsertWriter:
    def __init__(
        self,
        store: TenderStore,
        batch_size: int = 50,
        batch_delay: float = 0.1,
        sleep: Callable[[float], None] = time.sleep,
        max_workers: Optional[int] = None,
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self.store = store
        self.batch_size = batch_size
        self.batch_delay = batch_delay
        self._sleep = sleep
        self.max_workers = max_workers or min(batch_size, MAX_WORKERS)

    def _upsert_one(self, record: Dict[str, Any]) -> bool:
        ocid = record.get("ocid")
        try:
            self.store.upsert_tender(record)
            return True
        except Exception as e:
            logger.error(f"Error upserting tender {ocid}: {e}")
            return False

    def write_batch(self, executor: ThreadPoolExecutor, batch: Sequence[Dict[str, Any]]) -> WriteStats:
        futures = {executor.submit(self._upsert_one, record): record.get("ocid") for record in batch}
        done, _ = wait(futures)

        stats = WriteStats(attempted=len(batch), batches=1)
        for future in done:
            if future.result():
                stats.succeeded += 1
            else:
                stats.failed += 1
                stats.failed_ocids.append(futures[future])
        return stats

    def write(self, records: List[Dict[str, Any]]) -> WriteStats:
        total = WriteStats()
        if not records:
            return total

        batch_count = (len(records) + self.batch_size - 1) // self.batch_size
        logger.info(f"Writing {len(records)} tenders in {batch_count} batches of {self.batch_size}")

        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="tender-upsert") as executor:
            for index in range(0, len(records), self.batch_size):
                batch = records[index:index + self.batch_size]
                stats = self.write_batch(executor, batch)
                total.merge(stats)

                batch_number = index // self.batch_size + 1
                if stats.failed:
                    logger.warning(f"Batch {batch_number}/{batch_count}: {stats.succeeded} ok, {stats.failed} failed")
                else:
                    logger.debug(f"Batch {batch_number}/{batch_count}: {stats.succeeded} ok")

                if batch_number < batch_count and self.batch_delay > 0:
                    self._sleep(self.batch_delay)

        logger.info(f"Upsert complete: {total.succeeded}/{total.attempted} succeeded, {total.failed} failed")
        return total
