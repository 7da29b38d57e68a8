"""
Batch processing for read-modify-write steps.

Records are read in key order, a bounded batch at a time. Each batch is
written and its checkpoint saved in one store transaction, so an
interrupted step resumes after the last committed batch.
"""

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from driftfix.migrations.step import StepContext
from driftfix.utils.logging import get_logger

logger = get_logger("driftfix.steps.batch")

# fetch_batch(after_key, limit) -> rows ordered by key; row[0] is the key
FetchBatch = Callable[[Any, int], list[tuple]]
ApplyBatch = Callable[[Any], int]


@dataclass
class BatchStats:
    """Counters of one batch step invocation."""

    batches: int = 0
    processed: int = 0
    changed: int = 0
    resumed_from: Any = None


def process_in_batches(
    ctx: StepContext,
    fetch_batch: FetchBatch,
    apply_batch: ApplyBatch,
    *,
    prepare: Callable[[list[tuple]], Any] | None = None,
    key_type: Callable[[str], Any] = int,
) -> BatchStats:
    """
    Run ``apply_batch`` over every record, one batch at a time.

    Args:
        ctx: Step context (supplies store, batch size and checkpoint access)
        fetch_batch: Returns up to ``limit`` rows with key greater than
            ``after_key`` (None on the first batch), ordered by key
        apply_batch: Writes one batch and returns the number of changed records
        prepare: Optional work done outside the write transaction
            (e.g. network lookups); its result is passed to ``apply_batch``
        key_type: Converts a stored checkpoint back to a key

    Returns:
        BatchStats
    """
    stats = BatchStats()
    checkpoint = ctx.load_checkpoint()
    last_key = key_type(checkpoint) if checkpoint is not None else None
    if last_key is not None:
        stats.resumed_from = last_key
        logger.info(f"[{ctx.scope.id}] {ctx.step.name}: resuming after key {last_key}")

    while True:
        rows = fetch_batch(last_key, ctx.batch_size)
        if not rows:
            break
        payload = prepare(rows) if prepare is not None else rows

        with ctx.store.transaction():
            changed = apply_batch(payload)
            last_key = rows[-1][0]
            ctx.save_checkpoint(last_key)

        stats.batches += 1
        stats.processed += len(rows)
        stats.changed += changed
        ctx.record(changed)
        logger.debug(f"[{ctx.scope.id}] {ctx.step.name}: batch {stats.batches} done, {changed} change(s)")

        if len(rows) < ctx.batch_size:
            break

    ctx.clear_checkpoint()
    logger.info(
        f"[{ctx.scope.id}] {ctx.step.name}: {stats.processed} record(s) in {stats.batches} batch(es), "
        f"{stats.changed} changed"
    )
    return stats
