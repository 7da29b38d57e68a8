"""
Content rewrite steps.

Rewrites ``post_content`` of the posts of selected post types in resumable
batches. A rewriter returns the new content and the number of changes; a
post is only written when it changed, so re-running is a no-op.
"""

from collections.abc import Sequence

from driftfix.migrations.step import MigrationStep, StepContext
from driftfix.steps.batch import BatchStats, process_in_batches
from driftfix.steps.blocks import Rewriter
from driftfix.utils.logging import get_logger

logger = get_logger("driftfix.steps.content")


def rewrite_post_content(ctx: StepContext, post_types: Sequence[str], rewriter: Rewriter) -> BatchStats:
    """
    Apply ``rewriter`` to the content of every post of ``post_types``.

    Returns:
        BatchStats (``changed`` counts rewritten posts)
    """
    posts_table = ctx.scope.table_name("posts")
    if not ctx.store.table_exists(posts_table) or not post_types:
        return BatchStats()

    posts = ctx.scope.table("posts")
    placeholders = ", ".join("?" for _ in post_types)

    def fetch_batch(after_id, limit):
        return ctx.store.fetch_all(
            f"SELECT ID, post_content FROM {posts} "
            f"WHERE post_type IN ({placeholders}) AND ID > ? ORDER BY ID LIMIT ?",
            [*post_types, after_id if after_id is not None else -1, limit],
        )

    def apply_batch(rows):
        changed = 0
        for post_id, content in rows:
            if not content:
                continue
            new_content, changes = rewriter(content)
            if not changes or new_content == content:
                continue
            ctx.store.execute(f"UPDATE {posts} SET post_content = ? WHERE ID = ?", [new_content, post_id])
            logger.debug(f"[{ctx.scope.id}] Rewrote post {post_id} ({changes} change(s))")
            changed += 1
        return changed

    return process_in_batches(ctx, fetch_batch, apply_batch)


def content_rewrite_step(
    version: str,
    name: str,
    post_types: Sequence[str],
    rewriter: Rewriter,
    description: str = "",
) -> MigrationStep:
    """Batch-resumable step rewriting post content with ``rewriter``."""

    def apply(ctx: StepContext) -> None:
        rewrite_post_content(ctx, post_types, rewriter)

    return MigrationStep(
        version,
        name,
        apply,
        description or f"Rewrite content of {', '.join(post_types)}",
        transactional=False,
    )
