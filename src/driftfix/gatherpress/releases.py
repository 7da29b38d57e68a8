"""
GatherPress release migrations.

Every data change between the 0.28 and 0.33 release lines, as an ordered
list of steps. Steps sharing a version run in the order listed here.
"""

import json
from datetime import datetime, timedelta
from functools import lru_cache
from importlib.resources import files
from typing import Any

from driftfix.migrations.registry import MigrationRegistry
from driftfix.migrations.step import MigrationStep, StepContext, migration_step
from driftfix.steps.batch import process_in_batches
from driftfix.steps.blocks import class_rename_rewriter, void_block_rewriter
from driftfix.steps.content import content_rewrite_step
from driftfix.steps.geocode import backfill_venue_coordinates
from driftfix.steps.rename import (
    delete_values_step,
    remap_prefix_step,
    remap_values_step,
    rename_tables_step,
)
from driftfix.utils.logging import get_logger

logger = get_logger("driftfix.gatherpress.releases")

CUSTOM_TABLES = {
    "gp_events": "gatherpress_events",
    "gp_rsvps": "gatherpress_rsvps",
}

POST_TYPES = {
    "gp_event": "gatherpress_event",
    "gp_venue": "gatherpress_venue",
}

POST_META_KEYS = {
    key: f"gatherpress_{key}"
    for key in (
        "max_guest_limit",
        "enable_anonymous_rsvp",
        "enable_initial_decline",
        "online_event_link",
        "venue_information",
    )
}

TAXONOMIES = {
    "gp_topic": "gatherpress_topic",
    "_gp_venue": "_gatherpress_venue",
}

USER_META_KEYS = {
    "gp_date_format": "gatherpress_date_format",
    "gp_event_updates_opt_in": "gatherpress_event_updates_opt_in",
    "gp_time_format": "gatherpress_time_format",
    "gp_timezone": "gatherpress_timezone",
}

SITE_NOTIFICATION_OPTIONS = {
    "gatherpress_suppress_membership_notification": "gatherpress_suppress_site_notification",
}

CSS_CLASS_MAP = {
    # Modal triggers
    "gatherpress--open-modal": "gatherpress-modal--trigger-open",
    "gatherpress--close-modal": "gatherpress-modal--trigger-close",
    # Modal identifiers
    "gatherpress--is-rsvp-modal": "gatherpress-modal--rsvp",
    "gatherpress--is-login-modal": "gatherpress-modal--login",
    # Visibility
    "gatherpress--is-not-visible": "gatherpress--is-hidden",
    # Field types
    "gatherpress-field-type-checkbox": "gatherpress-field--checkbox",
    "gatherpress-field-type-radio": "gatherpress-field--radio",
    "gatherpress-field-type-text": "gatherpress-field--text",
    "gatherpress-field-type-email": "gatherpress-field--email",
    "gatherpress-field-type-textarea": "gatherpress-field--textarea",
    "gatherpress-field-type-number": "gatherpress-field--number",
    "gatherpress-field-type-url": "gatherpress-field--url",
    "gatherpress-field-type-tel": "gatherpress-field--tel",
    "gatherpress-field-type-select": "gatherpress-field--select",
    "gatherpress-field-type-hidden": "gatherpress-field--hidden",
    # RSVP states
    "gatherpress--rsvp-attending": "gatherpress--is-attending",
    "gatherpress--rsvp-waiting-list": "gatherpress--is-waiting-list",
    "gatherpress--rsvp-not-attending": "gatherpress--is-not-attending",
    # RSVP actions
    "gatherpress--empty-rsvp": "gatherpress--is-empty",
    "gatherpress--update-rsvp": "gatherpress--has-rsvp-update",
}

CSS_CLASS_POST_TYPES = ("gatherpress_event", "page", "post", "wp_block")

RSVP_COMMENT_TYPE = "gatherpress_rsvp"
DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"


@lru_cache(maxsize=None)
def load_template(name: str) -> str:
    """Read a packaged block template, e.g. ``rsvp-0.32.0.html``."""
    return files("driftfix.gatherpress").joinpath("templates", name).read_text(encoding="utf-8")


def _next_id(ctx: StepContext, table: str, column: str) -> int:
    return int(ctx.store.fetch_value(f"SELECT COALESCE(MAX({column}), 0) + 1 FROM {table}") or 1)


def _as_datetime(value: Any) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value))
    except ValueError:
        return None


def _format_datetime(value: Any) -> str:
    parsed = _as_datetime(value)
    return parsed.strftime(DATETIME_FORMAT) if parsed else str(value or "")


def _gmt_offset(ctx: StepContext) -> float:
    options = ctx.scope.table_name("options")
    if not ctx.store.table_exists(options):
        return 0.0
    value = ctx.store.fetch_value(
        f"SELECT option_value FROM {ctx.scope.table('options')} WHERE option_name = 'gmt_offset'"
    )
    try:
        return float(value) if value not in (None, "") else 0.0
    except (TypeError, ValueError):
        return 0.0


# ----------------------------------------------------------------------
# 0.30.0
# ----------------------------------------------------------------------


@migration_step("0.30.0", "move-rsvps-to-comments")
def move_rsvps_to_comments(ctx: StepContext) -> None:
    """Move RSVPs from the custom table to comments, then drop the table."""
    rsvps_table = ctx.scope.table_name("gatherpress_rsvps")
    if not ctx.store.table_exists(rsvps_table):
        logger.debug(f"[{ctx.scope.id}] No '{rsvps_table}' table; RSVPs already moved")
        return

    comments = ctx.scope.table("comments")
    commentmeta = ctx.scope.table("commentmeta")
    offset = timedelta(hours=_gmt_offset(ctx))
    rows = ctx.store.fetch_all(
        f"SELECT post_id, user_id, \"timestamp\", status, guests, anonymous FROM {ctx.scope.table('gatherpress_rsvps')} "
        f"ORDER BY post_id, user_id"
    )

    moved = 0
    for post_id, user_id, timestamp, status, guests, anonymous in rows:
        existing = ctx.store.fetch_value(
            f"SELECT comment_ID FROM {comments} WHERE comment_post_ID = ? AND user_id = ? AND comment_type = ?",
            [post_id, user_id, RSVP_COMMENT_TYPE],
        )
        if existing is not None:
            logger.debug(f"[{ctx.scope.id}] RSVP of user {user_id} on post {post_id} already a comment")
            continue

        local = _as_datetime(timestamp) or datetime.now()
        comment_id = _next_id(ctx, comments, "comment_ID")
        ctx.store.execute(
            f"INSERT INTO {comments} (comment_ID, comment_post_ID, user_id, comment_date, comment_date_gmt, "
            f"comment_type, comment_approved, comment_content) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            [comment_id, post_id, user_id, local, local - offset, RSVP_COMMENT_TYPE, "1", ""],
        )
        meta = {
            "gatherpress_rsvp_status": status or "",
            "gatherpress_rsvp_guests": str(int(guests or 0)),
            "gatherpress_rsvp_anonymous": str(int(anonymous or 0)),
        }
        for key, value in meta.items():
            meta_id = _next_id(ctx, commentmeta, "meta_id")
            ctx.store.execute(
                f"INSERT INTO {commentmeta} (meta_id, comment_id, meta_key, meta_value) VALUES (?, ?, ?, ?)",
                [meta_id, comment_id, key, value],
            )
        moved += 1

    ctx.store.execute(f"DROP TABLE IF EXISTS {ctx.scope.table('gatherpress_rsvps')}")
    logger.info(f"[{ctx.scope.id}] Moved {moved} RSVP(s) to comments and dropped '{rsvps_table}'")
    ctx.record(moved + 1)


@migration_step("0.30.0", "backfill-venue-coordinates", transactional=False)
def backfill_venue_coordinates_step(ctx: StepContext) -> None:
    """Geocode venues that have an address but no coordinates."""
    backfill_venue_coordinates(ctx)


# ----------------------------------------------------------------------
# 0.31.0
# ----------------------------------------------------------------------


@migration_step("0.31.0", "backfill-event-datetime-meta", transactional=False)
def backfill_event_datetime_meta(ctx: StepContext) -> None:
    """Store event start/end/timezone as ``gatherpress_datetime`` post meta."""
    events_table = ctx.scope.table_name("gatherpress_events")
    if not ctx.store.table_exists(events_table) or not ctx.store.table_exists(ctx.scope.table_name("posts")):
        return

    posts = ctx.scope.table("posts")
    postmeta = ctx.scope.table("postmeta")
    events = ctx.scope.table("gatherpress_events")

    def fetch_batch(after_id, limit):
        return ctx.store.fetch_all(
            f"SELECT p.ID, e.datetime_start, e.datetime_end, e.timezone FROM {posts} p "
            f"LEFT JOIN {events} e ON e.post_id = p.ID "
            f"WHERE p.post_type = 'gatherpress_event' AND p.ID > ? ORDER BY p.ID LIMIT ?",
            [after_id if after_id is not None else -1, limit],
        )

    def apply_batch(rows):
        changed = 0
        for post_id, start, end, timezone in rows:
            has_meta = ctx.store.fetch_value(
                f"SELECT COUNT(*) FROM {postmeta} WHERE post_id = ? AND meta_key = 'gatherpress_datetime' "
                f"AND COALESCE(meta_value, '') <> ''",
                [post_id],
            )
            if has_meta:
                continue
            if start is None:
                logger.warning(f"[{ctx.scope.id}] Event {post_id} has no stored dates; skipping")
                continue
            value = json.dumps(
                {
                    "dateTimeStart": _format_datetime(start),
                    "dateTimeEnd": _format_datetime(end),
                    "timezone": timezone or "",
                },
                separators=(",", ":"),
            )
            ctx.store.execute(
                f"INSERT INTO {postmeta} (meta_id, post_id, meta_key, meta_value) VALUES (?, ?, 'gatherpress_datetime', ?)",
                [_next_id(ctx, postmeta, "meta_id"), post_id, value],
            )
            changed += 1
        return changed

    process_in_batches(ctx, fetch_batch, apply_batch)


def release_steps() -> list[MigrationStep]:
    """All release steps, in application order."""
    return [
        # 0.29.0
        rename_tables_step("0.29.0", "rename-custom-tables", CUSTOM_TABLES, "Rename gp_* custom tables"),
        remap_values_step("0.29.0", "rename-post-types", "posts", "post_type", POST_TYPES),
        remap_values_step("0.29.0", "rename-post-meta-keys", "postmeta", "meta_key", POST_META_KEYS),
        remap_values_step("0.29.0", "rename-taxonomies", "term_taxonomy", "taxonomy", TAXONOMIES),
        remap_values_step("0.29.0", "rename-user-meta-keys", "usermeta", "meta_key", USER_META_KEYS, network=True),
        remap_prefix_step("0.29.0", "rename-option-prefix", "options", "option_name", "gp_", "gatherpress_"),
        # 0.30.0
        move_rsvps_to_comments,
        backfill_venue_coordinates_step,
        remap_values_step(
            "0.30.0",
            "rename-site-notification-option",
            "options",
            "option_name",
            SITE_NOTIFICATION_OPTIONS,
            unique=True,
        ),
        # 0.31.0
        backfill_event_datetime_meta,
        # 0.32.0
        content_rewrite_step(
            "0.32.0",
            "expand-rsvp-blocks",
            ["gatherpress_event"],
            _chain(
                void_block_rewriter("gatherpress/rsvp", load_template("rsvp-0.32.0.html").strip()),
                void_block_rewriter("gatherpress/rsvp-response", load_template("rsvp-response-0.32.0.html").strip()),
            ),
            "Replace empty RSVP blocks with their 0.32 markup",
        ),
        # 0.33.0
        content_rewrite_step(
            "0.33.0",
            "expand-add-to-calendar-block",
            ["gatherpress_event"],
            void_block_rewriter("gatherpress/add-to-calendar", load_template("add-to-calendar-0.33.0.html").strip()),
            "Replace empty add-to-calendar blocks with their 0.33 markup",
        ),
        content_rewrite_step(
            "0.33.0",
            "rename-css-classes",
            CSS_CLASS_POST_TYPES,
            class_rename_rewriter(CSS_CLASS_MAP),
            "Rename CSS classes changed in 0.33",
        ),
        delete_values_step(
            "0.33.0",
            "delete-site-notification-option",
            "options",
            "option_name",
            ["gatherpress_suppress_site_notification"],
        ),
    ]


def _chain(*rewriters):
    def rewrite(content: str) -> tuple[str, int]:
        total = 0
        for rewriter in rewriters:
            content, changes = rewriter(content)
            total += changes
        return content, total

    return rewrite


def build_registry() -> MigrationRegistry:
    """Registry with every GatherPress release step."""
    return MigrationRegistry(release_steps())
