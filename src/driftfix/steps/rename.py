"""
Rename steps.

Building blocks for detect-before-mutate renames: tables, column values
(post types, meta keys, taxonomies, option names) and value prefixes.
Each helper returns the number of changed rows and records it on the
step context.
"""

from collections.abc import Mapping

from driftfix.exceptions import MigrationError
from driftfix.migrations.step import MigrationStep, StepContext
from driftfix.utils.logging import get_logger
from driftfix.utils.sql_escape import escape_identifier, validate_identifier

logger = get_logger("driftfix.steps.rename")


def rename_table(ctx: StepContext, old_name: str, new_name: str) -> bool:
    """
    Rename one scope table if the old name still exists.

    Args:
        ctx: Step context
        old_name: Unprefixed old table name (e.g. ``gp_events``)
        new_name: Unprefixed new table name

    Returns:
        True if the table was renamed

    Raises:
        MigrationError: If both the old and the new table exist
    """
    old_table = ctx.scope.table_name(old_name)
    new_table = ctx.scope.table_name(new_name)
    old_exists = ctx.store.table_exists(old_table)
    new_exists = ctx.store.table_exists(new_table)

    if not old_exists:
        logger.debug(f"[{ctx.scope.id}] Table '{old_table}' not present; nothing to rename")
        return False
    if new_exists:
        raise MigrationError(
            f"Cannot rename '{old_table}' to '{new_table}': both tables exist",
            details={"old": old_table, "new": new_table, "scope": ctx.scope.id},
        )

    ctx.store.execute(f"ALTER TABLE {escape_identifier(old_table)} RENAME TO {escape_identifier(new_table)}")
    logger.info(f"[{ctx.scope.id}] Renamed table '{old_table}' to '{new_table}'")
    ctx.record()
    return True


def remap_values(
    ctx: StepContext,
    table: str,
    column: str,
    mapping: Mapping[str, str],
    *,
    network: bool = False,
    unique: bool = False,
) -> int:
    """
    Replace exact column values according to ``mapping``.

    Args:
        ctx: Step context
        table: Unprefixed table name (e.g. ``posts``)
        column: Column holding the value to remap
        mapping: Old value to new value
        network: Table lives under the base prefix (e.g. ``usermeta``)
        unique: Values of ``column`` are unique (e.g. option names); a value
            whose target already exists is left alone and logged

    Returns:
        Number of rows changed
    """
    if not validate_identifier(column):
        raise ValueError(f"Invalid column name: {column!r}")
    table_name = ctx.scope.global_table_name(table) if network else ctx.scope.table_name(table)
    if not ctx.store.table_exists(table_name):
        logger.debug(f"[{ctx.scope.id}] Table '{table_name}' not present; skipping remap of {column}")
        return 0

    quoted = escape_identifier(table_name)
    col = escape_identifier(column)
    changed = 0
    for old, new in mapping.items():
        count = ctx.store.fetch_value(f"SELECT COUNT(*) FROM {quoted} WHERE {col} = ?", [old]) or 0
        if not count:
            continue
        if unique and ctx.store.fetch_value(f"SELECT COUNT(*) FROM {quoted} WHERE {col} = ?", [new]):
            logger.warning(f"[{ctx.scope.id}] Skipping '{old}': '{new}' already exists in {table_name}")
            continue
        ctx.store.execute(f"UPDATE {quoted} SET {col} = ? WHERE {col} = ?", [new, old])
        logger.debug(f"[{ctx.scope.id}] {table_name}.{column}: '{old}' -> '{new}' ({count} row(s))")
        changed += int(count)

    ctx.record(changed)
    return changed


def remap_prefix(
    ctx: StepContext,
    table: str,
    column: str,
    old_prefix: str,
    new_prefix: str,
) -> int:
    """
    Swap a literal value prefix, e.g. ``gp_foo`` becomes ``gatherpress_foo``.

    A row whose target value already exists is left alone and logged.

    Returns:
        Number of rows changed
    """
    if not validate_identifier(column):
        raise ValueError(f"Invalid column name: {column!r}")
    table_name = ctx.scope.table_name(table)
    if not ctx.store.table_exists(table_name):
        return 0

    quoted = escape_identifier(table_name)
    col = escape_identifier(column)
    # substr() keeps '_' literal, unlike LIKE
    rows = ctx.store.fetch_all(
        f"SELECT {col} FROM {quoted} WHERE substr({col}, 1, ?) = ? ORDER BY {col}",
        [len(old_prefix), old_prefix],
    )

    changed = 0
    for (value,) in rows:
        target = new_prefix + value[len(old_prefix):]
        if ctx.store.fetch_value(f"SELECT COUNT(*) FROM {quoted} WHERE {col} = ?", [target]):
            logger.warning(f"[{ctx.scope.id}] Skipping '{value}': '{target}' already exists in {table_name}")
            continue
        ctx.store.execute(f"UPDATE {quoted} SET {col} = ? WHERE {col} = ?", [target, value])
        changed += 1

    if changed:
        logger.info(f"[{ctx.scope.id}] Renamed {changed} value(s) '{old_prefix}*' -> '{new_prefix}*' in {table_name}")
    ctx.record(changed)
    return changed


def delete_values(ctx: StepContext, table: str, column: str, values: list[str]) -> int:
    """Delete rows whose ``column`` equals one of ``values``."""
    if not validate_identifier(column):
        raise ValueError(f"Invalid column name: {column!r}")
    table_name = ctx.scope.table_name(table)
    if not ctx.store.table_exists(table_name) or not values:
        return 0

    quoted = escape_identifier(table_name)
    col = escape_identifier(column)
    placeholders = ", ".join("?" for _ in values)
    count = ctx.store.fetch_value(f"SELECT COUNT(*) FROM {quoted} WHERE {col} IN ({placeholders})", values) or 0
    if count:
        ctx.store.execute(f"DELETE FROM {quoted} WHERE {col} IN ({placeholders})", values)
        logger.info(f"[{ctx.scope.id}] Deleted {count} row(s) from {table_name}")
    ctx.record(int(count))
    return int(count)


# ----------------------------------------------------------------------
# Step factories
# ----------------------------------------------------------------------


def rename_tables_step(version: str, name: str, tables: Mapping[str, str], description: str = "") -> MigrationStep:
    """Step renaming scope tables (unprefixed old name to new name)."""

    def apply(ctx: StepContext) -> None:
        for old_name, new_name in tables.items():
            rename_table(ctx, old_name, new_name)

    return MigrationStep(version, name, apply, description or f"Rename tables: {', '.join(tables)}")


def remap_values_step(
    version: str,
    name: str,
    table: str,
    column: str,
    mapping: Mapping[str, str],
    *,
    network: bool = False,
    unique: bool = False,
    description: str = "",
) -> MigrationStep:
    """Step remapping exact values of one column."""

    def apply(ctx: StepContext) -> None:
        remap_values(ctx, table, column, mapping, network=network, unique=unique)

    return MigrationStep(version, name, apply, description or f"Remap {table}.{column}")


def remap_prefix_step(
    version: str,
    name: str,
    table: str,
    column: str,
    old_prefix: str,
    new_prefix: str,
    description: str = "",
) -> MigrationStep:
    def apply(ctx: StepContext) -> None:
        remap_prefix(ctx, table, column, old_prefix, new_prefix)

    return MigrationStep(version, name, apply, description or f"Rename {old_prefix}* to {new_prefix}* in {table}")


def delete_values_step(
    version: str,
    name: str,
    table: str,
    column: str,
    values: list[str],
    description: str = "",
) -> MigrationStep:
    def apply(ctx: StepContext) -> None:
        delete_values(ctx, table, column, list(values))

    return MigrationStep(version, name, apply, description or f"Delete from {table}")
