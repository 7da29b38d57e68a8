"""
Execution scopes.

A scope is one isolated site: its tables share a prefix (``wp_`` for the
main site, ``wp_2_`` for site 2 of a network) and it has its own applied
version watermark. Network-wide tables such as ``usermeta`` and ``blogs``
live under the base prefix.
"""

from dataclasses import dataclass

from driftfix.exceptions import ConfigurationError
from driftfix.stores.base import BaseStore
from driftfix.utils.logging import get_logger
from driftfix.utils.sql_escape import escape_identifier, validate_identifier

logger = get_logger("driftfix.scopes")


@dataclass(frozen=True)
class Scope:
    """One site whose data is migrated independently."""

    id: str
    table_prefix: str
    base_prefix: str
    site_id: int = 1

    def __post_init__(self) -> None:
        for prefix in (self.table_prefix, self.base_prefix):
            if not validate_identifier(prefix):
                raise ConfigurationError(f"Invalid table prefix '{prefix}' for scope '{self.id}'")

    def table_name(self, name: str) -> str:
        """Unquoted name of a per-site table, e.g. ``wp_2_posts``."""
        return f"{self.table_prefix}{name}"

    def table(self, name: str) -> str:
        """Quoted per-site table name for use in SQL."""
        return escape_identifier(self.table_name(name))

    def global_table_name(self, name: str) -> str:
        """Unquoted name of a network-wide table, e.g. ``wp_usermeta``."""
        return f"{self.base_prefix}{name}"

    def global_table(self, name: str) -> str:
        """Quoted network-wide table name for use in SQL."""
        return escape_identifier(self.global_table_name(name))

    @property
    def is_main_site(self) -> bool:
        return self.site_id == 1


def site_scope(base_prefix: str = "wp_", site_id: int = 1) -> Scope:
    """Build the scope of one site; site 1 uses the base prefix unchanged."""
    table_prefix = base_prefix if site_id == 1 else f"{base_prefix}{site_id}_"
    return Scope(id=f"site-{site_id}", table_prefix=table_prefix, base_prefix=base_prefix, site_id=site_id)


def discover_scopes(store: BaseStore, base_prefix: str = "wp_", network: bool = False) -> list[Scope]:
    """
    List the scopes a run should cover.

    Args:
        store: Store to inspect
        base_prefix: Base table prefix of the installation
        network: When True, every site listed in the ``blogs`` table is a scope

    Returns:
        Scopes ordered by site id
    """
    if not network:
        return [site_scope(base_prefix)]

    blogs_table = f"{base_prefix}blogs"
    if not store.table_exists(blogs_table):
        logger.warning(f"Network run requested but '{blogs_table}' does not exist; using the main site only")
        return [site_scope(base_prefix)]

    rows = store.fetch_all(f"SELECT blog_id FROM {escape_identifier(blogs_table)} ORDER BY blog_id")
    scopes = [site_scope(base_prefix, int(row[0])) for row in rows]
    logger.debug(f"Discovered {len(scopes)} site scope(s)")
    return scopes or [site_scope(base_prefix)]
