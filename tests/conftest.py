"""
Shared fixtures: an in-memory DuckDB store with a WordPress-like schema.
"""

import pytest

from driftfix.exceptions import ExternalLookupFailed
from driftfix.migrations.state import MigrationState
from driftfix.migrations.step import MigrationStep, StepContext
from driftfix.scopes import site_scope
from driftfix.stores.duckdb import DuckDBStore

SITE_TABLES = {
    "posts": "ID BIGINT, post_type VARCHAR, post_title VARCHAR, post_content VARCHAR",
    "postmeta": "meta_id BIGINT, post_id BIGINT, meta_key VARCHAR, meta_value VARCHAR",
    "term_taxonomy": "term_taxonomy_id BIGINT, term_id BIGINT, taxonomy VARCHAR",
    "options": "option_id BIGINT, option_name VARCHAR, option_value VARCHAR",
    "comments": (
        "comment_ID BIGINT, comment_post_ID BIGINT, user_id BIGINT, comment_date TIMESTAMP, "
        "comment_date_gmt TIMESTAMP, comment_type VARCHAR, comment_approved VARCHAR, comment_content VARCHAR"
    ),
    "commentmeta": "meta_id BIGINT, comment_id BIGINT, meta_key VARCHAR, meta_value VARCHAR",
}

NETWORK_TABLES = {
    "usermeta": "umeta_id BIGINT, user_id BIGINT, meta_key VARCHAR, meta_value VARCHAR",
    "blogs": "blog_id BIGINT, domain VARCHAR, path VARCHAR",
}


def create_site_tables(store, table_prefix="wp_", base_prefix="wp_"):
    """Create the tables of one site; the main site also gets the network tables."""
    for name, columns in SITE_TABLES.items():
        store.execute(f'CREATE TABLE "{table_prefix}{name}" ({columns})')
    if table_prefix == base_prefix:
        for name, columns in NETWORK_TABLES.items():
            store.execute(f'CREATE TABLE "{base_prefix}{name}" ({columns})')


def insert_rows(store, table, rows):
    for row in rows:
        placeholders = ", ".join("?" for _ in row)
        store.execute(f'INSERT INTO "{table}" VALUES ({placeholders})', list(row))


class FakeGeocoder:
    """Stands in for NominatimGeocoder; unknown addresses fail."""

    def __init__(self, results=None):
        self.results = dict(results or {})
        self.calls: list[str] = []

    def lookup_many(self, addresses):
        self.calls.extend(addresses)
        out = {}
        for address in addresses:
            if address in self.results:
                out[address] = self.results[address]
            else:
                out[address] = ExternalLookupFailed(address, "no coordinates in response")
        return out


@pytest.fixture
def store():
    store = DuckDBStore("test", {"path": ":memory:"})
    yield store
    store.close()


@pytest.fixture
def wp_store(store):
    """Store with the tables of a single (main) site."""
    create_site_tables(store)
    return store


@pytest.fixture
def main_site():
    return site_scope("wp_", 1)


@pytest.fixture
def state(store):
    return MigrationState(store)


@pytest.fixture
def make_context(store, state, main_site):
    """Factory for a StepContext around an ad-hoc step."""

    def factory(name="test-step", scope=None, batch_size=100, services=None):
        step = MigrationStep("1.0", name, lambda ctx: None)
        return StepContext(
            store=store,
            scope=scope or main_site,
            step=step,
            state=state,
            batch_size=batch_size,
            services=services or {},
        )

    return factory


@pytest.fixture
def fake_geocoder():
    return FakeGeocoder()


@pytest.fixture
def insert(store):
    """insert(table, rows) into the test store."""
    return lambda table, rows: insert_rows(store, table, rows)


@pytest.fixture
def make_site(store):
    """make_site(table_prefix) creates the tables of one more site."""
    return lambda table_prefix="wp_": create_site_tables(store, table_prefix)
