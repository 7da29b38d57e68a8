"""
Reusable migration step kinds.

Each helper follows the detect-before-mutate rule so that re-running a step
is safe.
"""

from driftfix.steps.batch import BatchStats, process_in_batches
from driftfix.steps.content import content_rewrite_step, rewrite_post_content
from driftfix.steps.geocode import NominatimGeocoder, backfill_venue_coordinates
from driftfix.steps.rename import (
    delete_values,
    delete_values_step,
    remap_prefix,
    remap_prefix_step,
    remap_values,
    remap_values_step,
    rename_table,
    rename_tables_step,
)

__all__ = [
    "BatchStats",
    "NominatimGeocoder",
    "backfill_venue_coordinates",
    "content_rewrite_step",
    "delete_values",
    "delete_values_step",
    "process_in_batches",
    "remap_prefix",
    "remap_prefix_step",
    "remap_values",
    "remap_values_step",
    "rename_table",
    "rename_tables_step",
    "rewrite_post_content",
]
