"""GatherPress data migrations."""

from driftfix.gatherpress.releases import CSS_CLASS_MAP, build_registry, load_template, release_steps

__all__ = ["CSS_CLASS_MAP", "build_registry", "load_template", "release_steps"]
