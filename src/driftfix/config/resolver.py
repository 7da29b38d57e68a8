"""
Placeholder substitution for loaded configuration.

``${VAR}`` is replaced by the environment variable of that name and
``{env}`` by the active environment name. An unset variable keeps its
``${VAR}`` text; ``unresolved_placeholders`` reports where that happened so
that secrets (API keys, the CSRF secret) are never taken literally.
"""

import os
import re
from collections.abc import Iterator
from typing import Any

ENV_PLACEHOLDER = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")


def resolve_config(config_data: dict[str, Any], env: str = "dev") -> dict[str, Any]:
    """
    Substitute placeholders throughout a configuration mapping.

    Args:
        config_data: Configuration dictionary
        env: Current environment name

    Returns:
        A new, resolved dictionary
    """
    return _resolve_value(config_data, env)


def _resolve_value(value: Any, env: str) -> Any:
    if isinstance(value, dict):
        return {k: _resolve_value(v, env) for k, v in value.items()}
    if isinstance(value, list):
        return [_resolve_value(item, env) for item in value]
    if isinstance(value, str):
        resolved = ENV_PLACEHOLDER.sub(lambda m: os.environ.get(m.group(1), m.group(0)), value)
        return resolved.replace("{env}", env)
    return value


def unresolved_placeholders(value: Any, path: str = "") -> Iterator[tuple[str, str]]:
    """
    Yield ``(dotted path, variable name)`` for every ``${VAR}`` left in ``value``.

    List items appear as ``path[index]``.
    """
    if isinstance(value, dict):
        for key, item in value.items():
            yield from unresolved_placeholders(item, f"{path}.{key}" if path else str(key))
    elif isinstance(value, list):
        for index, item in enumerate(value):
            yield from unresolved_placeholders(item, f"{path}[{index}]")
    elif isinstance(value, str):
        for match in ENV_PLACEHOLDER.finditer(value):
            yield path, match.group(1)
