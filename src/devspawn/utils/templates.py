"""Template rendering utilities."""

import logging
from typing import Any, Dict

from jinja2 import Environment, PackageLoader, StrictUndefined, TemplateError


logger = logging.getLogger(__name__)


_package_env = None


def _resources() -> Environment:
    global _package_env
    if _package_env is None:
        _package_env = Environment(
            loader=PackageLoader("devspawn", "templates"),
            undefined=StrictUndefined,
            keep_trailing_newline=True,
        )
    return _package_env


def render_resource(name: str, **context: Any) -> str:
    """Render a template bundled under ``devspawn/templates``."""
    try:
        return _resources().get_template(name).render(**context)
    except TemplateError as e:
        logger.error(f"Template rendering error in {name}: {e}")
        raise


def merge_dicts(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Deep merge two dictionaries."""
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = merge_dicts(result[key], value)
        else:
            result[key] = value

    return result
