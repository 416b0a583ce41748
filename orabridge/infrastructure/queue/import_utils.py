"""Fail-fast check that an RQ job path is importable."""

from __future__ import annotations

from functools import lru_cache
from importlib import import_module


@lru_cache(maxsize=128)
def is_importable_dotted_path(dotted_path: str) -> bool:
    """True if `module.attr` imports and is callable."""
    try:
        module_name, attr_name = _split_dotted_path(dotted_path)
        attr = getattr(import_module(module_name), attr_name)
        return callable(attr)
    except (ModuleNotFoundError, AttributeError):
        return False


def _split_dotted_path(dotted_path: str) -> tuple[str, str]:
    if not dotted_path or "." not in dotted_path:
        raise ValueError("dotted_path must be 'module.attribute'")
    module_name, attr_name = dotted_path.rsplit(".", 1)
    if not module_name or not attr_name:
        raise ValueError(f"invalid dotted_path: {dotted_path!r}")
    return module_name, attr_name
