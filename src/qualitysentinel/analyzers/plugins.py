from __future__ import annotations

import importlib
from collections.abc import Iterable
from types import ModuleType
from typing import Any

from qualitysentinel.analyzers.base import BaseAnalyzer


class PluginLoadError(RuntimeError):
    """Raised when a configured plugin cannot be imported or doesn't expose analyzers."""


def load_plugin_analyzers(plugin_specs: tuple[str, ...]) -> list[BaseAnalyzer]:
    analyzers: list[BaseAnalyzer] = []
    for raw_spec in plugin_specs:
        spec = raw_spec.strip()
        if not spec:
            continue
        analyzers.extend(_load_one(spec))
    return analyzers


def _load_one(spec: str) -> list[BaseAnalyzer]:
    module_name, sep, attr = spec.partition(":")
    try:
        module = importlib.import_module(module_name)
    except Exception as exc:  # noqa: BLE001
        raise PluginLoadError(f"Failed to import plugin module {module_name!r}: {exc}") from exc

    if sep:
        try:
            obj: Any = getattr(module, attr)
        except AttributeError as exc:
            raise PluginLoadError(f"Plugin module {module_name!r} has no attribute {attr!r}") from exc
    else:
        obj = module
    return list(_extract_analyzers(obj))


def _extract_analyzers(obj: Any) -> Iterable[BaseAnalyzer]:
    if isinstance(obj, ModuleType):
        if hasattr(obj, "qualitysentinel_analyzers"):
            return _extract_analyzers(obj.qualitysentinel_analyzers)
        if hasattr(obj, "ANALYZERS"):
            return _extract_analyzers(obj.ANALYZERS)
        raise PluginLoadError("Plugin module must define `qualitysentinel_analyzers()` or `ANALYZERS`.")

    if isinstance(obj, BaseAnalyzer):
        return [obj]

    if isinstance(obj, type) and issubclass(obj, BaseAnalyzer):
        return [obj()]

    if callable(obj):
        return _extract_analyzers(obj())

    if isinstance(obj, list | tuple):
        out: list[BaseAnalyzer] = []
        for item in obj:
            if not isinstance(item, BaseAnalyzer):
                raise PluginLoadError(
                    f"Plugin analyzers must be BaseAnalyzer instances, got: {type(item).__name__}"
                )
            out.append(item)
        return out

    raise PluginLoadError(f"Unsupported plugin export type: {type(obj).__name__}")
