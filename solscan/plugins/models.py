# Plugin data types: error codes, validation errors, loaded plugins and load results.

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from solscan.rules.base import Rule

logger = logging.getLogger(__name__)


class PluginErrorCode(str, Enum):
    INVALID_STRUCTURE = "INVALID_STRUCTURE"
    MISSING_METADATA = "MISSING_METADATA"
    INVALID_RULE = "INVALID_RULE"
    INVALID_PRESET = "INVALID_PRESET"
    LOAD_FAILED = "LOAD_FAILED"
    DUPLICATE_RULE = "DUPLICATE_RULE"
    HOOK_FAILED = "HOOK_FAILED"


@dataclass(frozen=True)
class PluginValidationError:
    """One problem found while loading or validating a plugin."""

    plugin_name: str
    message: str
    code: PluginErrorCode

    def __str__(self) -> str:
        return f"[{self.code.value}] {self.plugin_name}: {self.message}"


@dataclass(frozen=True)
class PluginMeta:
    name: str
    version: str
    description: Optional[str] = None


@dataclass
class LoadedPlugin:
    """
    A plugin accepted by the loader.

    rules and presets are keyed by namespaced ID ("pluginName/localName").
    Rule instances are created once, at load time.
    """

    meta: PluginMeta
    rules: dict[str, Rule] = field(default_factory=dict)
    presets: dict[str, dict[str, Any]] = field(default_factory=dict)
    source: str = ""
    original: Any = None


@dataclass
class PluginLoadResult:
    plugins: list[LoadedPlugin] = field(default_factory=list)
    errors: list[PluginValidationError] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors


def get_field(obj: Any, name: str) -> Any:
    """
    Read name from a mapping key or an attribute (plugins may be dicts, objects or modules).

    Plugin objects are untrusted: a property or __getattr__ that raises reads
    as a missing field.
    """
    try:
        if isinstance(obj, Mapping):
            return obj.get(name)
        return getattr(obj, name, None)
    except Exception as e:
        logger.debug("Reading field %r of %s raised %s: %s", name, type(obj).__name__, type(e).__name__, e)
        return None


def preset_rules(preset: Any) -> Optional[Mapping[str, Any]]:
    """Return a preset's rule map: direct `rules`, or nested `config.rules`; None if neither."""
    rules = get_field(preset, "rules")
    if isinstance(rules, Mapping):
        return rules
    config = get_field(preset, "config")
    if config is not None:
        nested = get_field(config, "rules")
        if isinstance(nested, Mapping):
            return nested
    return None
