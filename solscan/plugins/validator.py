"""
Plugin validation: structural checks on untrusted plugin objects.

validate() never raises. Every check runs independently and all problems are
returned in one list, so a plugin author sees every mistake at once.

A plugin is any mapping or object exposing:
    meta      {"name": str, "version": semver str}
    rules     {"kebab-name": RuleClass | {"rule": RuleClass}}     (optional)
    presets   {"name": {"rules": {...}} | {"config": {"rules": {...}}}}  (optional)
    setup     callable                                            (optional)
    teardown  callable                                            (optional)
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from typing import Any, Optional

from solscan.config import parse_severity
from solscan.errors import ConfigError
from solscan.plugins.models import PluginErrorCode, PluginValidationError, get_field, preset_rules

logger = logging.getLogger(__name__)

SEMVER_RE = re.compile(r"^\d+\.\d+\.\d+(?:-[0-9A-Za-z.-]+)?(?:\+[0-9A-Za-z.-]+)?$")
IDENTIFIER_RE = re.compile(r"^[a-z][a-z0-9-]*$", re.IGNORECASE)

# Values that can never be a plugin object.
_PRIMITIVE_TYPES = (str, bytes, bytearray, int, float, complex, bool, list, tuple, set, frozenset)


def rule_constructor(definition: Any) -> Optional[Any]:
    """Return the rule constructor of a rules entry (a class, or a {"rule": cls} wrapper)."""
    if callable(definition) and not isinstance(definition, Mapping):
        return definition
    wrapped = get_field(definition, "rule") if definition is not None else None
    if callable(wrapped):
        return wrapped
    return None


def is_valid_rule_instance(instance: Any) -> bool:
    """True if instance exposes metadata with a string id and a callable analyze."""
    if instance is None:
        return False
    metadata = get_field(instance, "metadata")
    if metadata is None:
        return False
    rule_id = get_field(metadata, "id")
    if not isinstance(rule_id, str) or not rule_id:
        return False
    return callable(get_field(instance, "analyze"))


def rule_severity_error(instance: Any) -> Optional[str]:
    """Describe why a rule's metadata.severity is unusable, or None if it is absent or valid."""
    metadata = get_field(instance, "metadata")
    severity = get_field(metadata, "severity") if metadata is not None else None
    if severity is None:
        return None
    try:
        parse_severity(severity, str(get_field(metadata, "id")))
    except ConfigError as e:
        return str(e)
    return None


class PluginValidator:
    """Validates plugin objects before the loader accepts them."""

    def validate(self, candidate: Any, name: Optional[str] = None) -> list[PluginValidationError]:
        """
        Check a plugin candidate.

        Args:
            candidate: Object exported by a plugin module.
            name: Name used in error records (defaults to meta.name or "unknown").

        Returns:
            Every violation found; an empty list means the plugin is valid.
        """
        plugin_name = name or self._declared_name(candidate) or "unknown"

        if candidate is None or isinstance(candidate, _PRIMITIVE_TYPES):
            return [
                PluginValidationError(
                    plugin_name,
                    f"Plugin must be an object, got {type(candidate).__name__}",
                    PluginErrorCode.INVALID_STRUCTURE,
                )
            ]

        errors: list[PluginValidationError] = []
        try:
            errors.extend(self._validate_meta(candidate, plugin_name))

            rules = get_field(candidate, "rules")
            if rules is not None:
                errors.extend(self._validate_rules(rules, plugin_name))

            presets = get_field(candidate, "presets")
            if presets is not None:
                errors.extend(self._validate_presets(presets, plugin_name))

            for hook in ("setup", "teardown"):
                value = get_field(candidate, hook)
                if value is not None and not callable(value):
                    errors.append(
                        PluginValidationError(
                            plugin_name,
                            f"Plugin {hook} must be callable",
                            PluginErrorCode.INVALID_STRUCTURE,
                        )
                    )
        except Exception as e:  # e.g. a rules mapping whose items() raises
            errors.append(
                PluginValidationError(
                    plugin_name,
                    f"Plugin structure could not be inspected: {type(e).__name__}: {e}",
                    PluginErrorCode.INVALID_STRUCTURE,
                )
            )

        if errors:
            logger.debug("Plugin %s failed validation with %d error(s)", plugin_name, len(errors))
        return errors

    @staticmethod
    def _declared_name(candidate: Any) -> Optional[str]:
        if candidate is None or isinstance(candidate, _PRIMITIVE_TYPES):
            return None
        meta = get_field(candidate, "meta")
        name = get_field(meta, "name") if meta is not None else None
        return name if isinstance(name, str) and name else None

    def _validate_meta(self, candidate: Any, plugin_name: str) -> list[PluginValidationError]:
        meta = get_field(candidate, "meta")
        if meta is None:
            return [
                PluginValidationError(
                    plugin_name,
                    'Plugin must have a "meta" property with name and version',
                    PluginErrorCode.MISSING_METADATA,
                )
            ]

        errors: list[PluginValidationError] = []
        name = get_field(meta, "name")
        if not isinstance(name, str) or not name.strip():
            errors.append(
                PluginValidationError(
                    plugin_name,
                    'Plugin metadata must have a non-empty "name" string',
                    PluginErrorCode.MISSING_METADATA,
                )
            )

        version = get_field(meta, "version")
        if not isinstance(version, str) or not version:
            errors.append(
                PluginValidationError(
                    plugin_name,
                    'Plugin metadata must have a "version" string',
                    PluginErrorCode.MISSING_METADATA,
                )
            )
        elif not SEMVER_RE.match(version):
            errors.append(
                PluginValidationError(
                    plugin_name,
                    f"Invalid version format: {version!r}. Use semver (e.g. 1.0.0)",
                    PluginErrorCode.MISSING_METADATA,
                )
            )
        return errors

    def _validate_rules(self, rules: Any, plugin_name: str) -> list[PluginValidationError]:
        if not isinstance(rules, Mapping):
            return [
                PluginValidationError(
                    plugin_name,
                    "Plugin rules must be a mapping of rule name to rule class",
                    PluginErrorCode.INVALID_RULE,
                )
            ]

        errors: list[PluginValidationError] = []
        for rule_name, definition in rules.items():
            if not isinstance(rule_name, str) or not IDENTIFIER_RE.match(rule_name):
                errors.append(
                    PluginValidationError(
                        plugin_name,
                        f"Invalid rule name {rule_name!r}. Use kebab-case (e.g. my-rule)",
                        PluginErrorCode.INVALID_RULE,
                    )
                )
                continue

            constructor = rule_constructor(definition)
            if constructor is None:
                errors.append(
                    PluginValidationError(
                        plugin_name,
                        f'Rule "{rule_name}" must be a rule class or a {{"rule": <class>}} wrapper',
                        PluginErrorCode.INVALID_RULE,
                    )
                )
                continue

            try:
                instance = constructor()
            except Exception as e:  # plugin code is untrusted; any failure is a validation error
                errors.append(
                    PluginValidationError(
                        plugin_name,
                        f'Failed to instantiate rule "{rule_name}": {e}',
                        PluginErrorCode.INVALID_RULE,
                    )
                )
                continue

            if not is_valid_rule_instance(instance):
                errors.append(
                    PluginValidationError(
                        plugin_name,
                        f'Rule "{rule_name}" does not expose metadata.id and a callable analyze()',
                        PluginErrorCode.INVALID_RULE,
                    )
                )
                continue

            severity_error = rule_severity_error(instance)
            if severity_error is not None:
                errors.append(
                    PluginValidationError(
                        plugin_name,
                        f'Rule "{rule_name}" has an unusable default severity: {severity_error}',
                        PluginErrorCode.INVALID_RULE,
                    )
                )
        return errors

    def _validate_presets(self, presets: Any, plugin_name: str) -> list[PluginValidationError]:
        if not isinstance(presets, Mapping):
            return [
                PluginValidationError(
                    plugin_name,
                    "Plugin presets must be a mapping of preset name to config",
                    PluginErrorCode.INVALID_PRESET,
                )
            ]

        errors: list[PluginValidationError] = []
        for preset_name, preset in presets.items():
            if not isinstance(preset_name, str) or not IDENTIFIER_RE.match(preset_name):
                errors.append(
                    PluginValidationError(
                        plugin_name,
                        f"Invalid preset name {preset_name!r}. Use kebab-case",
                        PluginErrorCode.INVALID_PRESET,
                    )
                )
                continue
            if preset is None or isinstance(preset, _PRIMITIVE_TYPES) or preset_rules(preset) is None:
                errors.append(
                    PluginValidationError(
                        plugin_name,
                        f'Preset "{preset_name}" must have a "rules" mapping or a "config" with "rules"',
                        PluginErrorCode.INVALID_PRESET,
                    )
                )
        return errors
