"""
Plugin loading: import plugin modules, validate, namespace and register them.

A plugin source is either a path (a .py file or a package directory, relative
paths resolved against cwd) or an importable module name. For a module name
the loader tries, in order:

    <name>
    solscan_plugin_<name>
    solscan_<name>

The module exports its plugin as `plugin` (or `PLUGIN`); a module that
defines `meta` at top level is itself the plugin.

Loading a plugin executes its module code. Failures of one source never
affect the others: every problem becomes a PluginValidationError in the
returned PluginLoadResult and load() itself does not raise.
"""

from __future__ import annotations

import importlib
import importlib.util
import itertools
import logging
import re
import sys
from collections.abc import Mapping
from pathlib import Path
from types import ModuleType
from typing import Any, Iterable, Optional, Union

from solscan.errors import PluginError
from solscan.plugins.models import (
    LoadedPlugin,
    PluginErrorCode,
    PluginLoadResult,
    PluginMeta,
    PluginValidationError,
    get_field,
    preset_rules,
)
from solscan.plugins.validator import (
    PluginValidator,
    is_valid_rule_instance,
    rule_constructor,
    rule_severity_error,
)
from solscan.rules.base import Rule
from solscan.rules.registry import RuleRegistry

logger = logging.getLogger(__name__)

MODULE_PREFIXES = ("", "solscan_plugin_", "solscan_")
EXPORT_NAMES = ("plugin", "PLUGIN")

_module_counter = itertools.count()
_UNSAFE_CHARS_RE = re.compile(r"\W")


def _declared_name(candidate: Any) -> Optional[str]:
    meta = get_field(candidate, "meta") if not isinstance(candidate, (str, bytes, int, float, list, tuple)) else None
    name = get_field(meta, "name") if meta is not None else None
    return name if isinstance(name, str) and name else None


def _looks_like_path(source: str) -> bool:
    return source.endswith(".py") or source.startswith(".") or "/" in source or "\\" in source


class PluginLoader:
    """
    Loads plugins and keeps the table of accepted ones, in load order.

    Args:
        validator: Validator used when load(validate=True); a default one if omitted.
        registry: Core rule registry; namespaced plugin keys that collide with
                  a core rule ID are rejected with DUPLICATE_RULE.
    """

    def __init__(
        self,
        validator: Optional[PluginValidator] = None,
        registry: Optional[RuleRegistry] = None,
    ) -> None:
        self.validator = validator if validator is not None else PluginValidator()
        self.registry = registry
        self._plugins: dict[str, LoadedPlugin] = {}

    def load(
        self,
        sources: Iterable[Union[str, Path]],
        *,
        validate: bool = True,
        cwd: Optional[Union[str, Path]] = None,
    ) -> PluginLoadResult:
        """
        Load each source independently.

        Returns:
            The plugins accepted by this call and every error recorded.
            result.success is False if any error was recorded, including a
            failing setup hook of an otherwise accepted plugin.
        """
        base = Path(cwd) if cwd is not None else Path.cwd()
        result = PluginLoadResult()

        for source in sources:
            source_str = str(source)
            try:
                candidate = self._import(source_str, base)
            except PluginError as e:
                logger.error("Failed to load plugin %s: %s", source_str, e.message)
                result.errors.append(self._to_record(e, source_str))
                continue

            if validate:
                errors = self.validator.validate(candidate, _declared_name(candidate) or source_str)
                if errors:
                    logger.warning("Plugin %s rejected: %d validation error(s)", source_str, len(errors))
                    result.errors.extend(errors)
                    continue

            try:
                loaded = self._build(candidate, source_str)
            except PluginError as e:
                logger.warning("Plugin %s rejected: %s", source_str, e.message)
                result.errors.append(self._to_record(e, source_str))
                continue
            except Exception as e:  # unvalidated plugin objects can fail anywhere
                logger.warning("Plugin %s rejected: %s: %s", source_str, type(e).__name__, e)
                result.errors.append(
                    PluginValidationError(
                        _declared_name(candidate) or source_str,
                        f"Failed to register plugin: {type(e).__name__}: {e}",
                        PluginErrorCode.LOAD_FAILED,
                    )
                )
                continue

            self._plugins[loaded.meta.name] = loaded
            result.plugins.append(loaded)
            logger.info(
                "Loaded plugin %s@%s (%d rule(s), %d preset(s))",
                loaded.meta.name,
                loaded.meta.version,
                len(loaded.rules),
                len(loaded.presets),
            )

            hook_error = self._run_hook(loaded, "setup")
            if hook_error is not None:
                result.errors.append(hook_error)

        return result

    # --- queries ---

    def get_loaded_plugins(self) -> list[LoadedPlugin]:
        return list(self._plugins.values())

    def get_plugin(self, name: str) -> Optional[LoadedPlugin]:
        return self._plugins.get(name)

    def get_all_rules(self) -> dict[str, Rule]:
        """Namespaced rule ID -> rule instance across all loaded plugins, in load order."""
        rules: dict[str, Rule] = {}
        for loaded in self._plugins.values():
            rules.update(loaded.rules)
        return rules

    def get_all_presets(self) -> dict[str, dict[str, Any]]:
        presets: dict[str, dict[str, Any]] = {}
        for loaded in self._plugins.values():
            presets.update(loaded.presets)
        return presets

    def unload_all(self) -> list[PluginValidationError]:
        """
        Run every plugin's teardown hook in load order, then forget all plugins.

        Returns:
            HOOK_FAILED records for teardown hooks that raised.
        """
        errors: list[PluginValidationError] = []
        for loaded in list(self._plugins.values()):
            hook_error = self._run_hook(loaded, "teardown")
            if hook_error is not None:
                errors.append(hook_error)
        count = len(self._plugins)
        self._plugins.clear()
        logger.info("Unloaded %d plugin(s)", count)
        return errors

    # --- import ---

    def _import(self, source: str, base: Path) -> Any:
        path = Path(source)
        if not path.is_absolute():
            path = base / path

        if path.exists():
            module = self._import_path(path, source)
        elif _looks_like_path(source):
            raise PluginError(f"Plugin file not found: {path}", PluginErrorCode.LOAD_FAILED, source)
        else:
            module = self._import_name(source)
        return self._plugin_export(module, source)

    def _import_path(self, path: Path, source: str) -> ModuleType:
        search_locations = None
        if path.is_dir():
            init_file = path / "__init__.py"
            if not init_file.is_file():
                raise PluginError(
                    f"Plugin directory {path} has no __init__.py",
                    PluginErrorCode.LOAD_FAILED,
                    source,
                )
            search_locations = [str(path)]
            path = init_file

        stem = path.parent.name if search_locations else path.stem
        module_name = f"_solscan_plugin_{_UNSAFE_CHARS_RE.sub('_', stem)}_{next(_module_counter)}"
        spec = importlib.util.spec_from_file_location(
            module_name, path, submodule_search_locations=search_locations
        )
        if spec is None or spec.loader is None:
            raise PluginError(f"Cannot import plugin from {path}", PluginErrorCode.LOAD_FAILED, source)

        module = importlib.util.module_from_spec(spec)
        # Registered before execution so a package plugin can use relative imports.
        sys.modules[module_name] = module
        try:
            spec.loader.exec_module(module)
        except Exception as e:  # plugin module body is untrusted code
            sys.modules.pop(module_name, None)
            raise PluginError(
                f"Failed to import plugin {path}: {type(e).__name__}: {e}",
                PluginErrorCode.LOAD_FAILED,
                source,
            ) from e
        logger.debug("Imported plugin module %s from %s", module_name, path)
        return module

    def _import_name(self, name: str) -> ModuleType:
        tried: list[str] = []
        for prefix in MODULE_PREFIXES:
            module_name = f"{prefix}{name.replace('-', '_')}" if prefix else name
            tried.append(module_name)
            try:
                module = importlib.import_module(module_name)
            except ModuleNotFoundError as e:
                # Only a missing candidate moves on; a missing dependency inside it is a failure.
                if e.name is not None and (module_name == e.name or module_name.startswith(e.name + ".")):
                    continue
                raise PluginError(
                    f"Failed to import plugin module {module_name}: {e}",
                    PluginErrorCode.LOAD_FAILED,
                    name,
                ) from e
            except Exception as e:  # plugin module body is untrusted code
                raise PluginError(
                    f"Failed to import plugin module {module_name}: {type(e).__name__}: {e}",
                    PluginErrorCode.LOAD_FAILED,
                    name,
                ) from e
            logger.debug("Imported plugin module %s", module_name)
            return module

        raise PluginError(
            f"Cannot find plugin module (tried: {', '.join(tried)})",
            PluginErrorCode.LOAD_FAILED,
            name,
        )

    @staticmethod
    def _plugin_export(module: ModuleType, source: str) -> Any:
        for export in EXPORT_NAMES:
            candidate = getattr(module, export, None)
            if candidate is not None:
                return candidate
        if getattr(module, "meta", None) is not None:
            return module
        raise PluginError(
            f"Module {module.__name__} does not export a plugin (expected 'plugin' or a top-level 'meta')",
            PluginErrorCode.LOAD_FAILED,
            source,
        )

    # --- registration ---

    def _build(self, candidate: Any, source: str) -> LoadedPlugin:
        """Namespace and instantiate a plugin; raises PluginError if it cannot be accepted."""
        meta = get_field(candidate, "meta")
        name = get_field(meta, "name") if meta is not None else None
        version = get_field(meta, "version") if meta is not None else None
        if not isinstance(name, str) or not name:
            raise PluginError("Plugin has no usable meta.name", PluginErrorCode.MISSING_METADATA, source)
        if name in self._plugins:
            raise PluginError(f"Plugin '{name}' is already loaded", PluginErrorCode.DUPLICATE_RULE, name)

        raw_rules = get_field(candidate, "rules")
        if raw_rules is None:
            raw_rules = {}
        if not isinstance(raw_rules, Mapping):
            raise PluginError("Plugin rules must be a mapping", PluginErrorCode.INVALID_RULE, name)
        raw_presets = get_field(candidate, "presets")
        if raw_presets is None:
            raw_presets = {}
        if not isinstance(raw_presets, Mapping):
            raise PluginError("Plugin presets must be a mapping", PluginErrorCode.INVALID_PRESET, name)

        rules: dict[str, Rule] = {}
        for rule_name, definition in raw_rules.items():
            key = f"{name}/{rule_name}"
            self._check_collision(key, name)
            constructor = rule_constructor(definition)
            if constructor is None:
                raise PluginError(f"Rule '{rule_name}' has no rule class", PluginErrorCode.INVALID_RULE, name)
            try:
                instance = constructor()
            except Exception as e:  # plugin code is untrusted
                raise PluginError(
                    f"Failed to instantiate rule '{rule_name}': {e}", PluginErrorCode.INVALID_RULE, name
                ) from e
            if not is_valid_rule_instance(instance):
                raise PluginError(
                    f"Rule '{rule_name}' does not expose metadata.id and analyze()",
                    PluginErrorCode.INVALID_RULE,
                    name,
                )
            severity_error = rule_severity_error(instance)
            if severity_error is not None:
                raise PluginError(
                    f"Rule '{rule_name}' has an unusable default severity: {severity_error}",
                    PluginErrorCode.INVALID_RULE,
                    name,
                )
            rules[key] = instance

        presets: dict[str, dict[str, Any]] = {}
        for preset_name, preset in raw_presets.items():
            key = f"{name}/{preset_name}"
            if key in self.get_all_presets():
                raise PluginError(f"Preset '{key}' is already registered", PluginErrorCode.DUPLICATE_RULE, name)
            rule_map = preset_rules(preset)
            if rule_map is None:
                raise PluginError(f"Preset '{preset_name}' has no rules", PluginErrorCode.INVALID_PRESET, name)
            presets[key] = dict(rule_map)

        description = get_field(meta, "description")
        return LoadedPlugin(
            meta=PluginMeta(
                name=name,
                version=str(version) if version is not None else "0.0.0",
                description=description if isinstance(description, str) else None,
            ),
            rules=rules,
            presets=presets,
            source=source,
            original=candidate,
        )

    def _check_collision(self, key: str, plugin_name: str) -> None:
        if self.registry is not None and self.registry.has_rule(key):
            raise PluginError(
                f"Rule '{key}' collides with a core rule", PluginErrorCode.DUPLICATE_RULE, plugin_name
            )
        for loaded in self._plugins.values():
            if key in loaded.rules:
                raise PluginError(
                    f"Rule '{key}' is already registered by plugin '{loaded.meta.name}'",
                    PluginErrorCode.DUPLICATE_RULE,
                    plugin_name,
                )

    @staticmethod
    def _run_hook(loaded: LoadedPlugin, hook: str) -> Optional[PluginValidationError]:
        fn = get_field(loaded.original, hook)
        if fn is None:
            return None
        name = loaded.meta.name
        if not callable(fn):
            logger.warning("Plugin %s %s hook is not callable", name, hook)
            return PluginValidationError(name, f"{hook} hook is not callable", PluginErrorCode.HOOK_FAILED)
        try:
            fn()
        except Exception as e:  # a failing hook must not affect other plugins
            logger.warning("Plugin %s %s hook failed: %s", name, hook, e, exc_info=True)
            return PluginValidationError(
                name, f"{hook} hook failed: {type(e).__name__}: {e}", PluginErrorCode.HOOK_FAILED
            )
        logger.debug("Ran %s hook of plugin %s", hook, name)
        return None

    @staticmethod
    def _to_record(error: PluginError, source: str) -> PluginValidationError:
        return PluginValidationError(
            plugin_name=error.plugin_name or source,
            message=error.message,
            code=PluginErrorCode(error.code),
        )
