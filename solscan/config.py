from __future__ import annotations

"""
Analyzer configuration: the resolved config handed to the engine, and rule
setting normalization.

Config files, presets and `extends` chains are merged before they reach this
module; ResolvedConfig is a finished input. What lives here is the one piece
of interpretation the engine needs: turning a rule setting such as "off",
2 or ["warning", {"max": 100}] into an effective severity plus options.
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from solscan.errors import ConfigError
from solscan.findings.models import Severity

logger = logging.getLogger(__name__)

OFF = "off"

# Accepted spellings of each severity. None means "off": the rule is not run.
_SEVERITY_ALIASES: dict[Any, Optional[Severity]] = {
    "off": None,
    0: None,
    "info": Severity.INFO,
    "warning": Severity.WARNING,
    "warn": Severity.WARNING,
    1: Severity.WARNING,
    "error": Severity.ERROR,
    2: Severity.ERROR,
}


@dataclass(frozen=True)
class RuleSetting:
    """Effective setting for one rule. severity None means the rule is off."""

    severity: Optional[Severity]
    options: Mapping[str, Any] = field(default_factory=dict)

    @property
    def enabled(self) -> bool:
        return self.severity is not None


def parse_severity(value: Any, rule_id: str = "<unknown>") -> Optional[Severity]:
    """
    Normalize a configured severity to a Severity, or None for "off".

    Raises:
        ConfigError: value is not a recognized severity.
    """
    if isinstance(value, Severity):
        return value
    # bool is an int subclass and 1.0 hashes like 1; neither is a severity.
    if isinstance(value, bool) or not isinstance(value, (str, int)):
        raise ConfigError(f"Invalid severity {value!r} for rule '{rule_id}'")
    key = value.lower() if isinstance(value, str) else value
    try:
        return _SEVERITY_ALIASES[key]
    except KeyError:
        raise ConfigError(
            f"Invalid severity {value!r} for rule '{rule_id}'. "
            "Use off/info/warning/error or 0/1/2."
        ) from None


def parse_rule_setting(rule_id: str, value: Any) -> RuleSetting:
    """
    Normalize a rule setting: a scalar severity or a [severity, options] pair.

    Raises:
        ConfigError: malformed severity, wrong pair length, or non-mapping options.
    """
    if isinstance(value, (list, tuple)):
        if len(value) == 0 or len(value) > 2:
            raise ConfigError(
                f"Rule '{rule_id}' setting must be a severity or [severity, options], got {value!r}"
            )
        severity = parse_severity(value[0], rule_id)
        options: Any = value[1] if len(value) == 2 else {}
        if options is None:
            options = {}
        if not isinstance(options, Mapping):
            raise ConfigError(f"Options for rule '{rule_id}' must be a mapping, got {type(options).__name__}")
        return RuleSetting(severity=severity, options=dict(options))
    return RuleSetting(severity=parse_severity(value, rule_id))


@dataclass
class ResolvedConfig:
    """
    Fully merged analyzer configuration.

    rules maps rule ID to a severity ("off"/"info"/"warning"/"error" or 0/1/2)
    or to a [severity, options] pair. Rules not listed run at their default
    severity.
    """

    base_path: Path = field(default_factory=Path.cwd)
    rules: dict[str, Any] = field(default_factory=dict)
    plugins: list[str] = field(default_factory=list)
    excluded_files: list[str] = field(default_factory=list)
    env: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ResolvedConfig":
        """Build a config from a mapping with snake_case or camelCase keys."""
        if not isinstance(data, Mapping):
            raise ConfigError(f"Configuration must be a mapping, got {type(data).__name__}")

        rules = data.get("rules") or {}
        if not isinstance(rules, Mapping):
            raise ConfigError("Configuration 'rules' must be a mapping of rule ID to setting")

        base_path = data.get("base_path", data.get("basePath"))
        excluded = data.get("excluded_files", data.get("excludedFiles")) or []
        return cls(
            base_path=Path(base_path) if base_path else Path.cwd(),
            rules=dict(rules),
            plugins=list(data.get("plugins") or []),
            excluded_files=list(excluded),
            env=dict(data.get("env") or {}),
        )

    def resolve_rule(self, rule_id: str, default: Severity) -> RuleSetting:
        """Return the effective setting for rule_id, falling back to default severity."""
        if rule_id not in self.rules:
            return RuleSetting(severity=default)
        return parse_rule_setting(rule_id, self.rules[rule_id])

    def validate(self) -> None:
        """
        Check every configured rule setting.

        Raises:
            ConfigError: on the first malformed setting.
        """
        for rule_id, value in self.rules.items():
            if not isinstance(rule_id, str) or not rule_id:
                raise ConfigError(f"Rule IDs must be non-empty strings, got {rule_id!r}")
            parse_rule_setting(rule_id, value)
        logger.debug("Validated %d rule setting(s)", len(self.rules))
