# Exception taxonomy for the analyzer: config, parse, plugin, rule execution, registry.

from __future__ import annotations

from typing import Optional


class SolscanError(Exception):
    """Base class for every error raised by solscan."""


class ConfigError(SolscanError, ValueError):
    """Malformed rule settings or invalid engine setup (e.g. parallel=0)."""


class ParseError(SolscanError):
    """
    A syntax error found while parsing in strict mode.

    line is 1-based, column is 0-based (same convention as Issue locations).
    """

    def __init__(self, message: str, line: int = 0, column: int = 0) -> None:
        super().__init__(f"Parse error at line {line}, column {column}: {message}")
        self.message = message
        self.line = line
        self.column = column


class PluginError(SolscanError):
    """
    A plugin could not be imported, validated or registered.

    The loader converts these into PluginValidationError records; they never
    escape PluginLoader.load().
    """

    def __init__(self, message: str, code: str, plugin_name: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.plugin_name = plugin_name


class RuleExecutionError(SolscanError):
    """A rule raised while analyzing a file. Downgraded to a diagnostic by the engine."""

    def __init__(self, rule_id: str, file_path: str, cause: BaseException) -> None:
        super().__init__(f"Rule {rule_id} failed on {file_path}: {cause!r}")
        self.rule_id = rule_id
        self.file_path = file_path
        self.cause = cause


class RegistryConflictError(SolscanError, KeyError):
    """A rule ID is already registered and force was not set."""

    def __init__(self, rule_id: str) -> None:
        super().__init__(rule_id)
        self.rule_id = rule_id

    def __str__(self) -> str:
        return f"Rule '{self.rule_id}' is already registered. Use force=True to override."
