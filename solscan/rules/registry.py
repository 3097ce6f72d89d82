# Rule registry: catalog mapping rule ID -> rule instance, with conflict-safe registration.

from __future__ import annotations

import logging
from typing import Iterable, Iterator, Optional

from solscan.errors import RegistryConflictError
from solscan.rules.base import Rule

logger = logging.getLogger(__name__)


class RuleRegistry:
    """
    Catalog of rule instances keyed by rule.metadata.id.

    Insertion order is preserved and is the order the engine runs rules in.
    The registry must not be mutated while an analysis is in flight.
    """

    def __init__(self, rules: Optional[Iterable[Rule]] = None) -> None:
        self._rules: dict[str, Rule] = {}
        if rules is not None:
            self.register_bulk(rules)

    def register(self, rule: Rule, *, force: bool = False) -> None:
        """
        Register a rule under its metadata ID.

        Raises:
            RegistryConflictError: the ID is already registered and force is False.
        """
        rule_id = rule.metadata.id
        if rule_id in self._rules and not force:
            raise RegistryConflictError(rule_id)
        if rule_id in self._rules:
            logger.debug("Overriding rule %s", rule_id)
        self._rules[rule_id] = rule

    def register_bulk(self, rules: Iterable[Rule], *, force: bool = False) -> None:
        """
        Register rules in order.

        Stops at the first conflict without rolling back: rules registered
        before the conflicting one stay registered.
        """
        for rule in rules:
            self.register(rule, force=force)

    def get_rule(self, rule_id: str) -> Optional[Rule]:
        return self._rules.get(rule_id)

    def has_rule(self, rule_id: str) -> bool:
        return rule_id in self._rules

    def get_all_rules(self) -> list[Rule]:
        """All rules in registration order."""
        return list(self._rules.values())

    def get_rules_by_category(self, category: str) -> list[Rule]:
        """Rules whose metadata.category matches, in registration order."""
        value = getattr(category, "value", category)
        return [rule for rule in self._rules.values() if rule.metadata.category == value]

    def rule_ids(self) -> list[str]:
        return list(self._rules.keys())

    def unregister(self, rule_id: str) -> None:
        """Remove a rule; does nothing if it is not registered."""
        self._rules.pop(rule_id, None)

    def clear(self) -> None:
        self._rules.clear()

    def __contains__(self, rule_id: object) -> bool:
        return rule_id in self._rules

    def __len__(self) -> int:
        return len(self._rules)

    def __iter__(self) -> Iterator[Rule]:
        return iter(list(self._rules.values()))


def create_default_registry() -> RuleRegistry:
    """
    Return a new registry holding one instance of every built-in rule.

    This is the single place to update when a built-in rule is added.
    """
    from solscan.rules.delegatecall import DelegatecallRule
    from solscan.rules.floating_pragma import FloatingPragmaRule
    from solscan.rules.max_line_length import MaxLineLengthRule
    from solscan.rules.selfdestruct import AvoidSelfdestructRule
    from solscan.rules.tx_origin import TxOriginRule

    return RuleRegistry(
        [
            TxOriginRule(),
            AvoidSelfdestructRule(),
            DelegatecallRule(),
            FloatingPragmaRule(),
            MaxLineLengthRule(),
        ]
    )
