"""
Rule resolution.

A validation rule is referenced three ways: by name, as a compiled regular
expression, or as a callable. References are resolved once, when field specs
are assigned, into a ResolvedRule so that validation never has to look
anything up and malformed rules fail at construction time.
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional

from fieldstate.config import ValidatorOptions, get_default_rules, get_fallback_message
from fieldstate.exceptions import InvalidRuleTypeError, UnknownRuleError

logger = logging.getLogger(__name__)

Settle = Callable[..., None]


class RuleKind(Enum):
    """How a rule was referenced in the field spec."""

    NAMED = "named"
    PATTERN = "pattern"
    PREDICATE = "predicate"


@dataclass(frozen=True)
class ResolvedRule:
    """A rule ready to run: either a pattern or a callable, plus its message."""

    kind: RuleKind
    message: str
    pattern: Optional[re.Pattern] = None
    predicate: Optional[Callable[..., Any]] = None
    name: Optional[str] = None

    def run(self, value: Any, settle: Settle) -> None:
        """Evaluate the rule against ``value`` and report through ``settle``.

        Patterns settle immediately. Callables receive (value, settle) and may
        settle later; a callable returning a bool is settled with it.
        """
        if self.pattern is not None:
            text = '' if value is None else str(value)
            settle(self.pattern.search(text) is not None)
            return

        result = self.predicate(value, settle)
        if isinstance(result, bool):
            settle(result)


def _check_rule_type(rule: Any, rule_name: Optional[str] = None) -> None:
    if isinstance(rule, re.Pattern) or callable(rule):
        return
    raise InvalidRuleTypeError(rule, rule_name)


def resolve_message(rule_name: Optional[str], options: ValidatorOptions) -> str:
    """Message for a named rule: instance options, then default table, then fallback."""
    if rule_name is not None:
        if options.messages.get(rule_name):
            return options.messages[rule_name]
        entry = get_default_rules().get(rule_name)
        if entry and entry.get('message'):
            return entry['message']
    return get_fallback_message()


def resolve_rule(
    rule: Any,
    message: Optional[str] = None,
    options: Optional[ValidatorOptions] = None,
) -> ResolvedRule:
    """Resolve a rule reference into a ResolvedRule.

    Args:
        rule: Rule name, compiled regular expression or callable
        message: Explicit message for this validation (wins over everything)
        options: Per-Validator rules and messages

    Raises:
        UnknownRuleError: if a rule name cannot be found
        InvalidRuleTypeError: if the rule is not (or does not point to) a
            regular expression or a callable
    """
    options = options or ValidatorOptions()
    rule_name = None
    kind = RuleKind.PREDICATE

    if isinstance(rule, str):
        rule_name = rule
        kind = RuleKind.NAMED
        if options.rules.get(rule_name) is not None:
            rule = options.rules[rule_name]
        else:
            entry = get_default_rules().get(rule_name)
            if entry is None or 'rule' not in entry:
                raise UnknownRuleError(rule_name)
            rule = entry['rule']
    elif isinstance(rule, re.Pattern):
        kind = RuleKind.PATTERN

    _check_rule_type(rule, rule_name)

    resolved = ResolvedRule(
        kind=kind,
        message=message or resolve_message(rule_name, options),
        pattern=rule if isinstance(rule, re.Pattern) else None,
        predicate=None if isinstance(rule, re.Pattern) else rule,
        name=rule_name,
    )
    logger.debug(f"Resolved rule: kind={kind.value} name={rule_name!r}")
    return resolved
