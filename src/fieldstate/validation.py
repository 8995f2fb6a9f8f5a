"""
Validation engine.

Runs the resolved rules of a field as one round:

1. Clear messages, mark the field validating, bump its serial
2. Launch every rule with its own single-use settle callback
3. Join on a ValidationRound barrier (outstanding count + captured serial)
4. Flush outcomes in declaration order and write validity

The serial is the only cancellation mechanism. A settle arriving after a newer
round started for the same field is dropped, and a round that completes after
being superseded touches no state at all and resolves False.
A rule that raises is logged and counted as failed.

Completion is reported through concurrent.futures.Future used as a plain
completion token: no threads are involved, callbacks run inside whichever
call resolves the future (often the validate call itself when every rule
settles synchronously).
"""

import logging
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from fieldstate.rules import ResolvedRule

logger = logging.getLogger(__name__)


def resolved_future(result: bool) -> Future:
    future: Future = Future()
    future.set_result(result)
    return future


def join_all(futures: Iterable[Future]) -> Future:
    """Future resolving with the AND of ``futures`` once all of them resolved."""
    futures = list(futures)
    if not futures:
        return resolved_future(True)

    joined: Future = Future()
    remaining = len(futures)

    def _on_done(_: Future) -> None:
        nonlocal remaining
        remaining -= 1
        if remaining == 0:
            joined.set_result(all(future.result() for future in futures))

    for future in futures:
        future.add_done_callback(_on_done)
    return joined


@dataclass(frozen=True)
class RuleOutcome:
    valid: bool
    invalid_at: Any = None


class ValidationRound:
    """Join barrier for one generation of a field's rules.

    Outcomes are buffered per rule index so they can be flushed in
    declaration order no matter when each rule settles.
    """

    def __init__(self, path: str, serial: int, rule_count: int):
        self.path = path
        self.serial = serial
        self.outcomes: List[Optional[RuleOutcome]] = [None] * rule_count
        self.future: Future = Future()
        # One extra hold released after every rule was launched
        self._outstanding = rule_count + 1

    def record(self, index: int, outcome: RuleOutcome) -> None:
        self.outcomes[index] = outcome

    def release(self) -> bool:
        """Drop one hold; True when the barrier opened."""
        self._outstanding -= 1
        return self._outstanding == 0

    @property
    def is_valid(self) -> bool:
        return all(outcome.valid for outcome in self.outcomes if outcome is not None)


class ValidationEngine:
    """Executes field rules against the field state in ``model``."""

    def __init__(self, model: Any, rules: Mapping[str, Sequence[ResolvedRule]]):
        self.model = model
        self._rules: Dict[str, Sequence[ResolvedRule]] = {
            path: tuple(field_rules) for path, field_rules in rules.items() if field_rules
        }
        self._latest: Dict[str, ValidationRound] = {}

    def current_serial(self, path: str) -> Optional[int]:
        return self.model.get(f'{path}.serial')

    # ==================== ROUNDS ====================

    def validate_field(self, path: str) -> Future:
        """Start a validation round for ``path``.

        Returns:
            Future resolving with the field's validity. Fields without
            validations resolve True immediately and are left untouched.
        """
        field_rules = self._rules.get(path)
        if not field_rules:
            return resolved_future(True)

        self.model.set(f'{path}.messages', [])
        self.model.delete(f'{path}.invalid_at')
        self.model.set(f'{path}.is_validating', True)
        serial = self.model.increment(f'{path}.serial')
        value = self.model.get(f'{path}.value')

        round_ = ValidationRound(path, serial, len(field_rules))
        self._latest[path] = round_
        logger.debug(f"Validation round started: field={path!r} serial={serial} rules={len(field_rules)}")

        for index, rule in enumerate(field_rules):
            settle = self._make_settle(round_, index)
            try:
                rule.run(value, settle)
            except Exception as e:
                logger.warning(f"Rule raised, counting it as failed: field={path!r} rule={index}: {e}")
                settle(False)

        self._release(round_)
        return round_.future

    def validate_all(self, paths: Optional[Iterable[str]] = None) -> Future:
        """Validate every field with validations (or the given ones) concurrently."""
        targets = [path for path in (paths if paths is not None else self._rules) if path in self._rules]
        return join_all(self.validate_field(path) for path in targets)

    def supersede(self, path: str) -> None:
        """Make any in-flight round of ``path`` stale without starting a new one."""
        if path in self._rules and path in self._latest and not self._latest[path].future.done():
            self.model.increment(f'{path}.serial')
            del self._latest[path]
            logger.debug(f"Superseded in-flight round: field={path!r}")

    def supersede_all(self) -> None:
        for path in list(self._latest):
            self.supersede(path)

    def _make_settle(self, round_: ValidationRound, index: int):
        settled = False

        def settle(valid: bool, invalid_at: Any = None) -> None:
            nonlocal settled
            if settled:
                logger.debug(f"Ignoring repeated settle: field={round_.path!r} rule={index}")
                return
            settled = True
            if self.current_serial(round_.path) == round_.serial:
                round_.record(index, RuleOutcome(bool(valid), invalid_at))
            else:
                logger.debug(f"Dropping stale outcome: field={round_.path!r} serial={round_.serial} rule={index}")
            self._release(round_)

        return settle

    def _release(self, round_: ValidationRound) -> None:
        if round_.release():
            self._finish(round_)

    def _finish(self, round_: ValidationRound) -> None:
        path = round_.path
        if self.current_serial(path) != round_.serial:
            # Superseded rounds carry no verdict and write nothing
            logger.debug(f"Round superseded: field={path!r} serial={round_.serial}")
            round_.future.set_result(False)
            return

        valid = round_.is_valid
        marker_set = False
        for outcome, rule in zip(round_.outcomes, self._rules[path]):
            if outcome is None or outcome.valid:
                continue
            self.model.push(f'{path}.messages', rule.message)
            if outcome.invalid_at is not None and not marker_set:
                self.model.set(f'{path}.invalid_at', outcome.invalid_at)
                marker_set = True

        self.set_validity(path, valid)
        self.model.delete(f'{path}.is_validating')
        logger.debug(f"Validation round finished: field={path!r} serial={round_.serial} valid={valid}")
        round_.future.set_result(valid)

    # ==================== VALIDITY ====================

    def set_validity(self, path: str, valid: bool) -> None:
        """Single writer of the is_valid / is_invalid pair."""
        self.model.set_each(path, {'is_valid': valid, 'is_invalid': not valid})
