"""Built-in validation rules, available by name to every Validator."""

import re
from typing import Any, Callable, Dict

DEFAULT_RULE_NAME = 'default'
DEFAULT_MESSAGE = 'Something is wrong with this field.'


def required(value: Any, settle: Callable[..., None]) -> None:
    settle(value is not None and value != '')


DEFAULT_RULES: Dict[str, Dict[str, Any]] = {
    DEFAULT_RULE_NAME: {
        'message': DEFAULT_MESSAGE,
    },
    'email': {
        'rule': re.compile(r'\S+@\S+\.\S+'),
        'message': 'Wrong email format.',
    },
    'required': {
        'rule': required,
        'message': 'Required field',
    },
}
