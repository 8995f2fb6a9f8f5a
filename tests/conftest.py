"""Pytest configuration and shared fixtures."""
import pytest

import fieldstate.config as config_module
from fieldstate import ObservableStore


class DeferredRule:
    """Callable rule that holds on to every settle callback it receives.

    Tests decide when (and how) each captured round settles.
    """

    def __init__(self):
        self.calls = []

    def __call__(self, value, settle):
        self.calls.append((value, settle))

    def settle(self, index, valid, invalid_at=None):
        _, settle = self.calls[index]
        settle(valid, invalid_at)


@pytest.fixture(autouse=True)
def restore_default_rules():
    """Restore the process-level default rule registry after each test."""
    original = {name: dict(entry) for name, entry in config_module._default_rules.items()}

    yield

    config_module._default_rules.clear()
    config_module._default_rules.update(original)


@pytest.fixture
def store():
    """Provide a store with an items collection."""
    return ObservableStore({
        'items': {
            '1': {'id': '1', 'name': 'first', 'email': 'first@example.com'},
        },
    })


@pytest.fixture
def model(store):
    """Provide the scope validators keep their field states in."""
    return store.scope('_page.validator')


@pytest.fixture
def deferred():
    return DeferredRule()
