"""
Signup form example.

Shows a Validator bound to a new user document: named, pattern and deferred
rules, group validity and commit into the users collection.
"""

import logging
import re

from fieldstate import ObservableStore, Validator

logger = logging.getLogger(__name__)

TAKEN_USERNAMES = {'admin', 'root'}


class UsernameLookup:
    """Stands in for a remote uniqueness check: answers arrive later."""

    def __init__(self):
        self.pending = []

    def __call__(self, value, settle):
        self.pending.append((value, settle))

    def answer_all(self):
        pending, self.pending = self.pending, []
        for value, settle in pending:
            settle(value not in TAKEN_USERNAMES)


def build_form(store: ObservableStore, lookup: UsernameLookup) -> Validator:
    return Validator(
        store.scope('_page.signup'),
        'users',
        {
            'username': {
                'group': 'account',
                'validations': [
                    {'rule': 'required'},
                    {'rule': 'slug', 'message': 'Lowercase letters and digits only'},
                    {'rule': lookup, 'message': 'Username is taken'},
                ],
            },
            'profile.email': {
                'group': 'contact',
                'validations': [{'rule': 'required'}, {'rule': 'email'}],
            },
            'profile.newsletter': {'default': False},
        },
        options={'rules': {'slug': re.compile(r'^[a-z0-9]+$')}},
    )


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    store = ObservableStore({'users': {}})
    lookup = UsernameLookup()
    form = build_form(store, lookup)

    form.set_value('username', 'admin')
    form.set_value('profile.email', 'someone@example.com')

    form.commit(callback=lambda ok: logger.info(f"First commit written: {ok}"))
    lookup.answer_all()
    logger.info(f"Username messages: {form.fields.username.messages}")
    logger.info(f"Groups: account={form.group_is_valid('account')} contact={form.group_is_valid('contact')}")

    form.set_value('username', 'someone')
    committed = form.commit()
    lookup.answer_all()
    logger.info(f"Second commit written: {committed.result()}")
    logger.info(f"Users: {store.get('users')}")


if __name__ == '__main__':
    main()
