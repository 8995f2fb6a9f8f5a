"""Tests for the Validator facade.

Covers construction, setup from specs and origin, validation through the
facade, group and change flags, reset and commit.
"""
import re

import pytest

from fieldstate import (
    ConfigurationError,
    FieldHandle,
    FieldProxy,
    InvalidRuleTypeError,
    ObservableStore,
    UnknownFieldError,
    UnknownRuleError,
    Validator,
    ValidatorOptions,
)
from fieldstate.default_rules import DEFAULT_MESSAGE

REQUIRED = {'validations': [{'rule': 'required'}]}


class TestSetup:
    """Test constructor argument handling."""

    def test_throws_without_model(self):
        with pytest.raises(ConfigurationError):
            Validator(None, fields={'a': {}})

    def test_throws_with_only_a_model(self, model):
        with pytest.raises(ConfigurationError):
            Validator(model)

    def test_passing_in_origin_is_treated_as_origin(self, model, store):
        validator = Validator(model, store.scope('items.1'))

        assert validator.specs == {}
        assert validator.origin.path() == 'items.1'
        assert validator.reserved_id == '1'

    def test_origin_path_string(self, model):
        validator = Validator(model, 'items.1')

        assert validator.origin.path() == 'items.1'
        assert validator.get_value('name') == 'first'

    def test_fields_object_with_path_field_is_not_treated_as_origin(self, model):
        validator = Validator(model, {'path': {}})

        assert validator.origin is None
        assert list(validator.specs) == ['path']

    def test_list_of_field_names(self, model):
        validator = Validator(model, fields=['a', 'b'])

        assert validator.get_values() == {'a': None, 'b': None}

    def test_defaults_mapping(self, model):
        validator = Validator(model, fields={'a': REQUIRED}, defaults={'a': 'x', 'b': 2})

        assert validator.get_values() == {'a': 'x', 'b': 2}
        assert validator.specs['a'].has_validations

    def test_collection_origin_reserves_an_id(self, model, store):
        validator = Validator(model, 'items', {'name': {}})

        assert validator.origin.split_path() == ['items', validator.reserved_id]
        assert store.get(f'items.{validator.reserved_id}') is None

    def test_unknown_named_rule(self, model):
        with pytest.raises(UnknownRuleError):
            Validator(model, fields={'a': {'validations': [{'rule': 'nope'}]}})

    def test_malformed_rule_fails_at_construction(self, model):
        with pytest.raises(InvalidRuleTypeError):
            Validator(model, fields={'a': {'validations': [{'rule': 'odd'}]}}, options={'rules': {'odd': 12}})

    def test_reserved_field_names(self, model):
        with pytest.raises(ConfigurationError):
            Validator(model, fields={'groups.a': {}})

    def test_conflicting_field_paths(self, model):
        with pytest.raises(ConfigurationError):
            Validator(model, fields={'c': {}, 'c.d': {}})

    def test_unknown_spec_keys(self, model):
        with pytest.raises(ConfigurationError):
            Validator(model, fields={'a': {'validation': []}})

    def test_options_mapping_is_normalised(self, model):
        validator = Validator(model, fields=['a'], options={'messages': {'required': 'Needed'}})

        assert validator.options == ValidatorOptions(messages={'required': 'Needed'})


class TestFieldState:
    """Test the initial field states."""

    def test_spec_defaults_and_scaffolding(self, model):
        Validator(model, fields={'name': {'default': 'n', 'validations': [{'rule': 'required'}]}, 'plain': {}})

        assert model.get('name') == {
            'value': 'n', 'has_changed': False,
            'is_valid': False, 'is_invalid': False, 'messages': [], 'serial': 0,
        }
        assert model.get('plain') == {'value': None, 'has_changed': False}
        assert model.get('groups.default.is_valid') is False
        assert model.get('has_invalid_fields') is False
        assert model.get('has_changed_fields') is False

    def test_origin_values_win_over_defaults(self, model):
        validator = Validator(model, 'items.1', {'name': {'default': 'default name'}})

        assert validator.get_value('name') == 'first'

    def test_origin_keys_become_implicit_fields(self, model):
        validator = Validator(model, 'items.1', {'name': {}})

        assert validator.field_paths == ['name', 'id', 'email']
        assert validator.field('email').spec is None

    def test_mutable_defaults_are_not_shared(self, model, store):
        spec = {'tags': {'default': []}}
        first = Validator(model, fields=spec)
        second = Validator(store.scope('_page.other'), fields=spec)

        first.model.push('tags.value', 'a')

        assert second.get_value('tags') == []


class TestNestedPaths:
    """Dotted field paths reconciled against nested origin data."""

    @pytest.fixture
    def store(self):
        return ObservableStore({
            'docs': {'d1': {'id': 'd1', 'c': {'d': {'f': 'f'}, 'g': 1}, 'title': 't'}},
        })

    @pytest.fixture
    def validator(self, store):
        return Validator(store.scope('_page.form'), 'docs.d1', {'c.d.f': REQUIRED})

    def test_setup_reads_nested_value(self, validator):
        assert validator.get_value('c.d.f') == 'f'

    def test_get_values_rebuilds_nested_tree_with_siblings(self, validator):
        validator.set_value('c.d.f', 'changed')

        assert validator.get_values() == {'id': 'd1', 'c': {'d': {'f': 'changed'}, 'g': 1}, 'title': 't'}

    def test_get_values_excluding_identifier(self, validator):
        assert 'id' not in validator.get_values(exclude_identifier=True)

    def test_commit_writes_nested_values(self, validator, store):
        validator.set_value('c.d.f', 'changed')

        assert validator.commit().result() is True
        assert store.get('docs.d1') == {'id': 'd1', 'c': {'d': {'f': 'changed'}, 'g': 1}, 'title': 't'}

    def test_field_proxy_navigation(self, validator):
        assert isinstance(validator.fields.c, FieldProxy)
        assert isinstance(validator.fields.c.d.f, FieldHandle)
        assert validator.fields.c.d.f.value == 'f'
        assert validator.fields['c'].g.value == 1
        assert 'd' in dir(validator.fields.c)

    def test_field_proxy_is_read_only(self, validator):
        with pytest.raises(AttributeError):
            validator.fields.c = 1
        with pytest.raises(AttributeError):
            validator.fields.missing


class TestValidation:
    """Validation through the facade."""

    @pytest.fixture
    def validator(self, model):
        return Validator(model, fields={
            'name': REQUIRED,
            'email': {'validations': [{'rule': 'required'}, {'rule': 'email'}]},
            'plain': {'default': 'x'},
        })

    def test_field_without_validations_is_always_valid(self, validator, model):
        assert validator.validate('plain').result() is True
        assert model.get('plain.messages') is None
        assert model.get('plain.is_valid') is None

    def test_validity_and_messages_agree(self, validator, model):
        for value in ('', 'nope', 'someone@example.com'):
            validator.set_value('email', value)
            valid = validator.validate('email').result()

            field = validator.field('email')
            assert field.is_valid is valid
            assert field.is_invalid is not valid
            assert (field.messages == []) is valid

    def test_messages_in_rule_order(self, validator):
        validator.validate('email')

        assert validator.field('email').messages == ['Required field', 'Wrong email format.']

    def test_callback_receives_result(self, validator):
        results = []

        validator.validate('name', results.append)
        validator.validate_all(results.append)

        assert results == [False, False]

    def test_validate_all(self, validator):
        assert validator.validate_all().result() is False
        assert validator.has_invalid_fields is True

        validator.set_value('name', 'n')
        validator.set_value('email', 'someone@example.com')

        assert validator.validate_all().result() is True
        assert validator.has_invalid_fields is False

    def test_unknown_field(self, validator):
        with pytest.raises(UnknownFieldError):
            validator.validate('missing')

    def test_set_invalid(self, validator, model):
        validator.set_invalid('name')
        validator.set_invalid('name', 'Taken')

        assert model.get('name.is_invalid') is True
        assert validator.field('name').messages == [DEFAULT_MESSAGE, 'Taken']
        assert validator.has_invalid_fields is True
        assert validator.group_is_valid('default') is False

    def test_options_messages(self, model):
        validator = Validator(model, fields={'name': REQUIRED}, options={'messages': {'required': 'Needed'}})

        validator.validate('name')

        assert validator.field('name').messages == ['Needed']

    def test_regular_expression_and_callable_rules(self, model):
        validator = Validator(model, fields={
            'code': {'default': 'ab', 'validations': [
                {'rule': re.compile(r'^[a-z]+$'), 'message': 'Letters'},
                {'rule': lambda value, settle: settle(len(value) > 2), 'message': 'Too short'},
            ]},
        })

        assert validator.validate('code').result() is False
        assert validator.field('code').messages == ['Too short']

    def test_field_handle_validate(self, validator):
        validator.fields.name.set('n')

        assert validator.fields.name.validate().result() is True


class TestStaleness:
    """Superseded rounds leave no trace."""

    def test_second_round_wins(self, model, deferred):
        validator = Validator(
            model,
            fields={'name': {'validations': [{'rule': 'unique', 'message': 'Taken'}]}},
            options={'rules': {'unique': deferred}},
        )

        first = validator.validate('name')
        second = validator.validate('name')
        deferred.settle(0, False)

        assert validator.field('name').messages == []
        assert validator.field('name').is_invalid is False
        assert validator.field('name').is_validating is True

        deferred.settle(1, True)

        assert first.result() is False
        assert second.result() is True
        assert validator.field('name').messages == []
        assert validator.field('name').is_validating is False

    def test_validate_all_completes_when_a_field_is_revalidated(self, model, deferred):
        validator = Validator(model, fields={'name': {'validations': [{'rule': deferred}]}})

        everything = validator.validate_all()
        latest = validator.validate('name')
        deferred.settle(0, True)

        assert everything.done()
        assert everything.result() is False
        assert validator.field('name').is_validating is True

        deferred.settle(1, True)
        assert latest.result() is True
        assert validator.field('name').is_valid is True

    def test_reset_supersedes_in_flight_round(self, model, deferred):
        validator = Validator(
            model,
            fields={'name': {'validations': [{'rule': deferred}]}},
        )

        pending = validator.validate('name')
        validator.reset()
        deferred.settle(0, False)

        assert pending.result() is False
        assert model.get('name.is_invalid') is False
        assert model.get('name.messages') == []
        assert model.get('name.serial') == 2


class TestGroups:
    """Group validity through the facade."""

    @pytest.fixture
    def validator(self, model):
        return Validator(model, fields={
            'a': {'group': 'A', 'validations': [{'rule': 'required'}]},
            'b': {'group': 'A', 'validations': [{'rule': 'required'}]},
            'c': {'group': 'B', 'validations': [{'rule': 'required'}]},
        })

    def test_groups_follow_member_validity(self, validator, model):
        assert model.get('groups.A.is_valid') is False
        assert model.get('groups.B.is_valid') is False

        validator.validate_all()
        assert model.get('groups.A.is_valid') is False
        assert model.get('groups.B.is_valid') is False

        validator.set_value('a', 'x')
        validator.validate('a')
        assert model.get('groups.A.is_valid') is False

        validator.set_value('b', 'x')
        validator.validate('b')
        assert model.get('groups.A.is_valid') is True
        assert model.get('groups.B.is_valid') is False

    def test_invalid_group_name(self, model):
        with pytest.raises(ConfigurationError):
            Validator(model, fields={'a': {'group': 'a.b'}})


class TestChanges:
    """Change flags react to store mutations."""

    @pytest.fixture
    def validator(self, model):
        return Validator(model, 'items.1', {'name': REQUIRED, 'tags': {'default': ['a']}})

    def test_store_writes_update_flags(self, validator, model):
        model.set('name.value', 'other')

        assert model.get('name.has_changed') is True
        assert model.get('has_changed_fields') is True
        assert validator.changed_fields == {'name'}

        model.set('name.value', 'first')

        assert model.get('name.has_changed') is False
        assert validator.has_changed_fields is False

    def test_list_values(self, validator, model):
        model.push('tags.value', 'b')

        assert model.get('tags.has_changed') is True

    def test_replacing_a_whole_field_state(self, validator, model):
        model.set('email', {'value': 'new@example.com'})

        assert validator.changed_fields == {'email'}

    def test_close_stops_tracking(self, validator, model):
        validator.close()
        model.set('name.value', 'other')

        assert model.get('name.has_changed') is False


class TestReset:
    """reset() restores the baseline."""

    def test_reset_restores_values_and_clears_flags(self, model, store):
        validator = Validator(model, 'items.1', {'name': REQUIRED, 'tags': {'default': ['a']}})
        validator.set_value('name', '')
        validator.set_value('email', 'changed')
        model.push('tags.value', 'b')
        validator.validate_all()

        validator.reset()

        assert validator.get_values() == {'name': 'first', 'tags': ['a'], 'id': '1', 'email': 'first@example.com'}
        assert validator.changed_fields == set()
        assert validator.has_changed_fields is False
        assert validator.has_invalid_fields is False
        assert model.get('name.is_invalid') is False

    def test_reset_reads_a_fresh_origin(self, model, store):
        validator = Validator(model, 'items.1', {'name': REQUIRED})
        store.set('items.1.name', 'renamed')
        store.set('items.1.extra', True)

        validator.reset()

        assert validator.get_value('name') == 'renamed'
        assert validator.get_value('extra') is True
        assert validator.has_changed_fields is False

    def test_reset_drops_vanished_implicit_fields(self, model, store):
        validator = Validator(model, 'items.1', {'name': {}})
        store.delete('items.1.email')

        validator.reset()

        assert 'email' not in validator.get_values()
        assert model.get('email') is None


class TestCommit:
    """commit() writes back to the origin."""

    def test_without_origin(self, model):
        validator = Validator(model, fields=['a'])
        results = []

        assert validator.commit(callback=results.append).result() is False
        assert results == [False]

    def test_update_existing_entity(self, model, store):
        validator = Validator(model, 'items.1', {'name': REQUIRED})
        validator.set_value('name', 'second')

        assert validator.commit().result() is True
        assert store.get('items.1') == {'id': '1', 'name': 'second', 'email': 'first@example.com'}

    def test_invalid_values_are_not_committed(self, model, store):
        validator = Validator(model, 'items.1', {'name': REQUIRED})
        validator.set_value('name', '')

        assert validator.commit().result() is False
        assert store.get('items.1.name') == 'first'

    def test_force_commits_invalid_values(self, model, store):
        validator = Validator(model, 'items.1', {'name': REQUIRED})
        validator.set_value('name', '')

        assert validator.commit(True).result() is True
        assert store.get('items.1.name') == ''

    def test_waits_for_deferred_rules(self, model, store, deferred):
        validator = Validator(model, 'items.1', {'name': {'validations': [{'rule': deferred}]}})
        validator.set_value('name', 'second')

        pending = validator.commit()
        assert not pending.done()
        assert store.get('items.1.name') == 'first'

        deferred.settle(0, True)
        assert pending.result() is True
        assert store.get('items.1.name') == 'second'

    def test_creates_entity_under_reserved_id(self, model, store):
        validator = Validator(model, 'items', {'name': {'default': 'new'}})
        reserved = validator.reserved_id

        assert validator.commit().result() is True
        assert store.get(f'items.{reserved}') == {'name': 'new', 'id': reserved}

        validator.set_value('name', 'renamed')
        assert validator.commit().result() is True
        assert store.get(f'items.{reserved}.name') == 'renamed'

    def test_creation_conflict_is_reported(self, model):
        store = model.scope('')
        store.set('things.t1', {'name': 'exists without id'})
        validator = Validator(model, 'things.t1', {'name': {}})
        validator.set_value('name', 'other')

        assert validator.commit().result() is False
        assert store.get('things.t1') == {'name': 'exists without id'}
