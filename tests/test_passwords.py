"""
Tests for password hashing and the strength policy.

Uses cheap Argon2/bcrypt parameters; rehash tests compare policies that
differ only in their cost settings.
"""

import pytest

from cultureconnect.config import BaseConfig
from cultureconnect.security.passwords import PasswordPolicy

CHEAP_ARGON2 = dict(argon2_memory_cost=1024, argon2_time_cost=1, argon2_parallelism=1)


@pytest.fixture
def policy():
    return PasswordPolicy(
        bcrypt_rounds=4,
        denylist=BaseConfig.PASSWORD_DENYLIST,
        **CHEAP_ARGON2,
    )


@pytest.fixture
def bcrypt_policy():
    return PasswordPolicy(scheme='bcrypt', bcrypt_rounds=4, **CHEAP_ARGON2)


class TestStrengthRules:

    @pytest.mark.parametrize('password, expected', [
        ('short1!', 'Password must be at least 12 characters'),
        ('alllowercase123!', 'Password must contain an uppercase letter'),
        ('NoDigitsHere!', 'Password must contain a number'),
        ('NoSymbolsHere1', 'Password must contain a special character'),
        ('password123!', 'Password is too common'),
    ])
    def test_weak_passwords_rejected(self, policy, password, expected):
        assert expected in policy.validate(password)

    def test_strong_password_accepted(self, policy):
        assert policy.validate('Str0ng&Secure!') == []

    def test_all_violations_reported_in_order(self, policy):
        assert policy.validate('abc') == [
            'Password must be at least 12 characters',
            'Password must contain an uppercase letter',
            'Password must contain a number',
            'Password must contain a special character',
        ]

    def test_denylist_is_case_insensitive(self, policy):
        assert 'Password is too common' in policy.validate('PASSWORD123!')

    @pytest.mark.parametrize('value', [None, 12345])
    def test_non_string_reports_every_rule(self, policy, value):
        errors = policy.validate(value)
        assert errors[0] == 'Password must be at least 12 characters'
        assert len(errors) == 5


class TestHashing:

    def test_argon2id_round_trip(self, policy):
        password_hash = policy.hash('Str0ng&Secure!')
        assert password_hash.startswith('$argon2id$')
        assert policy.verify('Str0ng&Secure!', password_hash) is True
        assert policy.verify('Str0ng&Secure?', password_hash) is False

    def test_bcrypt_round_trip(self, bcrypt_policy):
        password_hash = bcrypt_policy.hash('Str0ng&Secure!')
        assert password_hash.startswith('$2b$04$')
        assert bcrypt_policy.verify('Str0ng&Secure!', password_hash) is True
        assert bcrypt_policy.verify('wrong', password_hash) is False

    def test_hashes_are_salted(self, policy):
        assert policy.hash('Str0ng&Secure!') != policy.hash('Str0ng&Secure!')

    def test_verify_accepts_either_scheme(self, policy, bcrypt_policy):
        assert policy.verify('Str0ng&Secure!', bcrypt_policy.hash('Str0ng&Secure!')) is True
        assert bcrypt_policy.verify('Str0ng&Secure!', policy.hash('Str0ng&Secure!')) is True

    @pytest.mark.parametrize('bad_hash', ['', 'plaintext', '$argon2id$garbage', '$2b$04$short'])
    def test_malformed_hash_verifies_false(self, policy, bad_hash):
        assert policy.verify('Str0ng&Secure!', bad_hash) is False

    @pytest.mark.parametrize('plaintext, password_hash', [(None, None), ('x', 42), (None, '$2b$04$short')])
    def test_missing_values_verify_false(self, policy, plaintext, password_hash):
        assert policy.verify(plaintext, password_hash) is False

    def test_unknown_scheme_rejected(self):
        with pytest.raises(ValueError):
            PasswordPolicy(scheme='md5')


class TestNeedsRehash:

    def test_current_hash_is_fine(self, policy):
        assert policy.needs_rehash(policy.hash('Str0ng&Secure!')) is False

    def test_changed_argon2_parameters(self, policy):
        stronger = PasswordPolicy(argon2_memory_cost=2048, argon2_time_cost=1, argon2_parallelism=1)
        assert stronger.needs_rehash(policy.hash('Str0ng&Secure!')) is True

    def test_bcrypt_hash_under_argon2_policy(self, policy, bcrypt_policy):
        assert policy.needs_rehash(bcrypt_policy.hash('Str0ng&Secure!')) is True

    def test_bcrypt_cost_change(self, bcrypt_policy):
        stronger = PasswordPolicy(scheme='bcrypt', bcrypt_rounds=5)
        assert bcrypt_policy.needs_rehash(bcrypt_policy.hash('Str0ng&Secure!')) is False
        assert stronger.needs_rehash(bcrypt_policy.hash('Str0ng&Secure!')) is True

    def test_argon2_hash_under_bcrypt_policy(self, policy, bcrypt_policy):
        assert bcrypt_policy.needs_rehash(policy.hash('Str0ng&Secure!')) is True

    @pytest.mark.parametrize('password_hash', [None, '', 7])
    def test_missing_hash_needs_rehash(self, policy, bcrypt_policy, password_hash):
        assert policy.needs_rehash(password_hash) is True
        assert bcrypt_policy.needs_rehash(password_hash) is True

    def test_defaults_meet_minimums(self):
        defaults = PasswordPolicy()
        assert defaults.argon2.memory_cost >= 65536
        assert defaults.argon2.time_cost >= 4
        assert defaults.argon2.parallelism >= 3
        assert defaults.bcrypt_rounds >= 12


class TestRehashOnLogin:
    """Stale hashes are upgraded after a successful login."""

    def test_bcrypt_hash_upgraded_to_argon2(self, app, client, demo_user_id):
        from cultureconnect.auth.models import get_user_by_id, update_password_hash

        with app.app_context():
            legacy = PasswordPolicy(scheme='bcrypt', bcrypt_rounds=4).hash('Str0ng&Secure!')
            update_password_hash(demo_user_id, legacy)

        response = client.post('/login', data={'identifier': 'demo', 'password': 'Str0ng&Secure!'})
        assert response.status_code == 302

        with app.app_context():
            stored = get_user_by_id(demo_user_id)['password_hash']
        assert stored.startswith('$argon2id$')
