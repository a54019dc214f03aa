"""
Unit tests for ledger/keys.py.

Covers ED25519 key parsing (raw and DER hex), signing and the single and
threshold authorization policies.
"""

import unittest
import pytest
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from ledger.keys import (
    ED25519_PRIVATE_DER_PREFIX,
    ED25519_PUBLIC_DER_PREFIX,
    PrivateKey,
    PublicKey,
    SingleKey,
    ThresholdKey,
    as_policy,
)
from utils.custom_exceptions import ConfigurationError, PolicyViolation

# RFC 8032 test vector 1
RFC_PRIVATE = "9d61b19deffd5a60ba844af492ec2cc44449c5697b326919703bac031cae7f60"
RFC_PUBLIC = "d75a980182b10ab7d54bfed3c964073a0ee172f3daa62325af021a68f707511a"


class TestPrivateKey(unittest.TestCase):
    """Test cases for PrivateKey parsing and signing."""

    def test_from_raw_hex(self):
        key = PrivateKey.from_string(RFC_PRIVATE)
        self.assertEqual(key.public_key.to_string(), RFC_PUBLIC)
        self.assertEqual(key.to_string(), RFC_PRIVATE)

    def test_from_der_hex(self):
        key = PrivateKey.from_string(ED25519_PRIVATE_DER_PREFIX + RFC_PRIVATE)
        self.assertEqual(key.public_key.to_string(), RFC_PUBLIC)

    def test_from_string_accepts_0x_and_uppercase(self):
        key = PrivateKey.from_string("0x" + RFC_PRIVATE.upper())
        self.assertEqual(key.public_key.to_string(), RFC_PUBLIC)

    def test_invalid_hex_raises_configuration_error(self):
        with self.assertRaises(ConfigurationError):
            PrivateKey.from_string("not-a-key")

    def test_wrong_length_raises_configuration_error(self):
        with self.assertRaises(ConfigurationError):
            PrivateKey.from_string("abcd")

    def test_empty_raises_configuration_error(self):
        with self.assertRaises(ConfigurationError):
            PrivateKey.from_string("   ")

    def test_sign_and_verify(self):
        key = PrivateKey.generate()
        signature = key.sign(b"payload")
        self.assertTrue(key.public_key.verify(signature, b"payload"))
        self.assertFalse(key.public_key.verify(signature, b"tampered"))

    def test_repr_hides_private_material(self):
        key = PrivateKey.from_string(RFC_PRIVATE)
        self.assertNotIn(RFC_PRIVATE, repr(key))


class TestPublicKey(unittest.TestCase):
    """Test cases for PublicKey equality and encoding."""

    def test_raw_and_der_parse_to_same_key(self):
        raw = PublicKey.from_string(RFC_PUBLIC)
        der = PublicKey.from_string(ED25519_PUBLIC_DER_PREFIX + RFC_PUBLIC)
        self.assertEqual(raw, der)
        self.assertEqual(hash(raw), hash(der))
        self.assertEqual(der.to_string_der(), ED25519_PUBLIC_DER_PREFIX + RFC_PUBLIC)

    def test_malformed_public_key(self):
        with self.assertRaises(ConfigurationError):
            PublicKey.from_string("zz")


class TestKeyPolicies(unittest.TestCase):
    """Test cases for SingleKey and ThresholdKey."""

    def setUp(self):
        self.keys = [PrivateKey.generate().public_key for _ in range(3)]

    def test_single_key(self):
        policy = SingleKey(self.keys[0])
        self.assertTrue(policy.satisfied_by([self.keys[0]]))
        self.assertFalse(policy.satisfied_by([self.keys[1]]))
        self.assertFalse(policy.satisfied_by([]))

    def test_threshold_needs_k_distinct_members(self):
        policy = ThresholdKey(2, self.keys)
        self.assertFalse(policy.satisfied_by([self.keys[0]]))
        self.assertFalse(policy.satisfied_by([self.keys[0], self.keys[0]]))
        self.assertTrue(policy.satisfied_by([self.keys[0], self.keys[2]]))
        self.assertTrue(policy.satisfied_by(self.keys))

    def test_threshold_ignores_outsiders(self):
        outsider = PrivateKey.generate().public_key
        policy = ThresholdKey(2, self.keys[:2])
        self.assertFalse(policy.satisfied_by([self.keys[0], outsider]))

    def test_threshold_bounds(self):
        for threshold in (0, 4, -1):
            with self.subTest(threshold=threshold):
                with self.assertRaises(PolicyViolation):
                    ThresholdKey(threshold, self.keys)

    def test_threshold_rejects_duplicate_members(self):
        with self.assertRaises(PolicyViolation):
            ThresholdKey(1, [self.keys[0], self.keys[0]])

    def test_nested_threshold(self):
        inner = ThresholdKey(2, self.keys[:2])
        outer = ThresholdKey(1, [inner, self.keys[2]])
        self.assertTrue(outer.satisfied_by([self.keys[2]]))
        self.assertTrue(outer.satisfied_by(self.keys[:2]))
        self.assertFalse(outer.satisfied_by([self.keys[0]]))
        self.assertEqual(outer.public_keys(), self.keys)

    def test_to_dict(self):
        policy = ThresholdKey(1, self.keys[:2])
        data = policy.to_dict()
        self.assertEqual(data["threshold"], 1)
        self.assertEqual(data["keys"][0], {"ed25519": self.keys[0].to_string()})

    def test_as_policy(self):
        private = PrivateKey.generate()
        self.assertEqual(as_policy(private), SingleKey(private.public_key))
        self.assertEqual(as_policy(private.public_key), SingleKey(private.public_key))
        policy = ThresholdKey(1, self.keys)
        self.assertIs(as_policy(policy), policy)
        with pytest.raises(TypeError):
            as_policy("0.0.1001")


if __name__ == '__main__':
    unittest.main()
