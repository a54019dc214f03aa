"""
ED25519 keys and the authorization policies built from them.

A policy is either a ``SingleKey`` or a ``ThresholdKey`` (k of n members, where
members may themselves be policies). Call sites only ever ask
``policy.satisfied_by(signers)``.
"""
from typing import Any, Dict, Iterable, List, Sequence, Union

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)

from utils.custom_exceptions import ConfigurationError, PolicyViolation


# DER prefixes used by ledger tooling when exporting ED25519 keys as hex
ED25519_PRIVATE_DER_PREFIX = "302e020100300506032b657004220420"
ED25519_PUBLIC_DER_PREFIX = "302a300506032b6570032100"


def _strip_hex(value: str) -> str:
    value = value.strip().lower()
    return value[2:] if value.startswith("0x") else value


class PublicKey:
    """ED25519 public key compared by its raw 32 bytes."""

    def __init__(self, key: Ed25519PublicKey):
        self._key = key
        self._raw = key.public_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PublicFormat.Raw,
        )

    @classmethod
    def from_string(cls, value: str) -> "PublicKey":
        text = _strip_hex(value)
        if text.startswith(ED25519_PUBLIC_DER_PREFIX):
            text = text[len(ED25519_PUBLIC_DER_PREFIX):]
        try:
            raw = bytes.fromhex(text)
            return cls(Ed25519PublicKey.from_public_bytes(raw))
        except ValueError as e:
            raise ConfigurationError(f"Malformed ED25519 public key: {e}")

    def verify(self, signature: bytes, data: bytes) -> bool:
        try:
            self._key.verify(signature, data)
        except InvalidSignature:
            return False
        return True

    def to_bytes(self) -> bytes:
        return self._raw

    def to_string(self) -> str:
        return self._raw.hex()

    def to_string_der(self) -> str:
        return ED25519_PUBLIC_DER_PREFIX + self._raw.hex()

    def __eq__(self, other):
        return isinstance(other, PublicKey) and other._raw == self._raw

    def __hash__(self):
        return hash(self._raw)

    def __repr__(self):
        return f"PublicKey({self.to_string()[:12]}...)"

    def __str__(self):
        return self.to_string_der()


class PrivateKey:
    """ED25519 private key."""

    def __init__(self, key: Ed25519PrivateKey):
        self._key = key
        self.public_key = PublicKey(key.public_key())

    @classmethod
    def generate(cls) -> "PrivateKey":
        return cls(Ed25519PrivateKey.generate())

    @classmethod
    def from_string(cls, value: str) -> "PrivateKey":
        """Parse raw 32-byte hex or DER-prefixed hex."""
        if not isinstance(value, str) or not value.strip():
            raise ConfigurationError("Private key must be a non-empty hex string")
        text = _strip_hex(value)
        if text.startswith(ED25519_PRIVATE_DER_PREFIX):
            text = text[len(ED25519_PRIVATE_DER_PREFIX):]
        try:
            raw = bytes.fromhex(text)
        except ValueError as e:
            raise ConfigurationError(f"Private key is not valid hex: {e}")
        if len(raw) != 32:
            raise ConfigurationError(f"ED25519 private key must be 32 bytes, got {len(raw)}")
        return cls(Ed25519PrivateKey.from_private_bytes(raw))

    def sign(self, data: bytes) -> bytes:
        return self._key.sign(data)

    def to_string(self) -> str:
        raw = self._key.private_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PrivateFormat.Raw,
            encryption_algorithm=serialization.NoEncryption(),
        )
        return raw.hex()

    def __repr__(self):
        # never print key material
        return f"PrivateKey(public={self.public_key!r})"


class KeyPolicy:
    """Authorization policy attached to accounts, tokens and topics."""

    def satisfied_by(self, signers: Iterable[PublicKey]) -> bool:
        raise NotImplementedError

    def public_keys(self) -> List[PublicKey]:
        """Every public key mentioned by the policy, in order."""
        raise NotImplementedError

    def to_dict(self) -> Dict[str, Any]:
        raise NotImplementedError


class SingleKey(KeyPolicy):

    def __init__(self, key: PublicKey):
        self.key = key

    def satisfied_by(self, signers: Iterable[PublicKey]) -> bool:
        return self.key in set(signers)

    def public_keys(self) -> List[PublicKey]:
        return [self.key]

    def to_dict(self) -> Dict[str, Any]:
        return {"ed25519": self.key.to_string()}

    def __eq__(self, other):
        return isinstance(other, SingleKey) and other.key == self.key

    def __hash__(self):
        return hash(self.key)

    def __repr__(self):
        return f"SingleKey({self.key!r})"


Member = Union[PublicKey, KeyPolicy]


class ThresholdKey(KeyPolicy):
    """Requires at least ``threshold`` of the ordered members to be satisfied."""

    def __init__(self, threshold: int, members: Sequence[Member]):
        members = [as_policy(m) for m in members]
        if len(set(members)) != len(members):
            raise PolicyViolation("Threshold key members must be distinct",
                                  operation="threshold_key", rule="distinct_members")
        if not 1 <= threshold <= len(members):
            raise PolicyViolation(
                f"Threshold must be between 1 and {len(members)}, got {threshold}",
                operation="threshold_key", rule="1 <= k <= members",
                threshold=threshold, members=len(members),
            )
        self.threshold = threshold
        self.members = tuple(members)

    def satisfied_by(self, signers: Iterable[PublicKey]) -> bool:
        signer_set = set(signers)
        satisfied = sum(1 for member in self.members if member.satisfied_by(signer_set))
        return satisfied >= self.threshold

    def public_keys(self) -> List[PublicKey]:
        keys: List[PublicKey] = []
        for member in self.members:
            keys.extend(member.public_keys())
        return keys

    def to_dict(self) -> Dict[str, Any]:
        return {"threshold": self.threshold, "keys": [m.to_dict() for m in self.members]}

    def __eq__(self, other):
        return (isinstance(other, ThresholdKey)
                and other.threshold == self.threshold
                and other.members == self.members)

    def __hash__(self):
        return hash((self.threshold, self.members))

    def __repr__(self):
        return f"ThresholdKey({self.threshold} of {len(self.members)})"


def as_policy(key: Any) -> KeyPolicy:
    """Accept a policy, a public key or a private key and return a policy."""
    if isinstance(key, KeyPolicy):
        return key
    if isinstance(key, PublicKey):
        return SingleKey(key)
    if isinstance(key, PrivateKey):
        return SingleKey(key.public_key)
    raise TypeError(f"Cannot build a key policy from {type(key).__name__}")
