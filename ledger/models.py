"""Ledger data model: entity ids, participants, receipts and query results."""
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, Optional

from ledger.keys import KeyPolicy, PrivateKey, PublicKey, SingleKey
from utils.custom_exceptions import ConfigurationError, NetworkRejection


TINYBARS_PER_HBAR = 100_000_000

_valid_start_lock = threading.Lock()
_last_valid_start_ns = 0


def hbar_to_tinybars(hbars) -> int:
    return int(round(hbars * TINYBARS_PER_HBAR))


def tinybars_to_hbar(tinybars: int) -> float:
    return tinybars / TINYBARS_PER_HBAR


@dataclass(frozen=True, order=True)
class EntityId:
    """``shard.realm.num`` identifier."""
    shard: int
    realm: int
    num: int

    @classmethod
    def from_string(cls, value: str):
        parts = str(value).strip().split(".")
        if len(parts) != 3 or not all(p.isdigit() for p in parts):
            raise ConfigurationError(f"Malformed {cls.__name__} '{value}', expected shard.realm.num")
        return cls(*(int(p) for p in parts))

    def __str__(self):
        return f"{self.shard}.{self.realm}.{self.num}"


class AccountId(EntityId):
    pass


class TokenId(EntityId):
    pass


class TopicId(EntityId):
    pass


class Status(str, Enum):
    """Network response codes."""
    SUCCESS = "SUCCESS"
    INVALID_SIGNATURE = "INVALID_SIGNATURE"
    INVALID_TRANSACTION_BODY = "INVALID_TRANSACTION_BODY"
    DUPLICATE_TRANSACTION = "DUPLICATE_TRANSACTION"
    TRANSACTION_EXPIRED = "TRANSACTION_EXPIRED"
    PAYER_ACCOUNT_NOT_FOUND = "PAYER_ACCOUNT_NOT_FOUND"
    INSUFFICIENT_PAYER_BALANCE = "INSUFFICIENT_PAYER_BALANCE"
    INSUFFICIENT_ACCOUNT_BALANCE = "INSUFFICIENT_ACCOUNT_BALANCE"
    INVALID_ACCOUNT_ID = "INVALID_ACCOUNT_ID"
    INVALID_ACCOUNT_AMOUNTS = "INVALID_ACCOUNT_AMOUNTS"
    INVALID_TOKEN_ID = "INVALID_TOKEN_ID"
    INVALID_TOPIC_ID = "INVALID_TOPIC_ID"
    INVALID_TREASURY_ACCOUNT_FOR_TOKEN = "INVALID_TREASURY_ACCOUNT_FOR_TOKEN"
    TRANSFERS_NOT_ZERO_SUM_FOR_TOKEN = "TRANSFERS_NOT_ZERO_SUM_FOR_TOKEN"
    INSUFFICIENT_TOKEN_BALANCE = "INSUFFICIENT_TOKEN_BALANCE"
    TOKEN_NOT_ASSOCIATED_TO_ACCOUNT = "TOKEN_NOT_ASSOCIATED_TO_ACCOUNT"
    TOKEN_ALREADY_ASSOCIATED_TO_ACCOUNT = "TOKEN_ALREADY_ASSOCIATED_TO_ACCOUNT"
    TOKEN_HAS_NO_SUPPLY_KEY = "TOKEN_HAS_NO_SUPPLY_KEY"
    TOKEN_MAX_SUPPLY_REACHED = "TOKEN_MAX_SUPPLY_REACHED"
    INVALID_TOKEN_MINT_AMOUNT = "INVALID_TOKEN_MINT_AMOUNT"
    INVALID_TOKEN_BURN_AMOUNT = "INVALID_TOKEN_BURN_AMOUNT"
    MESSAGE_SIZE_TOO_LARGE = "MESSAGE_SIZE_TOO_LARGE"

    def __str__(self):
        return self.value


class SupplyType(str, Enum):
    INFINITE = "INFINITE"
    FINITE = "FINITE"


@dataclass(frozen=True)
class TransactionId:
    """Payer account plus valid-start time; unique per submitted operation."""
    account_id: AccountId
    valid_start_ns: int

    @classmethod
    def generate(cls, account_id: AccountId) -> "TransactionId":
        global _last_valid_start_ns
        with _valid_start_lock:
            # strictly increasing so two ids never share a valid start
            _last_valid_start_ns = max(time.time_ns(), _last_valid_start_ns + 1)
            return cls(account_id, _last_valid_start_ns)

    def __str__(self):
        seconds, nanos = divmod(self.valid_start_ns, 1_000_000_000)
        return f"{self.account_id}@{seconds}.{nanos:09d}"


@dataclass(frozen=True)
class Participant:
    """A named test account and its credentials."""
    name: str
    account_id: AccountId
    private_key: PrivateKey = field(repr=False, compare=False)

    @property
    def public_key(self) -> PublicKey:
        return self.private_key.public_key

    @property
    def key_policy(self) -> SingleKey:
        return SingleKey(self.public_key)


@dataclass
class Receipt:
    """Final outcome of a submitted operation."""
    status: Status
    transaction_id: Optional[TransactionId] = None
    account_id: Optional[AccountId] = None
    token_id: Optional[TokenId] = None
    topic_id: Optional[TopicId] = None
    topic_sequence_number: Optional[int] = None
    total_supply: Optional[int] = None
    transaction_fee: int = 0

    @property
    def ok(self) -> bool:
        return self.status == Status.SUCCESS

    def raise_for_status(self) -> "Receipt":
        """Raise NetworkRejection for any non-success status."""
        if not self.ok:
            raise NetworkRejection(
                f"Transaction {self.transaction_id} rejected with {self.status}",
                status=str(self.status),
                transaction_id=str(self.transaction_id) if self.transaction_id else None,
            )
        return self


@dataclass
class TokenInfo:
    token_id: TokenId
    name: str
    symbol: str
    decimals: int
    total_supply: int
    treasury_account_id: AccountId
    admin_key: Optional[KeyPolicy] = None
    supply_key: Optional[KeyPolicy] = None
    supply_type: SupplyType = SupplyType.INFINITE
    max_supply: int = 0


@dataclass
class TokenRelationship:
    token_id: TokenId
    symbol: str
    balance: int
    decimals: int


@dataclass
class AccountInfo:
    account_id: AccountId
    key: KeyPolicy
    balance_tinybars: int
    token_relationships: Dict[TokenId, TokenRelationship] = field(default_factory=dict)


@dataclass
class AccountBalance:
    account_id: AccountId
    tinybars: int
    tokens: Dict[TokenId, int] = field(default_factory=dict)

    @property
    def hbars(self) -> float:
        return tinybars_to_hbar(self.tinybars)


@dataclass
class TopicInfo:
    topic_id: TopicId
    memo: str
    submit_key: Optional[KeyPolicy]
    sequence_number: int


@dataclass(frozen=True)
class TopicMessage:
    topic_id: TopicId
    sequence_number: int
    consensus_timestamp: datetime
    contents: bytes

    @property
    def text(self) -> str:
        return self.contents.decode("utf-8", errors="replace")
