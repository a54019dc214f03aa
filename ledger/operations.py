"""
Pending ledger operations.

Every operation walks the same state machine::

    BUILT -> FROZEN -> SIGNED(n/required) -> SUBMITTED -> ACCEPTED | REJECTED

Freezing fixes the transaction id and the canonical body bytes that signatures
cover; no signature can be attached before that.
"""
import json
from collections import defaultdict
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Union

from ledger.keys import KeyPolicy, PrivateKey, PublicKey
from ledger.models import AccountId, Receipt, SupplyType, TokenId, TopicId, TransactionId
from utils.custom_exceptions import PolicyViolation, PreconditionError


DEFAULT_VALID_DURATION = 120
MAX_TOKEN_NAME_BYTES = 100
MAX_TOKEN_DECIMALS = 18


class OperationState(str, Enum):
    BUILT = "BUILT"
    FROZEN = "FROZEN"
    SIGNED = "SIGNED"
    SUBMITTED = "SUBMITTED"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"


TERMINAL_STATES = (OperationState.SUBMITTED, OperationState.ACCEPTED, OperationState.REJECTED)


class PendingOperation:
    """Base class for an assembled, possibly partially signed request."""

    kind = "operation"

    def __init__(self, memo: str = "", valid_duration: int = DEFAULT_VALID_DURATION):
        self.memo = memo
        self.valid_duration = valid_duration
        self.state = OperationState.BUILT
        self.transaction_id: Optional[TransactionId] = None
        self.required_policies: List[KeyPolicy] = []
        self.receipt: Optional[Receipt] = None
        self._signatures: Dict[PublicKey, bytes] = {}
        self._body_bytes: Optional[bytes] = None

    # -- construction -------------------------------------------------------

    def validate(self) -> None:
        """Local rule checks; subclasses raise PolicyViolation."""

    def body_fields(self) -> Dict[str, Any]:
        raise NotImplementedError

    def body(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "transaction_id": str(self.transaction_id) if self.transaction_id else None,
            "memo": self.memo,
            "valid_duration": self.valid_duration,
            **self.body_fields(),
        }

    def _require_state(self, *states: OperationState, action: str) -> None:
        if self.state not in states:
            raise PreconditionError(
                f"Cannot {action} a {self.kind} operation in state {self.state.value}",
                resource=self.kind, state=self.state.value,
            )

    def _require_mutable(self) -> None:
        self._require_state(OperationState.BUILT, action="modify")

    def freeze(self, transaction_id: TransactionId,
               required_policies: Iterable[KeyPolicy] = ()) -> "PendingOperation":
        """Validate, fix the transaction id and produce the bytes to sign."""
        self._require_state(OperationState.BUILT, action="freeze")
        self.validate()
        self.transaction_id = transaction_id
        self.required_policies = list(required_policies)
        self._body_bytes = json.dumps(self.body(), sort_keys=True, separators=(",", ":")).encode("utf-8")
        self.state = OperationState.FROZEN
        return self

    @property
    def body_bytes(self) -> bytes:
        if self._body_bytes is None:
            raise PreconditionError(f"{self.kind} operation is not frozen", resource=self.kind)
        return self._body_bytes

    # -- signing ------------------------------------------------------------

    def sign(self, private_key: PrivateKey) -> "PendingOperation":
        """Attach a signature; a no-op once every required policy is satisfied."""
        if self.state == OperationState.BUILT:
            raise PreconditionError(
                f"{self.kind} operation must be frozen before it is signed", resource=self.kind
            )
        self._require_state(OperationState.FROZEN, OperationState.SIGNED, action="sign")
        if self.required_policies and self.is_fully_signed:
            return self
        if private_key.public_key not in self._signatures:
            self._signatures[private_key.public_key] = private_key.sign(self.body_bytes)
            self.state = OperationState.SIGNED
        return self

    @property
    def signatures(self) -> Dict[PublicKey, bytes]:
        return dict(self._signatures)

    @property
    def signers(self) -> List[PublicKey]:
        return list(self._signatures)

    def missing_policies(self) -> List[KeyPolicy]:
        signers = set(self._signatures)
        return [policy for policy in self.required_policies if not policy.satisfied_by(signers)]

    @property
    def is_fully_signed(self) -> bool:
        return not self.missing_policies()

    @property
    def progress(self) -> str:
        """``n/required`` where n counts satisfied policies."""
        required = len(self.required_policies)
        return f"{required - len(self.missing_policies())}/{required}"

    # -- lifecycle ----------------------------------------------------------

    def mark_submitted(self) -> None:
        self._require_state(OperationState.FROZEN, OperationState.SIGNED, action="submit")
        self.state = OperationState.SUBMITTED

    def record_outcome(self, receipt: Receipt) -> None:
        self._require_state(OperationState.SUBMITTED, action="record the outcome of")
        self.receipt = receipt
        self.state = OperationState.ACCEPTED if receipt.ok else OperationState.REJECTED

    def __repr__(self):
        return f"<{type(self).__name__} {self.state.value} tx={self.transaction_id}>"


class TransferOperation(PendingOperation):
    """Multi-party hbar and token balance adjustment."""

    kind = "transfer"

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.hbar_transfers: Dict[AccountId, int] = defaultdict(int)
        self.token_transfers: Dict[TokenId, Dict[AccountId, int]] = defaultdict(lambda: defaultdict(int))

    def add_hbar_transfer(self, account_id: AccountId, tinybars: int) -> "TransferOperation":
        self._require_mutable()
        self.hbar_transfers[account_id] += int(tinybars)
        return self

    def add_token_transfer(self, token_id: TokenId, account_id: AccountId, amount: int) -> "TransferOperation":
        self._require_mutable()
        self.token_transfers[token_id][account_id] += int(amount)
        return self

    def debited_accounts(self) -> List[AccountId]:
        debited = [acc for acc, amount in self.hbar_transfers.items() if amount < 0]
        for adjustments in self.token_transfers.values():
            debited.extend(acc for acc, amount in adjustments.items() if amount < 0)
        return list(dict.fromkeys(debited))

    def validate(self) -> None:
        if not any(self.hbar_transfers.values()) and not any(
            amount for adjustments in self.token_transfers.values() for amount in adjustments.values()
        ):
            raise PolicyViolation("Transfer has no balance adjustments",
                                  operation=self.kind, rule="non_empty")
        hbar_sum = sum(self.hbar_transfers.values())
        if hbar_sum != 0:
            raise PolicyViolation(f"Hbar transfers sum to {hbar_sum}, expected 0",
                                  operation=self.kind, rule="zero_sum", asset="hbar")
        for token_id, adjustments in self.token_transfers.items():
            token_sum = sum(adjustments.values())
            if token_sum != 0:
                raise PolicyViolation(f"Transfers of token {token_id} sum to {token_sum}, expected 0",
                                      operation=self.kind, rule="zero_sum", asset=str(token_id))

    def body_fields(self) -> Dict[str, Any]:
        return {
            "hbar_transfers": {str(acc): amount for acc, amount in self.hbar_transfers.items() if amount},
            "token_transfers": {
                str(token_id): {str(acc): amount for acc, amount in adjustments.items() if amount}
                for token_id, adjustments in self.token_transfers.items()
            },
        }


class TokenCreateOperation(PendingOperation):
    """Create a fungible token; without a supply key the supply is fixed."""

    kind = "token_create"

    def __init__(self, name: str, symbol: str, decimals: int, initial_supply: int,
                 treasury_account_id: AccountId, admin_key: Optional[KeyPolicy] = None,
                 supply_key: Optional[KeyPolicy] = None,
                 supply_type: Optional[SupplyType] = None, max_supply: int = 0, **kwargs):
        super().__init__(**kwargs)
        self.name = name
        self.symbol = symbol
        self.decimals = int(decimals)
        self.initial_supply = int(initial_supply)
        self.treasury_account_id = treasury_account_id
        self.admin_key = admin_key
        self.supply_key = supply_key
        if supply_type is None:
            supply_type = SupplyType.INFINITE if supply_key is not None else SupplyType.FINITE
        self.supply_type = supply_type
        if supply_type == SupplyType.FINITE and not max_supply:
            max_supply = self.initial_supply
        self.max_supply = int(max_supply)

    @property
    def fixed_supply(self) -> bool:
        return self.supply_key is None

    def validate(self) -> None:
        if not self.name or len(self.name.encode("utf-8")) > MAX_TOKEN_NAME_BYTES:
            raise PolicyViolation("Token name must be 1-100 bytes", operation=self.kind, rule="name")
        if not self.symbol:
            raise PolicyViolation("Token symbol cannot be empty", operation=self.kind, rule="symbol")
        if not 0 <= self.decimals <= MAX_TOKEN_DECIMALS:
            raise PolicyViolation(f"Decimals must be between 0 and {MAX_TOKEN_DECIMALS}",
                                  operation=self.kind, rule="decimals")
        if self.initial_supply < 0:
            raise PolicyViolation("Initial supply cannot be negative", operation=self.kind,
                                  rule="initial_supply")
        if self.supply_type == SupplyType.FINITE:
            if self.max_supply <= 0:
                raise PolicyViolation("A finite supply token needs a positive max supply",
                                      operation=self.kind, rule="max_supply")
            if self.initial_supply > self.max_supply:
                raise PolicyViolation("Initial supply exceeds max supply",
                                      operation=self.kind, rule="max_supply")

    def body_fields(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "symbol": self.symbol,
            "decimals": self.decimals,
            "initial_supply": self.initial_supply,
            "treasury": str(self.treasury_account_id),
            "admin_key": self.admin_key.to_dict() if self.admin_key else None,
            "supply_key": self.supply_key.to_dict() if self.supply_key else None,
            "supply_type": self.supply_type.value,
            "max_supply": self.max_supply,
        }


class TokenMintOperation(PendingOperation):

    kind = "token_mint"

    def __init__(self, token_id: TokenId, amount: int, **kwargs):
        super().__init__(**kwargs)
        self.token_id = token_id
        self.amount = int(amount)

    def validate(self) -> None:
        if self.amount <= 0:
            raise PolicyViolation("Mint amount must be positive", operation=self.kind, rule="amount")

    def body_fields(self) -> Dict[str, Any]:
        return {"token_id": str(self.token_id), "amount": self.amount}


class TokenBurnOperation(TokenMintOperation):

    kind = "token_burn"

    def validate(self) -> None:
        if self.amount <= 0:
            raise PolicyViolation("Burn amount must be positive", operation=self.kind, rule="amount")


class TokenAssociateOperation(PendingOperation):
    """Bind an account to token types before it may hold them."""

    kind = "token_associate"

    def __init__(self, account_id: AccountId, token_ids: Iterable[TokenId], **kwargs):
        super().__init__(**kwargs)
        self.account_id = account_id
        self.token_ids = list(token_ids)

    def validate(self) -> None:
        if not self.token_ids:
            raise PolicyViolation("Association needs at least one token", operation=self.kind,
                                  rule="non_empty")
        if len(set(self.token_ids)) != len(self.token_ids):
            raise PolicyViolation("Association lists a token twice", operation=self.kind,
                                  rule="distinct_tokens")

    def body_fields(self) -> Dict[str, Any]:
        return {"account_id": str(self.account_id), "token_ids": [str(t) for t in self.token_ids]}


class TopicCreateOperation(PendingOperation):

    kind = "topic_create"

    def __init__(self, topic_memo: str = "", submit_key: Optional[KeyPolicy] = None,
                 admin_key: Optional[KeyPolicy] = None, **kwargs):
        super().__init__(**kwargs)
        self.topic_memo = topic_memo
        self.submit_key = submit_key
        self.admin_key = admin_key

    def validate(self) -> None:
        if len(self.topic_memo.encode("utf-8")) > MAX_TOKEN_NAME_BYTES:
            raise PolicyViolation("Topic memo must be at most 100 bytes", operation=self.kind,
                                  rule="memo")

    def body_fields(self) -> Dict[str, Any]:
        return {
            "topic_memo": self.topic_memo,
            "submit_key": self.submit_key.to_dict() if self.submit_key else None,
            "admin_key": self.admin_key.to_dict() if self.admin_key else None,
        }


class TopicMessageSubmitOperation(PendingOperation):

    kind = "topic_message_submit"

    def __init__(self, topic_id: TopicId, message: Union[str, bytes], max_message_bytes: int = 1024,
                 **kwargs):
        super().__init__(**kwargs)
        self.topic_id = topic_id
        self.contents = message.encode("utf-8") if isinstance(message, str) else bytes(message)
        self.max_message_bytes = max_message_bytes

    def validate(self) -> None:
        if not self.contents:
            raise PolicyViolation("Topic message cannot be empty", operation=self.kind, rule="non_empty")
        if len(self.contents) > self.max_message_bytes:
            raise PolicyViolation(
                f"Topic message is {len(self.contents)} bytes, limit is {self.max_message_bytes}",
                operation=self.kind, rule="max_message_bytes",
            )

    def body_fields(self) -> Dict[str, Any]:
        return {"topic_id": str(self.topic_id), "message": self.contents.hex()}
