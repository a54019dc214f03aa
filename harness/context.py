"""
Per-scenario state.

A ``ScenarioContext`` is created by the ``before_scenario`` hook, hung on the
behave context as ``context.ledger`` and closed in ``after_scenario``. Every
lookup of something an earlier step should have bound fails fast with
PreconditionError.
"""
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from harness.message_waiter import MessageWaiter
from ledger.client import LedgerClient, LedgerSession
from ledger.identity_store import IdentityStore
from ledger.keys import KeyPolicy, ThresholdKey
from ledger.local_network import TopicSubscription
from ledger.models import Participant, Receipt, TokenId, TopicId
from ledger.operations import PendingOperation
from utils.config_loader import LedgerConfig
from utils.custom_exceptions import PreconditionError
from utils.logger import harness_logger


@dataclass
class TokenHandle:
    token_id: TokenId
    name: str
    symbol: str
    decimals: int
    treasury: Participant
    admin_key: Optional[KeyPolicy] = None
    supply_key: Optional[KeyPolicy] = None

    @property
    def fixed_supply(self) -> bool:
        return self.supply_key is None


@dataclass
class TopicHandle:
    topic_id: TopicId
    memo: str
    submit_key: Optional[KeyPolicy] = None


@dataclass(frozen=True)
class BalanceSnapshot:
    """Balance of one participant at a point in the session's receipt history."""
    participant: Participant
    tinybars: int
    tokens: Dict[TokenId, int] = field(default_factory=dict)
    checkpoint: int = 0


def normalize_role(role: str) -> str:
    """'First Hedera account' -> 'first'."""
    words = str(role).lower().replace("hedera", " ").split()
    if words and words[-1] == "account":
        words = words[:-1]
    return " ".join(words)


class ScenarioContext:

    def __init__(self, identity_store: IdentityStore, client: LedgerClient,
                 config: Optional[LedgerConfig] = None, owns_client: bool = True):
        self.identity_store = identity_store
        self.client = client
        self.config = config or client.config
        self.owns_client = owns_client

        self.participants: Dict[str, Participant] = {}
        self.session: Optional[LedgerSession] = None
        self.token: Optional[TokenHandle] = None
        self.topic: Optional[TopicHandle] = None
        self.threshold_key: Optional[ThresholdKey] = None
        self.operation: Optional[PendingOperation] = None
        self.last_receipt: Optional[Receipt] = None
        self.last_error: Optional[Exception] = None
        self.snapshots: Dict[str, BalanceSnapshot] = {}
        self.subscriptions: List[TopicSubscription] = []
        self.message_waiter: Optional[MessageWaiter] = None

    # -- participants -------------------------------------------------------

    def bind(self, role: str) -> Participant:
        """Resolve ``role`` from configuration and bind it to this scenario."""
        key = normalize_role(role)
        if key not in self.participants:
            self.participants[key] = self.identity_store.resolve(key)
            harness_logger.debug(f"Bound {key} account to {self.participants[key].account_id}")
        return self.participants[key]

    def participant(self, role: str) -> Participant:
        key = normalize_role(role)
        if key not in self.participants:
            raise PreconditionError(
                f"The {key} account is not bound in this scenario; an earlier step must introduce it",
                role=key,
            )
        return self.participants[key]

    def role_of(self, participant: Participant) -> Optional[str]:
        for role, bound in self.participants.items():
            if bound == participant:
                return role
        return None

    def authenticate(self, role: str) -> LedgerSession:
        participant = self.participant(role)
        if self.session is None or self.session.operator != participant:
            previous = self.session
            self.session = self.client.authenticate(participant)
            if previous is not None:
                # snapshots hold checkpoints into the receipt history
                self.session.receipts = previous.receipts
        return self.session

    # -- bound resources ----------------------------------------------------

    def require_session(self) -> LedgerSession:
        if self.session is None:
            raise PreconditionError("No operator account has been set in this scenario",
                                    resource="session")
        return self.session

    def require_token(self) -> TokenHandle:
        if self.token is None:
            raise PreconditionError("No token has been created in this scenario", resource="token")
        return self.token

    def require_topic(self) -> TopicHandle:
        if self.topic is None:
            raise PreconditionError("No topic has been created in this scenario", resource="topic")
        return self.topic

    def require_threshold_key(self) -> ThresholdKey:
        if self.threshold_key is None:
            raise PreconditionError("No threshold key has been built in this scenario",
                                    resource="threshold_key")
        return self.threshold_key

    def require_operation(self) -> PendingOperation:
        if self.operation is None:
            raise PreconditionError("No pending transaction exists in this scenario",
                                    resource="operation")
        return self.operation

    def require_receipt(self) -> Receipt:
        if self.last_receipt is None:
            raise PreconditionError("No transaction has been submitted in this scenario",
                                    resource="receipt")
        return self.last_receipt

    def require_snapshot(self, role: str) -> BalanceSnapshot:
        key = normalize_role(role)
        if key not in self.snapshots:
            raise PreconditionError(f"No balance snapshot was taken for the {key} account",
                                    role=key, resource="snapshot")
        return self.snapshots[key]

    # -- teardown -----------------------------------------------------------

    def close(self) -> None:
        for subscription in self.subscriptions:
            subscription.unsubscribe()
        self.subscriptions.clear()
        if self.owns_client:
            self.client.close()
        harness_logger.debug("Scenario context closed")
