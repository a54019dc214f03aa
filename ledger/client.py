"""
Ledger client facade.

``LedgerClient`` wraps a network backend; ``authenticate`` returns a
``LedgerSession`` bound to one operator participant. The session freezes,
signs and submits operations, runs queries and opens topic subscriptions.
"""
from datetime import datetime
from typing import Callable, Iterable, List, Optional, Union

from ledger.identity_store import IdentityStore
from ledger.keys import KeyPolicy, PrivateKey
from ledger.local_network import LocalLedgerNetwork, TopicSubscription
from ledger.models import (
    AccountId,
    Participant,
    Receipt,
    TopicId,
    TopicMessage,
    TransactionId,
    hbar_to_tinybars,
)
from ledger.operations import (
    OperationState,
    PendingOperation,
    TokenAssociateOperation,
    TokenBurnOperation,
    TokenCreateOperation,
    TokenMintOperation,
    TopicCreateOperation,
    TopicMessageSubmitOperation,
    TransferOperation,
)
from utils.config_loader import LedgerConfig
from utils.custom_exceptions import PolicyViolation
from utils.logger import ledger_logger, log_execution_time


Signer = Union[Participant, PrivateKey]


class LedgerClient:
    """Entry point to a ledger network."""

    def __init__(self, network, config: Optional[LedgerConfig] = None):
        self.network = network
        self.config = config or LedgerConfig()

    @classmethod
    def for_local_network(cls, identity_store: IdentityStore,
                          config: Optional[LedgerConfig] = None) -> "LedgerClient":
        """Start an in-process network with every configured participant funded."""
        config = config or LedgerConfig()
        network = LocalLedgerNetwork(config)
        for index, participant in enumerate(identity_store.participants()):
            hbars = identity_store.initial_balance_hbar(index)
            if hbars is None:
                hbars = config.genesis_balance_hbar
            network.create_account(participant.key_policy, hbar_to_tinybars(hbars),
                                   account_id=participant.account_id)
        ledger_logger.info(f"Local ledger network started with {len(identity_store)} accounts")
        return cls(network, config)

    def authenticate(self, participant: Participant) -> "LedgerSession":
        ledger_logger.info(f"Operator set to {participant.name} ({participant.account_id})")
        return LedgerSession(self, participant)

    def close(self) -> None:
        close = getattr(self.network, "close", None)
        if close:
            close()


class LedgerSession:
    """One operator identity; pays for and co-signs every submit by default."""

    def __init__(self, client: LedgerClient, operator: Participant):
        self.client = client
        self.operator = operator
        self.receipts: List[Receipt] = []

    @property
    def network(self):
        return self.client.network

    @property
    def config(self) -> LedgerConfig:
        return self.client.config

    # -- authorization ------------------------------------------------------

    def _account_key(self, account_id: AccountId) -> Optional[KeyPolicy]:
        if not self.network.account_exists(account_id):
            return None
        return self.network.get_account_info(account_id).key

    def required_policies(self, operation: PendingOperation, payer_id: AccountId) -> List[KeyPolicy]:
        """Policies the network will check for ``operation`` paid by ``payer_id``."""
        policies: List[Optional[KeyPolicy]] = [self._account_key(payer_id)]

        if isinstance(operation, TransferOperation):
            policies.extend(self._account_key(acc) for acc in operation.debited_accounts())
        elif isinstance(operation, TokenCreateOperation):
            policies.append(self._account_key(operation.treasury_account_id))
            policies.append(operation.admin_key)
        elif isinstance(operation, (TokenMintOperation, TokenBurnOperation)):
            info = self.network.get_token_info(operation.token_id)
            if info.supply_key is None:
                raise PolicyViolation(
                    f"Token {operation.token_id} has a fixed supply; it has no supply key",
                    operation=operation.kind, rule="supply_key_required",
                )
            policies.append(info.supply_key)
        elif isinstance(operation, TokenAssociateOperation):
            policies.append(self._account_key(operation.account_id))
        elif isinstance(operation, TopicCreateOperation):
            policies.append(operation.admin_key)
        elif isinstance(operation, TopicMessageSubmitOperation):
            policies.append(self.network.get_topic_info(operation.topic_id).submit_key)

        unique: List[KeyPolicy] = []
        for policy in policies:
            if policy is not None and policy not in unique:
                unique.append(policy)
        return unique

    # -- operation lifecycle -------------------------------------------------

    def freeze(self, operation: PendingOperation,
               payer: Optional[Union[Participant, AccountId]] = None) -> PendingOperation:
        payer_id = payer.account_id if isinstance(payer, Participant) else (payer or self.operator.account_id)
        operation.freeze(TransactionId.generate(payer_id), self.required_policies(operation, payer_id))
        ledger_logger.debug(f"Froze {operation.kind} as {operation.transaction_id}, "
                            f"{len(operation.required_policies)} policies required")
        return operation

    def sign(self, operation: PendingOperation, *signers: Signer) -> PendingOperation:
        for signer in signers:
            operation.sign(signer.private_key if isinstance(signer, Participant) else signer)
        return operation

    @log_execution_time("ledger", "ledger.submit")
    def submit(self, operation: PendingOperation, signers: Iterable[Signer] = ()) -> Receipt:
        """
        Sign with ``signers`` and the operator, then block until the network
        reports the final status.

        Raises PolicyViolation without contacting the network when a required
        policy is still unsatisfied. Business failures come back as a receipt
        with a non-success status.
        """
        if operation.state == OperationState.BUILT:
            self.freeze(operation)
        self.sign(operation, *signers, self.operator)

        missing = operation.missing_policies()
        if missing:
            raise PolicyViolation(
                f"{operation.kind} is signed {operation.progress}; "
                f"{len(missing)} required signature policies are unsatisfied",
                operation=operation.kind, rule="required_signatures", missing=missing,
            )

        operation.mark_submitted()
        receipt = self.network.submit(operation)
        operation.record_outcome(receipt)
        self.receipts.append(receipt)
        if receipt.ok:
            ledger_logger.info(f"{operation.kind} {receipt.transaction_id} accepted")
        else:
            ledger_logger.warning(f"{operation.kind} {receipt.transaction_id} rejected: {receipt.status}")
        return receipt

    def execute(self, operation: PendingOperation, signers: Iterable[Signer] = ()) -> Receipt:
        """Submit and raise NetworkRejection for a non-success status."""
        return self.submit(operation, signers).raise_for_status()

    def query(self, request):
        return request.execute(self.network)

    def subscribe(self, topic_id: TopicId, on_message: Callable[[TopicMessage], None],
                  since: Optional[datetime] = None) -> TopicSubscription:
        return self.network.subscribe(topic_id, on_message, since=since)

    # -- fee accounting -------------------------------------------------------

    def checkpoint(self) -> int:
        """Position in the receipt history, for ``fees_paid_since``."""
        return len(self.receipts)

    def fees_paid_since(self, checkpoint: int, account_id: AccountId) -> int:
        return sum(
            receipt.transaction_fee for receipt in self.receipts[checkpoint:]
            if receipt.transaction_id is not None and receipt.transaction_id.account_id == account_id
        )
