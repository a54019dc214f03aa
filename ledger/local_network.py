"""
In-process ledger network.

Implements the network contract the harness consumes (``submit``, the query
methods and ``subscribe``) with real ED25519 signature verification, fees,
token supply rules, associations and topics. Topic messages are pushed to
subscribers from a per-subscription delivery thread.
"""
import queue
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from ledger.keys import KeyPolicy
from ledger.models import (
    AccountBalance,
    AccountId,
    AccountInfo,
    Receipt,
    Status,
    SupplyType,
    TokenId,
    TokenInfo,
    TokenRelationship,
    TopicId,
    TopicInfo,
    TopicMessage,
)
from ledger.operations import PendingOperation
from utils.config_loader import LedgerConfig
from utils.custom_exceptions import NetworkRejection
from utils.logger import network_logger


_STOP = object()


@dataclass
class _Account:
    key: KeyPolicy
    balance: int
    # token id -> balance; presence means the account is associated
    tokens: Dict[TokenId, int] = field(default_factory=dict)


@dataclass
class _Token:
    name: str
    symbol: str
    decimals: int
    total_supply: int
    treasury: AccountId
    admin_key: Optional[KeyPolicy]
    supply_key: Optional[KeyPolicy]
    supply_type: SupplyType
    max_supply: int


@dataclass
class _Topic:
    memo: str
    submit_key: Optional[KeyPolicy]
    admin_key: Optional[KeyPolicy]
    messages: List[TopicMessage] = field(default_factory=list)


class _Rejected(Exception):
    """Internal signal carrying the status of a handled but failed operation."""

    def __init__(self, status: Status):
        super().__init__(status.value)
        self.status = status


class TopicSubscription:
    """Push subscription to one topic; ``on_message`` runs on a daemon thread."""

    def __init__(self, topic_id: TopicId, on_message: Callable[[TopicMessage], None],
                 delivery_delay: float = 0.0, on_close: Optional[Callable] = None):
        self.topic_id = topic_id
        self.on_message = on_message
        self.delivery_delay = delivery_delay
        self._on_close = on_close
        self._queue: "queue.Queue" = queue.Queue()
        self._closed = threading.Event()
        self._thread = threading.Thread(
            target=self._run, name=f"topic-{topic_id}-delivery", daemon=True
        )
        self._thread.start()

    @property
    def active(self) -> bool:
        return not self._closed.is_set()

    def deliver(self, message: TopicMessage) -> None:
        if self.active:
            self._queue.put(message)

    def _run(self):
        while True:
            item = self._queue.get()
            if item is _STOP:
                break
            if self.delivery_delay and self._closed.wait(self.delivery_delay):
                break
            try:
                self.on_message(item)
            except Exception as e:
                network_logger.error(f"Subscriber callback for topic {self.topic_id} failed: {e}",
                                     exc_info=True)

    def unsubscribe(self, timeout: float = 2.0) -> None:
        if self._closed.is_set():
            return
        self._closed.set()
        self._queue.put(_STOP)
        if self._on_close:
            self._on_close(self)
        if threading.current_thread() is not self._thread:
            self._thread.join(timeout)
        network_logger.debug(f"Subscription to topic {self.topic_id} closed")


class LocalLedgerNetwork:
    """Single-node ledger held in memory."""

    def __init__(self, config: Optional[LedgerConfig] = None, shard: int = 0, realm: int = 0):
        self.config = config or LedgerConfig()
        self.shard = shard
        self.realm = realm
        self._lock = threading.RLock()
        self._accounts: Dict[AccountId, _Account] = {}
        self._tokens: Dict[TokenId, _Token] = {}
        self._topics: Dict[TopicId, _Topic] = {}
        self._subscriptions: List[TopicSubscription] = []
        self._seen_transactions = set()
        self._next_num = self.config.first_entity_num
        self._last_consensus_ns = 0

    @property
    def transaction_fee(self) -> int:
        return self.config.transaction_fee_tinybars

    def _allocate_num(self) -> int:
        num = self._next_num
        self._next_num += 1
        return num

    def _consensus_now(self) -> datetime:
        self._last_consensus_ns = max(time.time_ns(), self._last_consensus_ns + 1000)
        return datetime.fromtimestamp(self._last_consensus_ns / 1e9, tz=timezone.utc)

    # -- genesis ------------------------------------------------------------

    def create_account(self, key: KeyPolicy, initial_balance_tinybars: int = 0,
                       account_id: Optional[AccountId] = None) -> AccountId:
        """Create an account outside the fee path, e.g. for configured participants."""
        with self._lock:
            if account_id is None:
                account_id = AccountId(self.shard, self.realm, self._allocate_num())
            elif account_id in self._accounts:
                raise NetworkRejection(f"Account {account_id} already exists",
                                       status=Status.INVALID_ACCOUNT_ID.value)
            self._accounts[account_id] = _Account(key=key, balance=int(initial_balance_tinybars))
            network_logger.debug(f"Created account {account_id} with {initial_balance_tinybars} tinybars")
            return account_id

    def account_exists(self, account_id: AccountId) -> bool:
        with self._lock:
            return account_id in self._accounts

    # -- submit -------------------------------------------------------------

    def submit(self, operation: PendingOperation) -> Receipt:
        """Handle a frozen, signed operation and return its final receipt."""
        deliveries = []
        with self._lock:
            receipt = self._precheck(operation)
            if receipt is None:
                payer = self._accounts[operation.transaction_id.account_id]
                fee = self.transaction_fee
                payer.balance -= fee
                self._seen_transactions.add(operation.transaction_id)
                handler = getattr(self, f"_handle_{operation.kind}", None)
                try:
                    if handler is None:
                        raise _Rejected(Status.INVALID_TRANSACTION_BODY)
                    receipt = handler(operation, set(operation.signers), deliveries)
                except _Rejected as rejected:
                    receipt = Receipt(status=rejected.status)
                receipt.transaction_id = operation.transaction_id
                receipt.transaction_fee = fee
        network_logger.info(f"{operation.kind} {operation.transaction_id} -> {receipt.status}")
        for subscription, message in deliveries:
            subscription.deliver(message)
        return receipt

    def _precheck(self, operation: PendingOperation) -> Optional[Receipt]:
        """Checks that fail before any fee is charged."""
        tx_id = operation.transaction_id
        if tx_id is None:
            return Receipt(status=Status.INVALID_TRANSACTION_BODY)
        if tx_id in self._seen_transactions:
            return Receipt(status=Status.DUPLICATE_TRANSACTION, transaction_id=tx_id)
        if time.time_ns() > tx_id.valid_start_ns + operation.valid_duration * 1_000_000_000:
            return Receipt(status=Status.TRANSACTION_EXPIRED, transaction_id=tx_id)
        payer = self._accounts.get(tx_id.account_id)
        if payer is None:
            return Receipt(status=Status.PAYER_ACCOUNT_NOT_FOUND, transaction_id=tx_id)
        if payer.balance < self.transaction_fee:
            return Receipt(status=Status.INSUFFICIENT_PAYER_BALANCE, transaction_id=tx_id)
        body = operation.body_bytes
        for public_key, signature in operation.signatures.items():
            if not public_key.verify(signature, body):
                return Receipt(status=Status.INVALID_SIGNATURE, transaction_id=tx_id)
        if not payer.key.satisfied_by(operation.signers):
            return Receipt(status=Status.INVALID_SIGNATURE, transaction_id=tx_id)
        return None

    def _account(self, account_id: AccountId, status: Status = Status.INVALID_ACCOUNT_ID) -> _Account:
        account = self._accounts.get(account_id)
        if account is None:
            raise _Rejected(status)
        return account

    def _token(self, token_id: TokenId) -> _Token:
        token = self._tokens.get(token_id)
        if token is None:
            raise _Rejected(Status.INVALID_TOKEN_ID)
        return token

    @staticmethod
    def _require_signed(policy: Optional[KeyPolicy], signers) -> None:
        if policy is not None and not policy.satisfied_by(signers):
            raise _Rejected(Status.INVALID_SIGNATURE)

    def _handle_transfer(self, op, signers, deliveries) -> Receipt:
        hbar = {acc: amount for acc, amount in op.hbar_transfers.items() if amount}
        tokens = {
            token_id: {acc: amount for acc, amount in adjustments.items() if amount}
            for token_id, adjustments in op.token_transfers.items()
        }
        if sum(hbar.values()) != 0:
            raise _Rejected(Status.INVALID_ACCOUNT_AMOUNTS)
        for account_id in hbar:
            self._account(account_id)
        for token_id, adjustments in tokens.items():
            self._token(token_id)
            if sum(adjustments.values()) != 0:
                raise _Rejected(Status.TRANSFERS_NOT_ZERO_SUM_FOR_TOKEN)
            for account_id in adjustments:
                self._account(account_id)

        for account_id in op.debited_accounts():
            self._require_signed(self._accounts[account_id].key, signers)

        for token_id, adjustments in tokens.items():
            for account_id, amount in adjustments.items():
                holdings = self._accounts[account_id].tokens
                if token_id not in holdings:
                    raise _Rejected(Status.TOKEN_NOT_ASSOCIATED_TO_ACCOUNT)
                if holdings[token_id] + amount < 0:
                    raise _Rejected(Status.INSUFFICIENT_TOKEN_BALANCE)
        for account_id, amount in hbar.items():
            if self._accounts[account_id].balance + amount < 0:
                raise _Rejected(Status.INSUFFICIENT_ACCOUNT_BALANCE)

        for account_id, amount in hbar.items():
            self._accounts[account_id].balance += amount
        for token_id, adjustments in tokens.items():
            for account_id, amount in adjustments.items():
                self._accounts[account_id].tokens[token_id] += amount
        return Receipt(status=Status.SUCCESS)

    def _handle_token_create(self, op, signers, deliveries) -> Receipt:
        treasury = self._account(op.treasury_account_id, Status.INVALID_TREASURY_ACCOUNT_FOR_TOKEN)
        self._require_signed(treasury.key, signers)
        self._require_signed(op.admin_key, signers)
        if op.supply_type == SupplyType.FINITE and op.initial_supply > op.max_supply:
            raise _Rejected(Status.TOKEN_MAX_SUPPLY_REACHED)

        token_id = TokenId(self.shard, self.realm, self._allocate_num())
        self._tokens[token_id] = _Token(
            name=op.name,
            symbol=op.symbol,
            decimals=op.decimals,
            total_supply=op.initial_supply,
            treasury=op.treasury_account_id,
            admin_key=op.admin_key,
            supply_key=op.supply_key,
            supply_type=op.supply_type,
            max_supply=op.max_supply,
        )
        treasury.tokens[token_id] = op.initial_supply
        return Receipt(status=Status.SUCCESS, token_id=token_id, total_supply=op.initial_supply)

    def _handle_token_mint(self, op, signers, deliveries) -> Receipt:
        token = self._token(op.token_id)
        if token.supply_key is None:
            raise _Rejected(Status.TOKEN_HAS_NO_SUPPLY_KEY)
        self._require_signed(token.supply_key, signers)
        if op.amount <= 0:
            raise _Rejected(Status.INVALID_TOKEN_MINT_AMOUNT)
        if token.supply_type == SupplyType.FINITE and token.total_supply + op.amount > token.max_supply:
            raise _Rejected(Status.TOKEN_MAX_SUPPLY_REACHED)
        token.total_supply += op.amount
        self._accounts[token.treasury].tokens[op.token_id] += op.amount
        return Receipt(status=Status.SUCCESS, token_id=op.token_id, total_supply=token.total_supply)

    def _handle_token_burn(self, op, signers, deliveries) -> Receipt:
        token = self._token(op.token_id)
        if token.supply_key is None:
            raise _Rejected(Status.TOKEN_HAS_NO_SUPPLY_KEY)
        self._require_signed(token.supply_key, signers)
        treasury_holdings = self._accounts[token.treasury].tokens
        if op.amount <= 0 or op.amount > treasury_holdings[op.token_id]:
            raise _Rejected(Status.INVALID_TOKEN_BURN_AMOUNT)
        token.total_supply -= op.amount
        treasury_holdings[op.token_id] -= op.amount
        return Receipt(status=Status.SUCCESS, token_id=op.token_id, total_supply=token.total_supply)

    def _handle_token_associate(self, op, signers, deliveries) -> Receipt:
        account = self._account(op.account_id)
        self._require_signed(account.key, signers)
        for token_id in op.token_ids:
            self._token(token_id)
            if token_id in account.tokens:
                raise _Rejected(Status.TOKEN_ALREADY_ASSOCIATED_TO_ACCOUNT)
        for token_id in op.token_ids:
            account.tokens[token_id] = 0
        return Receipt(status=Status.SUCCESS, account_id=op.account_id)

    def _handle_topic_create(self, op, signers, deliveries) -> Receipt:
        self._require_signed(op.admin_key, signers)
        topic_id = TopicId(self.shard, self.realm, self._allocate_num())
        self._topics[topic_id] = _Topic(memo=op.topic_memo, submit_key=op.submit_key,
                                        admin_key=op.admin_key)
        return Receipt(status=Status.SUCCESS, topic_id=topic_id)

    def _handle_topic_message_submit(self, op, signers, deliveries) -> Receipt:
        topic = self._topics.get(op.topic_id)
        if topic is None:
            raise _Rejected(Status.INVALID_TOPIC_ID)
        self._require_signed(topic.submit_key, signers)
        if len(op.contents) > self.config.max_message_bytes:
            raise _Rejected(Status.MESSAGE_SIZE_TOO_LARGE)
        message = TopicMessage(
            topic_id=op.topic_id,
            sequence_number=len(topic.messages) + 1,
            consensus_timestamp=self._consensus_now(),
            contents=op.contents,
        )
        topic.messages.append(message)
        deliveries.extend(
            (subscription, message) for subscription in self._subscriptions
            if subscription.topic_id == op.topic_id
        )
        return Receipt(status=Status.SUCCESS, topic_id=op.topic_id,
                       topic_sequence_number=message.sequence_number)

    # -- queries ------------------------------------------------------------

    @staticmethod
    def _not_found(kind: str, entity_id, status: Status):
        return NetworkRejection(f"{kind} {entity_id} does not exist", status=status.value)

    def get_account_balance(self, account_id: AccountId) -> AccountBalance:
        with self._lock:
            account = self._accounts.get(account_id)
            if account is None:
                raise self._not_found("Account", account_id, Status.INVALID_ACCOUNT_ID)
            return AccountBalance(account_id, account.balance, dict(account.tokens))

    def get_account_info(self, account_id: AccountId) -> AccountInfo:
        with self._lock:
            account = self._accounts.get(account_id)
            if account is None:
                raise self._not_found("Account", account_id, Status.INVALID_ACCOUNT_ID)
            relationships = {
                token_id: TokenRelationship(token_id, self._tokens[token_id].symbol, balance,
                                            self._tokens[token_id].decimals)
                for token_id, balance in account.tokens.items()
            }
            return AccountInfo(account_id, account.key, account.balance, relationships)

    def get_token_info(self, token_id: TokenId) -> TokenInfo:
        with self._lock:
            token = self._tokens.get(token_id)
            if token is None:
                raise self._not_found("Token", token_id, Status.INVALID_TOKEN_ID)
            return TokenInfo(
                token_id=token_id,
                name=token.name,
                symbol=token.symbol,
                decimals=token.decimals,
                total_supply=token.total_supply,
                treasury_account_id=token.treasury,
                admin_key=token.admin_key,
                supply_key=token.supply_key,
                supply_type=token.supply_type,
                max_supply=token.max_supply,
            )

    def get_topic_info(self, topic_id: TopicId) -> TopicInfo:
        with self._lock:
            topic = self._topics.get(topic_id)
            if topic is None:
                raise self._not_found("Topic", topic_id, Status.INVALID_TOPIC_ID)
            return TopicInfo(topic_id, topic.memo, topic.submit_key, len(topic.messages))

    def get_topic_messages(self, topic_id: TopicId) -> List[TopicMessage]:
        with self._lock:
            topic = self._topics.get(topic_id)
            if topic is None:
                raise self._not_found("Topic", topic_id, Status.INVALID_TOPIC_ID)
            return list(topic.messages)

    # -- subscriptions ------------------------------------------------------

    def subscribe(self, topic_id: TopicId, on_message: Callable[[TopicMessage], None],
                  since: Optional[datetime] = None) -> TopicSubscription:
        """
        Push every message of ``topic_id`` to ``on_message``.

        Messages already on the topic with a consensus timestamp at or after
        ``since`` are replayed first; ``since=None`` replays the whole topic.
        """
        with self._lock:
            topic = self._topics.get(topic_id)
            if topic is None:
                raise self._not_found("Topic", topic_id, Status.INVALID_TOPIC_ID)
            subscription = TopicSubscription(
                topic_id, on_message,
                delivery_delay=self.config.message_delivery_delay,
                on_close=self._remove_subscription,
            )
            for message in topic.messages:
                if since is None or message.consensus_timestamp >= since:
                    subscription.deliver(message)
            self._subscriptions.append(subscription)
        network_logger.debug(f"Subscribed to topic {topic_id}")
        return subscription

    def _remove_subscription(self, subscription: TopicSubscription) -> None:
        with self._lock:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)

    def close(self) -> None:
        """Close every open subscription."""
        with self._lock:
            subscriptions = list(self._subscriptions)
        for subscription in subscriptions:
            subscription.unsubscribe()
