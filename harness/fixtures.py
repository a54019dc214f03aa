"""
Fixture builders: assemble ledger operations from scenario roles and bind the
resulting handles into the ScenarioContext.
"""
from typing import Dict, Iterable, List, Optional, Sequence, Union

from harness.context import BalanceSnapshot, ScenarioContext, TokenHandle, TopicHandle, normalize_role
from ledger.keys import KeyPolicy, PublicKey, ThresholdKey, as_policy
from ledger.models import Participant, Receipt, hbar_to_tinybars
from ledger.operations import (
    TokenAssociateOperation,
    TokenBurnOperation,
    TokenCreateOperation,
    TokenMintOperation,
    TopicCreateOperation,
    TopicMessageSubmitOperation,
    TransferOperation,
)
from ledger.queries import AccountBalanceQuery, AccountInfoQuery
from utils.custom_exceptions import PreconditionError
from utils.logger import harness_logger


KeyLike = Union[KeyPolicy, PublicKey, Participant, None]


class FixtureBuilders:
    """Builds and submits setup operations on behalf of a scenario."""

    def __init__(self, context: ScenarioContext):
        self.context = context

    @property
    def session(self):
        return self.context.require_session()

    def _op_kwargs(self) -> Dict[str, int]:
        return {"valid_duration": self.context.config.transaction_valid_duration}

    @staticmethod
    def _policy(key: KeyLike) -> Optional[KeyPolicy]:
        if key is None:
            return None
        if isinstance(key, Participant):
            return key.key_policy
        return as_policy(key)

    def signers_for(self, policy: Optional[KeyPolicy]) -> List[Participant]:
        """Configured participants whose keys appear in ``policy``."""
        if policy is None:
            return []
        keys = set(policy.public_keys())
        return [p for p in self.context.identity_store.participants() if p.public_key in keys]

    # -- keys ---------------------------------------------------------------

    def threshold_key(self, threshold: int, roles: Sequence[str]) -> ThresholdKey:
        members = [self.context.participant(role).public_key for role in roles]
        key = ThresholdKey(threshold, members)
        self.context.threshold_key = key
        harness_logger.info(f"Built {threshold} of {len(members)} threshold key for {', '.join(roles)}")
        return key

    # -- tokens -------------------------------------------------------------

    def build_token_create(self, name: str, symbol: str, decimals: int, initial_supply: int,
                           treasury: str, admin_key: KeyLike = None,
                           supply_key: KeyLike = None) -> TokenCreateOperation:
        treasury_participant = self.context.participant(treasury)
        return TokenCreateOperation(
            name=name,
            symbol=symbol,
            decimals=decimals,
            initial_supply=initial_supply,
            treasury_account_id=treasury_participant.account_id,
            admin_key=self._policy(admin_key),
            supply_key=self._policy(supply_key),
            **self._op_kwargs(),
        )

    def create_token(self, name: str, symbol: str, decimals: int, initial_supply: int,
                     treasury: str, admin_key: KeyLike = None,
                     supply_key: KeyLike = None) -> TokenHandle:
        """Create a token and bind it as the scenario's current token.

        Leaving ``supply_key`` unset creates a fixed supply token.
        """
        operation = self.build_token_create(name, symbol, decimals, initial_supply,
                                            treasury, admin_key, supply_key)
        treasury_participant = self.context.participant(treasury)
        signers = [treasury_participant] + self.signers_for(operation.admin_key)
        receipt = self.session.execute(operation, signers)
        self.context.last_receipt = receipt
        self.context.token = TokenHandle(
            token_id=receipt.token_id,
            name=name,
            symbol=symbol,
            decimals=decimals,
            treasury=treasury_participant,
            admin_key=operation.admin_key,
            supply_key=operation.supply_key,
        )
        harness_logger.info(f"Created token {symbol} {receipt.token_id} with supply {initial_supply}"
                            f"{' (fixed)' if operation.fixed_supply else ''}")
        return self.context.token

    def build_mint(self, amount: int) -> TokenMintOperation:
        token = self.context.require_token()
        operation = TokenMintOperation(token.token_id, amount, **self._op_kwargs())
        # fails fast with PolicyViolation for a fixed supply token
        return self.session.freeze(operation)

    def mint(self, amount: int, signers: Iterable[Participant] = None) -> Receipt:
        token = self.context.require_token()
        operation = self.build_mint(amount)
        if signers is None:
            signers = self.signers_for(token.supply_key)
        receipt = self.session.submit(operation, signers)
        self.context.last_receipt = receipt
        return receipt

    def burn(self, amount: int, signers: Iterable[Participant] = None) -> Receipt:
        token = self.context.require_token()
        operation = self.session.freeze(TokenBurnOperation(token.token_id, amount, **self._op_kwargs()))
        if signers is None:
            signers = self.signers_for(token.supply_key)
        receipt = self.session.submit(operation, signers)
        self.context.last_receipt = receipt
        return receipt

    def is_associated(self, role: str) -> bool:
        token = self.context.require_token()
        info = self.session.query(AccountInfoQuery(self.context.participant(role).account_id))
        return token.token_id in info.token_relationships

    def ensure_association(self, role: str) -> bool:
        """Associate ``role`` with the current token unless it already is.

        Returns True when a new relationship was created.
        """
        token = self.context.require_token()
        participant = self.context.participant(role)
        if self.is_associated(role):
            return False
        operation = TokenAssociateOperation(participant.account_id, [token.token_id], **self._op_kwargs())
        self.session.execute(operation, [participant])
        harness_logger.info(f"Associated {participant.account_id} with token {token.token_id}")
        return True

    def token_balance(self, role: str) -> int:
        token = self.context.require_token()
        balance = self.session.query(AccountBalanceQuery(self.context.participant(role).account_id))
        return balance.tokens.get(token.token_id, 0)

    def set_token_holding(self, role: str, amount: int) -> None:
        """
        Make ``role`` hold exactly ``amount`` of the current token.

        The treasury is the counterparty: supply is minted into it and
        transferred out, or transferred back and burned, so no other
        participant's balance changes. Tokens without a supply key can only
        move to and from the treasury's existing stock.
        """
        token = self.context.require_token()
        participant = self.context.participant(role)
        treasury = token.treasury
        self.ensure_association(role)

        difference = amount - self.token_balance(role)
        if difference == 0:
            return

        if participant == treasury:
            if token.fixed_supply:
                raise PreconditionError(
                    f"Treasury of fixed supply token {token.symbol} cannot change its holding",
                    role=normalize_role(role), resource="token",
                )
            if difference > 0:
                self.mint(difference).raise_for_status()
            else:
                self.burn(-difference).raise_for_status()
            return

        if difference > 0:
            if not token.fixed_supply:
                self.mint(difference).raise_for_status()
            self.session.execute(self._token_transfer({treasury: -difference, participant: difference}),
                                 [treasury])
        else:
            self.session.execute(self._token_transfer({participant: difference, treasury: -difference}),
                                 [participant])
            if not token.fixed_supply:
                self.burn(-difference).raise_for_status()
        harness_logger.info(f"{participant.name} now holds {amount} {token.symbol}")

    # -- hbar ---------------------------------------------------------------

    def hbar_balance(self, role: str) -> int:
        balance = self.session.query(AccountBalanceQuery(self.context.participant(role).account_id))
        return balance.tinybars

    def set_hbar_balance(self, role: str, hbars) -> None:
        """Move hbar between the operator and ``role`` so it holds exactly ``hbars``."""
        participant = self.context.participant(role)
        operator = self.session.operator
        if participant == operator:
            raise PreconditionError("The operator pays fees and cannot hold an exact hbar balance",
                                    role=normalize_role(role), resource="hbar_balance")
        difference = hbar_to_tinybars(hbars) - self.hbar_balance(role)
        if difference == 0:
            return
        operation = TransferOperation(**self._op_kwargs())
        operation.add_hbar_transfer(operator.account_id, -difference)
        operation.add_hbar_transfer(participant.account_id, difference)
        self.session.execute(operation, [participant] if difference < 0 else [])

    def snapshot(self, role: str) -> BalanceSnapshot:
        participant = self.context.participant(role)
        balance = self.session.query(AccountBalanceQuery(participant.account_id))
        snapshot = BalanceSnapshot(participant, balance.tinybars, dict(balance.tokens),
                                   self.session.checkpoint())
        self.context.snapshots[normalize_role(role)] = snapshot
        return snapshot

    # -- transfers ----------------------------------------------------------

    def _token_transfer(self, moves: Dict[Participant, int]) -> TransferOperation:
        token = self.context.require_token()
        operation = TransferOperation(**self._op_kwargs())
        for participant, amount in moves.items():
            operation.add_token_transfer(token.token_id, participant.account_id, amount)
        return operation

    def build_transfer(self, token_moves: Optional[Dict[str, int]] = None,
                       hbar_moves: Optional[Dict[str, int]] = None,
                       payer: Optional[str] = None) -> TransferOperation:
        """
        Build, freeze and sign a transfer; one signature per debited participant.

        ``token_moves`` are in token units of the current token and
        ``hbar_moves`` in tinybars, both keyed by role. The result becomes the
        scenario's pending operation.
        """
        operation = TransferOperation(**self._op_kwargs())
        if token_moves:
            token = self.context.require_token()
            for role, amount in token_moves.items():
                operation.add_token_transfer(token.token_id, self.context.participant(role).account_id, amount)
        for role, tinybars in (hbar_moves or {}).items():
            operation.add_hbar_transfer(self.context.participant(role).account_id, tinybars)

        self.session.freeze(operation, payer=self.context.participant(payer) if payer else None)
        debited = set(operation.debited_accounts())
        signers = [p for p in self.context.participants.values() if p.account_id in debited]
        self.session.sign(operation, *signers)
        self.context.operation = operation
        harness_logger.info(f"Built transfer {operation.transaction_id} signed {operation.progress}")
        return operation

    def submit_pending(self, signers: Iterable[Participant] = ()) -> Receipt:
        operation = self.context.require_operation()
        receipt = self.session.submit(operation, signers)
        self.context.last_receipt = receipt
        return receipt

    # -- topics -------------------------------------------------------------

    def create_topic(self, memo: str, submit_key: KeyLike = None) -> TopicHandle:
        policy = self._policy(submit_key)
        operation = TopicCreateOperation(topic_memo=memo, submit_key=policy, **self._op_kwargs())
        receipt = self.session.execute(operation)
        self.context.last_receipt = receipt
        self.context.topic = TopicHandle(receipt.topic_id, memo, policy)
        harness_logger.info(f"Created topic {receipt.topic_id} with memo '{memo}'")
        return self.context.topic

    def build_publish(self, message: str) -> TopicMessageSubmitOperation:
        topic = self.context.require_topic()
        operation = TopicMessageSubmitOperation(
            topic.topic_id, message, max_message_bytes=self.context.config.max_message_bytes,
            **self._op_kwargs(),
        )
        self.session.freeze(operation)
        self.context.operation = operation
        return operation

    def publish(self, message: str, signers: Optional[Iterable[Participant]] = None) -> Receipt:
        """Submit ``message`` to the current topic.

        By default every configured participant named by the submit key signs.
        """
        topic = self.context.require_topic()
        operation = self.build_publish(message)
        if signers is None:
            signers = self.signers_for(topic.submit_key)
        receipt = self.session.submit(operation, signers)
        self.context.last_receipt = receipt
        return receipt
