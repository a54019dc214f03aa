"""
Outcome verifier: query current ledger state and compare it to expectations.

Every mismatch raises DataValidationError carrying ``expected`` and ``actual``.
"""
from typing import Any, Callable, Optional, Tuple, Type

from harness.context import ScenarioContext, normalize_role
from harness.message_waiter import MessageWaiter
from ledger.models import Receipt, TopicMessage, hbar_to_tinybars, tinybars_to_hbar
from ledger.queries import AccountBalanceQuery, AccountInfoQuery, TokenInfoQuery
from utils.custom_exceptions import (
    DataValidationError,
    NetworkRejection,
    PolicyViolation,
    PreconditionError,
)
from utils.logger import harness_logger


class OutcomeVerifier:

    def __init__(self, context: ScenarioContext):
        self.context = context

    @property
    def session(self):
        return self.context.require_session()

    @staticmethod
    def _check(description: str, expected: Any, actual: Any) -> None:
        if expected != actual:
            harness_logger.error(f"{description}: expected {expected!r}, got {actual!r}")
            raise DataValidationError(f"{description} mismatch", expected=expected, actual=actual)
        harness_logger.debug(f"{description} is {actual!r} as expected")

    # -- hbar ---------------------------------------------------------------

    def hbar_balance(self, role: str) -> int:
        participant = self.context.participant(role)
        return self.session.query(AccountBalanceQuery(participant.account_id)).tinybars

    def expect_min_hbar(self, role: str, hbars) -> int:
        """The account must hold strictly more than ``hbars``."""
        tinybars = self.hbar_balance(role)
        if tinybars <= hbar_to_tinybars(hbars):
            raise DataValidationError(
                f"The {normalize_role(role)} account holds {tinybars_to_hbar(tinybars)} hbar, "
                f"expected more than {hbars}",
                expected=f"> {hbars}", actual=tinybars_to_hbar(tinybars),
            )
        return tinybars

    def expect_hbar_balance(self, role: str, hbars) -> None:
        self._check(f"Hbar balance of the {normalize_role(role)} account",
                    hbar_to_tinybars(hbars), self.hbar_balance(role))

    def expect_hbar_change(self, role: str, delta_tinybars: int) -> None:
        """Balance moved by ``delta_tinybars`` since the snapshot, after the fees it paid."""
        snapshot = self.context.require_snapshot(role)
        fees = self.session.fees_paid_since(snapshot.checkpoint, snapshot.participant.account_id)
        self._check(f"Hbar balance of the {normalize_role(role)} account",
                    snapshot.tinybars + delta_tinybars - fees, self.hbar_balance(role))

    def expect_fee_paid(self, role: str, receipt: Optional[Receipt] = None) -> None:
        """``role`` was the payer of ``receipt`` and its balance dropped by at least the fee."""
        receipt = receipt or self.context.require_receipt()
        participant = self.context.participant(role)
        payer = receipt.transaction_id.account_id if receipt.transaction_id else None
        self._check("Transaction fee payer", participant.account_id, payer)
        if receipt.transaction_fee <= 0:
            raise DataValidationError("No transaction fee was charged", expected="> 0",
                                      actual=receipt.transaction_fee)

        snapshot = self.context.snapshots.get(normalize_role(role))
        if snapshot is not None:
            fees = self.session.fees_paid_since(snapshot.checkpoint, participant.account_id)
            spent = snapshot.tinybars - self.hbar_balance(role)
            if spent < fees:
                raise DataValidationError(
                    f"The {normalize_role(role)} account balance did not drop by the fees it paid",
                    expected=f">= {fees}", actual=spent,
                )

    # -- tokens -------------------------------------------------------------

    def token_info(self):
        return self.session.query(TokenInfoQuery(self.context.require_token().token_id))

    def expect_token_info(self, **expected) -> None:
        """Compare TokenInfo fields, e.g. ``name="Test Token", total_supply=1000``."""
        info = self.token_info()
        for field_name, value in expected.items():
            self._check(f"Token {field_name}", value, getattr(info, field_name))

    def expect_treasury(self, role: str) -> None:
        self._check("Token treasury", self.context.participant(role).account_id,
                    self.token_info().treasury_account_id)

    def expect_association(self, role: str):
        token = self.context.require_token()
        participant = self.context.participant(role)
        info = self.session.query(AccountInfoQuery(participant.account_id))
        relationship = info.token_relationships.get(token.token_id)
        if relationship is None:
            raise DataValidationError(
                f"The {normalize_role(role)} account is not associated with token {token.token_id}",
                expected=str(token.token_id), actual=[str(t) for t in info.token_relationships],
            )
        return relationship

    def expect_token_balance(self, role: str, amount: int) -> None:
        relationship = self.expect_association(role)
        self._check(f"{relationship.symbol} balance of the {normalize_role(role)} account",
                    amount, relationship.balance)

    # -- failures -----------------------------------------------------------

    def expect_failure(self, action: Callable[[], Any],
                       errors: Tuple[Type[Exception], ...] = (PolicyViolation, NetworkRejection)
                       ) -> Exception:
        """
        Run ``action`` and return the failure it produced.

        A returned Receipt with a non-success status counts as a failure and
        is converted to NetworkRejection.
        """
        try:
            result = action()
            if isinstance(result, Receipt):
                result.raise_for_status()
        except errors as e:
            harness_logger.info(f"Operation failed as expected: {e}")
            self.context.last_error = e
            return e
        raise DataValidationError("Operation succeeded but was expected to fail",
                                  expected="failure", actual=result)

    # -- topics -------------------------------------------------------------

    def subscribe(self) -> MessageWaiter:
        """Open a subscription on the current topic with a fresh MessageWaiter."""
        topic = self.context.require_topic()
        waiter = MessageWaiter()
        subscription = self.session.subscribe(topic.topic_id, waiter)
        self.context.subscriptions.append(subscription)
        self.context.message_waiter = waiter
        return waiter

    def wait_for_message(self, expected: str, timeout: Optional[float] = None) -> TopicMessage:
        waiter = self.context.message_waiter
        if waiter is None:
            if self.context.topic is None:
                raise PreconditionError("No topic to receive messages from", resource="topic")
            waiter = self.subscribe()
        timeout = timeout if timeout is not None else self.context.config.message_wait_timeout
        message = waiter.wait_for(expected, timeout)
        harness_logger.info(f"Message '{message.text}' received on topic {message.topic_id}")
        return message
