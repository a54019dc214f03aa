"""
Unit tests for harness/verifier.py.
"""

import unittest
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from ledger.models import Receipt, Status, TransactionId, hbar_to_tinybars
from tests.unit.ledger_fixtures import make_context
from utils.custom_exceptions import (
    DataValidationError,
    NetworkRejection,
    PolicyViolation,
    PreconditionError,
    TimeoutError,
)


class VerifierTestCase(unittest.TestCase):

    def setUp(self):
        self.context, self.fixtures, self.verifier = make_context(message_wait_timeout=2)
        self.first = self.context.participant("first")

    def tearDown(self):
        self.context.close()


class TestHbarExpectations(VerifierTestCase):

    def test_min_hbar_is_strict(self):
        self.fixtures.set_hbar_balance("second", 10)
        self.verifier.expect_min_hbar("second", 9)
        with self.assertRaises(DataValidationError):
            self.verifier.expect_min_hbar("second", 10)

    def test_exact_balance(self):
        self.fixtures.set_hbar_balance("second", 10)
        self.verifier.expect_hbar_balance("second", 10)
        with self.assertRaises(DataValidationError) as ctx:
            self.verifier.expect_hbar_balance("second", 11)
        self.assertEqual(ctx.exception.expected, hbar_to_tinybars(11))
        self.assertEqual(ctx.exception.actual, hbar_to_tinybars(10))

    def test_change_accounts_for_fees(self):
        self.fixtures.snapshot("first")
        self.fixtures.snapshot("second")
        self.fixtures.build_transfer(hbar_moves={"first": -500, "second": 500})
        self.fixtures.submit_pending().raise_for_status()
        self.verifier.expect_hbar_change("second", 500)
        self.verifier.expect_hbar_change("first", -500)
        with self.assertRaises(DataValidationError):
            self.verifier.expect_hbar_change("second", 0)

    def test_fee_paid(self):
        self.fixtures.snapshot("first")
        self.fixtures.create_topic("memo")
        self.verifier.expect_fee_paid("first")
        with self.assertRaises(DataValidationError):
            self.verifier.expect_fee_paid("second")

    def test_zero_fee_fails(self):
        receipt = Receipt(Status.SUCCESS, transaction_id=TransactionId.generate(self.first.account_id))
        with self.assertRaises(DataValidationError):
            self.verifier.expect_fee_paid("first", receipt)


class TestTokenExpectations(VerifierTestCase):

    def setUp(self):
        super().setUp()
        self.fixtures.create_token("Test Token", "HTT", 2, 1000, "first",
                                   admin_key=self.first, supply_key=self.first)

    def test_token_info(self):
        self.verifier.expect_token_info(name="Test Token", symbol="HTT", decimals=2, total_supply=1000)
        self.verifier.expect_treasury("first")
        with self.assertRaises(DataValidationError) as ctx:
            self.verifier.expect_token_info(symbol="XYZ")
        self.assertEqual(ctx.exception.actual, "HTT")

    def test_association_and_balance(self):
        with self.assertRaises(DataValidationError):
            self.verifier.expect_association("second")
        self.fixtures.set_token_holding("second", 25)
        self.assertEqual(self.verifier.expect_association("second").balance, 25)
        self.verifier.expect_token_balance("second", 25)
        with self.assertRaises(DataValidationError):
            self.verifier.expect_token_balance("second", 26)


class TestExpectFailure(VerifierTestCase):

    def test_policy_violation_is_returned(self):
        def unbalanced():
            return self.fixtures.build_transfer(hbar_moves={"first": -1, "second": 2})
        error = self.verifier.expect_failure(unbalanced)
        self.assertIsInstance(error, PolicyViolation)
        self.assertIs(self.context.last_error, error)

    def test_failed_receipt_becomes_rejection(self):
        error = self.verifier.expect_failure(lambda: Receipt(Status.INVALID_SIGNATURE))
        self.assertIsInstance(error, NetworkRejection)
        self.assertEqual(error.status, "INVALID_SIGNATURE")

    def test_success_is_an_error(self):
        with self.assertRaises(DataValidationError):
            self.verifier.expect_failure(lambda: Receipt(Status.SUCCESS))

    def test_other_errors_propagate(self):
        def missing_token():
            return self.fixtures.mint(1)
        with self.assertRaises(PreconditionError):
            self.verifier.expect_failure(missing_token)


class TestMessageExpectations(VerifierTestCase):

    def test_message_received_after_publish(self):
        self.fixtures.create_topic("memo")
        self.verifier.subscribe()
        self.fixtures.publish("hello")
        self.assertEqual(self.verifier.wait_for_message("hello").sequence_number, 1)

    def test_wait_subscribes_on_demand_and_replays(self):
        self.fixtures.create_topic("memo")
        self.fixtures.publish("hello")
        self.assertEqual(self.verifier.wait_for_message("hello").text, "hello")
        self.assertEqual(len(self.context.subscriptions), 1)

    def test_wait_without_topic(self):
        with self.assertRaises(PreconditionError):
            self.verifier.wait_for_message("hello")

    def test_nothing_published(self):
        self.fixtures.create_topic("memo")
        with self.assertRaises(TimeoutError):
            self.verifier.wait_for_message("hello", timeout=0.2)


if __name__ == '__main__':
    unittest.main()
