"""
End-to-end scenarios driven through the harness API, without behave.

These mirror the token, topic and transfer features and check the observable
post-state of each.
"""

import unittest
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from tests.unit.ledger_fixtures import make_context
from utils.custom_exceptions import PolicyViolation, TimeoutError


class TestExampleScenarios(unittest.TestCase):

    def setUp(self):
        self.context, self.fixtures, self.verifier = make_context(message_wait_timeout=2)
        self.first = self.context.participant("first")

    def tearDown(self):
        self.context.close()

    def test_create_token_and_query_info(self):
        self.fixtures.create_token("Test Token", "HTT", 2, 1000, "first",
                                   admin_key=self.first, supply_key=self.first)
        info = self.verifier.token_info()
        self.assertEqual(info.name, "Test Token")
        self.assertEqual(info.symbol, "HTT")
        self.assertEqual(info.decimals, 2)
        self.assertEqual(info.total_supply, 1000)
        self.assertEqual(info.treasury_account_id, self.first.account_id)

    def test_fixed_supply_mint_fails_regardless_of_signer(self):
        self.fixtures.create_token("Test Token", "HTT", 2, 1000, "first", admin_key=self.first)
        for role in ("first", "second", "third"):
            with self.subTest(signer=role):
                signer = self.context.participant(role)
                error = self.verifier.expect_failure(lambda: self.fixtures.mint(100, signers=[signer]))
                self.assertIsInstance(error, PolicyViolation)
        self.verifier.expect_token_info(total_supply=1000)

    def test_published_message_is_observed(self):
        self.fixtures.create_topic("Taxi rides", submit_key=self.first)
        self.verifier.subscribe()
        self.fixtures.publish("hello").raise_for_status()
        self.assertEqual(self.verifier.wait_for_message("hello").text, "hello")

    def test_unpublished_message_times_out(self):
        self.fixtures.create_topic("Taxi rides", submit_key=self.first)
        self.verifier.subscribe()
        with self.assertRaises(TimeoutError):
            self.verifier.wait_for_message("hello", timeout=0.2)

    def test_four_party_transfer(self):
        self.fixtures.create_token("Test Token", "HTT", 2, 1000, "first",
                                   admin_key=self.first, supply_key=self.first)
        self.fixtures.set_token_holding("first", 100)
        self.fixtures.set_token_holding("second", 100)
        self.fixtures.set_token_holding("third", 0)
        self.fixtures.set_token_holding("fourth", 0)

        operation = self.fixtures.build_transfer({"first": -10, "second": -10, "third": 5, "fourth": 15})
        signers = set(operation.signers)
        self.assertIn(self.context.participant("first").public_key, signers)
        self.assertIn(self.context.participant("second").public_key, signers)
        self.assertTrue(operation.is_fully_signed)

        self.fixtures.submit_pending().raise_for_status()
        for role, expected in (("first", 90), ("second", 90), ("third", 5), ("fourth", 15)):
            self.verifier.expect_token_balance(role, expected)
        self.verifier.expect_token_info(total_supply=200)


if __name__ == '__main__':
    unittest.main()
