"""
Unit tests for ledger/client.py: LedgerClient and LedgerSession.
"""

import unittest
from unittest.mock import patch
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from ledger.client import LedgerClient
from ledger.identity_store import IdentityStore
from ledger.keys import SingleKey, ThresholdKey
from ledger.models import Status, hbar_to_tinybars
from ledger.operations import (
    OperationState,
    TokenAssociateOperation,
    TokenCreateOperation,
    TokenMintOperation,
    TopicCreateOperation,
    TopicMessageSubmitOperation,
    TransferOperation,
)
from ledger.queries import AccountBalanceQuery, TokenInfoQuery, TopicInfoQuery
from tests.unit.ledger_fixtures import make_accounts_document
from utils.config_loader import LedgerConfig
from utils.custom_exceptions import NetworkRejection, PolicyViolation


class LedgerClientTestCase(unittest.TestCase):

    def setUp(self):
        document = make_accounts_document(3)
        document["accounts"][2]["initial_balance_hbar"] = 5
        self.config = LedgerConfig(transaction_fee_tinybars=1000, genesis_balance_hbar=100)
        self.store = IdentityStore(document)
        self.client = LedgerClient.for_local_network(self.store, self.config)
        self.alice, self.bob, self.carol = self.store.participants()
        self.session = self.client.authenticate(self.alice)

    def tearDown(self):
        self.client.close()

    def balance(self, participant):
        return self.session.query(AccountBalanceQuery(participant.account_id))

    def create_token(self, supply_key=True):
        operation = TokenCreateOperation(
            "Test Token", "HTT", 2, 1000, self.alice.account_id,
            admin_key=self.alice.key_policy,
            supply_key=self.alice.key_policy if supply_key else None,
        )
        return self.session.execute(operation).token_id


class TestLedgerClient(LedgerClientTestCase):

    def test_genesis_balances(self):
        self.assertEqual(self.balance(self.alice).tinybars, hbar_to_tinybars(100))
        self.assertEqual(self.balance(self.carol).tinybars, hbar_to_tinybars(5))

    def test_authenticate_binds_operator(self):
        session = self.client.authenticate(self.bob)
        self.assertEqual(session.operator, self.bob)
        self.assertEqual(session.receipts, [])


class TestRequiredPolicies(LedgerClientTestCase):

    def test_transfer_needs_payer_and_debited_keys(self):
        operation = (TransferOperation()
                     .add_hbar_transfer(self.bob.account_id, -1)
                     .add_hbar_transfer(self.carol.account_id, 1))
        policies = self.session.required_policies(operation, self.alice.account_id)
        self.assertEqual(policies, [self.alice.key_policy, self.bob.key_policy])

    def test_policies_are_deduplicated(self):
        operation = (TransferOperation()
                     .add_hbar_transfer(self.alice.account_id, -1)
                     .add_hbar_transfer(self.bob.account_id, 1))
        self.assertEqual(self.session.required_policies(operation, self.alice.account_id),
                         [self.alice.key_policy])

    def test_mint_of_fixed_supply_token_fails_fast(self):
        token_id = self.create_token(supply_key=False)
        with self.assertRaises(PolicyViolation) as ctx:
            self.session.freeze(TokenMintOperation(token_id, 1))
        self.assertEqual(ctx.exception.details["rule"], "supply_key_required")

    def test_topic_submit_key_is_required(self):
        policy = ThresholdKey(2, [self.bob.public_key, self.carol.public_key])
        topic_id = self.session.execute(TopicCreateOperation("memo", submit_key=policy)).topic_id
        operation = TopicMessageSubmitOperation(topic_id, "hi")
        self.assertIn(policy, self.session.required_policies(operation, self.alice.account_id))

    def test_freeze_with_other_payer(self):
        operation = self.session.freeze(TopicCreateOperation("memo"), payer=self.bob)
        self.assertEqual(operation.transaction_id.account_id, self.bob.account_id)
        self.assertEqual(operation.required_policies, [self.bob.key_policy])


class TestSubmit(LedgerClientTestCase):

    def test_submit_freezes_signs_and_records_receipt(self):
        operation = TopicCreateOperation("memo")
        receipt = self.session.submit(operation)
        self.assertTrue(receipt.ok)
        self.assertEqual(operation.state, OperationState.ACCEPTED)
        self.assertIs(operation.receipt, receipt)
        self.assertEqual(self.session.receipts, [receipt])
        self.assertEqual(receipt.transaction_id.account_id, self.alice.account_id)

    def test_missing_signature_never_reaches_network(self):
        operation = (TransferOperation()
                     .add_hbar_transfer(self.bob.account_id, -1)
                     .add_hbar_transfer(self.carol.account_id, 1))
        with patch.object(self.client.network, "submit") as network_submit:
            with self.assertRaises(PolicyViolation) as ctx:
                self.session.submit(operation)
        network_submit.assert_not_called()
        self.assertEqual(ctx.exception.details["rule"], "required_signatures")
        self.assertEqual(operation.state, OperationState.SIGNED)
        self.assertEqual(operation.progress, "1/2")

    def test_partially_signed_operation_completes_later(self):
        operation = (TransferOperation()
                     .add_hbar_transfer(self.bob.account_id, -10)
                     .add_hbar_transfer(self.carol.account_id, 10))
        self.session.freeze(operation)
        self.session.sign(operation, self.bob)
        self.assertEqual(operation.progress, "1/2")
        receipt = self.session.submit(operation)
        self.assertTrue(receipt.ok)
        self.assertEqual(self.balance(self.carol).tinybars, hbar_to_tinybars(5) + 10)

    def test_execute_raises_for_business_failure(self):
        token_id = self.create_token()
        self.session.execute(TokenAssociateOperation(self.bob.account_id, [token_id]), [self.bob])
        with self.assertRaises(NetworkRejection) as ctx:
            self.session.execute(TokenAssociateOperation(self.bob.account_id, [token_id]), [self.bob])
        self.assertEqual(ctx.exception.status, "TOKEN_ALREADY_ASSOCIATED_TO_ACCOUNT")

    def test_failed_receipt_is_returned_by_submit(self):
        token_id = self.create_token()
        operation = (TransferOperation()
                     .add_token_transfer(token_id, self.alice.account_id, -1)
                     .add_token_transfer(token_id, self.bob.account_id, 1))
        receipt = self.session.submit(operation)
        self.assertEqual(receipt.status, Status.TOKEN_NOT_ASSOCIATED_TO_ACCOUNT)
        self.assertEqual(operation.state, OperationState.REJECTED)

    def test_fees_paid_since_checkpoint(self):
        self.session.execute(TopicCreateOperation("one"))
        checkpoint = self.session.checkpoint()
        self.session.execute(TopicCreateOperation("two"))
        self.session.execute(TopicCreateOperation("three"))
        self.assertEqual(self.session.fees_paid_since(checkpoint, self.alice.account_id), 2000)
        self.assertEqual(self.session.fees_paid_since(checkpoint, self.bob.account_id), 0)

    def test_queries(self):
        token_id = self.create_token()
        info = self.session.query(TokenInfoQuery(token_id))
        self.assertEqual(info.total_supply, 1000)
        self.assertEqual(info.supply_key, SingleKey(self.alice.public_key))
        topic_id = self.session.execute(TopicCreateOperation("memo")).topic_id
        self.assertEqual(self.session.query(TopicInfoQuery(topic_id)).memo, "memo")


if __name__ == '__main__':
    unittest.main()
