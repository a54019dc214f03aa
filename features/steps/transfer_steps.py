"""
Transfer step definitions: building, signing and submitting multi-party
token and hbar transfers.
"""
from behave import when, then
import sys
from pathlib import Path

# Get project root (go up 3 levels: steps -> features -> project_root)
project_root = Path(__file__).resolve().parent.parent.parent
sys.path.insert(0, str(project_root))

from features.steps.ledger_helpers import check_symbol, operator_role, steps_logger
from ledger.models import hbar_to_tinybars
from utils.custom_exceptions import PolicyViolation
from utils.logger import log_context


def _build_transfer(context, token_moves=None, hbar_moves=None):
    """Snapshot everyone involved, then build, freeze and sign the transfer."""
    roles = set(token_moves or {}) | set(hbar_moves or {}) | {operator_role(context)}
    for role in roles:
        context.fixtures.snapshot(role)
    return context.fixtures.build_transfer(token_moves=token_moves, hbar_moves=hbar_moves)


@when('The {source:w} account creates a transaction to transfer {amount:d} {symbol:w} tokens '
      'to the {target:w} account')
def step_create_token_transfer(context, source, amount, symbol, target):
    check_symbol(context, symbol)
    operation = _build_transfer(context, token_moves={source: -amount, target: amount})
    steps_logger.info(f"Transfer of {amount} {symbol} from {source} to {target} "
                      f"created, signed {operation.progress}")


@when('The {source:w} account creates a transaction to transfer {hbars:d} hbar to the {target:w} account')
def step_create_hbar_transfer(context, source, hbars, target):
    tinybars = hbar_to_tinybars(hbars)
    _build_transfer(context, hbar_moves={source: -tinybars, target: tinybars})


@when('A transaction is created to transfer {outgoing:d} {symbol:w} tokens out of the first and second account '
      'and {third_amount:d} {third_symbol:w} tokens into the third account '
      'and {fourth_amount:d} {fourth_symbol:w} tokens into the fourth account')
def step_create_four_party_transfer(context, outgoing, symbol, third_amount, third_symbol,
                                    fourth_amount, fourth_symbol):
    """Both debited accounts sign; the credits must add up to twice the outgoing amount."""
    check_symbol(context, symbol, third_symbol, fourth_symbol)
    _build_transfer(context, token_moves={
        "first": -outgoing,
        "second": -outgoing,
        "third": third_amount,
        "fourth": fourth_amount,
    })


@when('A transaction to transfer {outgoing:d} {symbol:w} tokens from the {source:w} account '
      'and {incoming:d} {incoming_symbol:w} tokens to the {target:w} account is attempted')
def step_attempt_unbalanced_transfer(context, outgoing, symbol, source, incoming, incoming_symbol, target):
    check_symbol(context, symbol, incoming_symbol)
    moves = {source: -outgoing, target: incoming}
    context.ledger.last_error = None
    context.ledger.operation = None
    try:
        _build_transfer(context, token_moves=moves)
    except PolicyViolation as e:
        steps_logger.info(f"Transfer rejected locally: {e}")
        context.ledger.last_error = e


@then('The transaction is rejected before submission')
def step_transaction_rejected_locally(context):
    error = context.ledger.last_error
    assert isinstance(error, PolicyViolation), f"Expected a local policy violation, got {error!r}"
    assert context.ledger.operation is None, "A transaction was built despite the violation"


@when('The {role:w} account submits the transaction')
def step_submit_transaction(context, role):
    """The submitting account becomes the operator and co-signs."""
    context.ledger.authenticate(role)
    operation = context.ledger.require_operation()
    with log_context("ledger_steps", transaction=operation.transaction_id, operator=role) as log:
        receipt = context.fixtures.submit_pending()
        log.info(f"Finished with {receipt.status}")
    receipt.raise_for_status()


@then('The {role:w} account has paid for the transaction fee')
def step_fee_paid(context, role):
    context.verifier.expect_fee_paid(role)
