"""
Account step definitions: binding participants and hbar balances.
"""
from behave import given, then
import sys
from pathlib import Path

# Get project root (go up 3 levels: steps -> features -> project_root)
project_root = Path(__file__).resolve().parent.parent.parent
sys.path.insert(0, str(project_root))

from features.steps.ledger_helpers import bind_participant, check_symbol, steps_logger
from ledger.models import hbar_to_tinybars


@given('A Hedera account with more than {hbars:d} hbar')
def step_default_account_with_more_than_hbar(context, hbars):
    """An unnamed account is the first one."""
    step_account_with_more_than_hbar(context, "first", hbars)


@given('A {role:w} Hedera account with more than {hbars:d} hbar')
def step_account_with_more_than_hbar(context, role, hbars):
    participant = bind_participant(context, role)
    tinybars = context.verifier.expect_min_hbar(role, hbars)
    steps_logger.info(f"{participant.name} ({participant.account_id}) holds {tinybars} tinybars")


@given('A {role:w} Hedera account')
def step_bind_account(context, role):
    participant = bind_participant(context, role)
    steps_logger.info(f"The {role} account is {participant.account_id}")


@given('A {role:w} Hedera account with more than {hbars:d} hbar and {tokens:d} {symbol:w} tokens')
def step_account_with_more_than_hbar_and_tokens(context, role, hbars, tokens, symbol):
    bind_participant(context, role)
    context.verifier.expect_min_hbar(role, hbars)
    check_symbol(context, symbol)
    context.fixtures.set_token_holding(role, tokens)


@given('A {role:w} Hedera account with {hbars:d} hbar and {tokens:d} {symbol:w} tokens')
def step_account_with_hbar_and_tokens(context, role, hbars, tokens, symbol):
    """Set both balances exactly; the operator funds the hbar side."""
    bind_participant(context, role)
    context.fixtures.set_hbar_balance(role, hbars)
    check_symbol(context, symbol)
    context.fixtures.set_token_holding(role, tokens)


@then('The {role:w} account has {hbars:d} hbar')
def step_account_has_exact_hbar(context, role, hbars):
    context.verifier.expect_hbar_balance(role, hbars)


@then('The {role:w} account has received {hbars:d} hbar')
def step_account_received_hbar(context, role, hbars):
    """Compared with the balance captured when the transfer was created."""
    context.verifier.expect_hbar_change(role, hbar_to_tinybars(hbars))
