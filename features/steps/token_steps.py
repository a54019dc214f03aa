"""
Token service step definitions: creation, token info, minting, association
and holdings.
"""
from behave import given, when, then
import sys
from pathlib import Path

# Get project root (go up 3 levels: steps -> features -> project_root)
project_root = Path(__file__).resolve().parent.parent.parent
sys.path.insert(0, str(project_root))

from features.steps.ledger_helpers import (
    check_symbol,
    operator_role,
    steps_logger,
)
from utils.custom_exceptions import PolicyViolation

DEFAULT_DECIMALS = 2
DEFAULT_INITIAL_SUPPLY = 1000
DEFAULT_MINT_ATTEMPT = 100


def _create_token(context, name, symbol, initial_supply, fixed_supply=False):
    treasury = operator_role(context)
    key = context.ledger.participant(treasury)
    token = context.fixtures.create_token(
        name=name,
        symbol=symbol,
        decimals=DEFAULT_DECIMALS,
        initial_supply=initial_supply,
        treasury=treasury,
        admin_key=key,
        supply_key=None if fixed_supply else key,
    )
    steps_logger.info(f"Token {token.name} ({token.symbol}) created as {token.token_id}")
    return token


# ========================================
# TOKEN CREATION
# ========================================

@when('I create a token named {name} ({symbol:w})')
def step_create_token(context, name, symbol):
    _create_token(context, name, symbol, DEFAULT_INITIAL_SUPPLY)


@when('I create a fixed supply token named {name} ({symbol:w}) with {initial_supply:d} tokens')
def step_create_fixed_supply_token(context, name, symbol, initial_supply):
    """No supply key is set, so the supply can never change."""
    _create_token(context, name, symbol, initial_supply, fixed_supply=True)


@given('A token named {name} ({symbol:w}) with {initial_supply:d} tokens')
def step_token_exists(context, name, symbol, initial_supply):
    _create_token(context, name, symbol, initial_supply)


# ========================================
# TOKEN INFO
# ========================================

@then('The token has the name "{expected_name}"')
def step_token_name(context, expected_name):
    context.verifier.expect_token_info(name=expected_name)


@then('The token has the symbol "{expected_symbol}"')
def step_token_symbol(context, expected_symbol):
    context.verifier.expect_token_info(symbol=expected_symbol)


@then('The token has {expected_decimals:d} decimals')
def step_token_decimals(context, expected_decimals):
    context.verifier.expect_token_info(decimals=expected_decimals)


@then('The token is owned by the account')
def step_token_owned_by_operator(context):
    context.verifier.expect_treasury(operator_role(context))


@then('The token is owned by the {role:w} account')
def step_token_owned_by(context, role):
    context.verifier.expect_treasury(role)


@then('The total supply of the token is {expected_supply:d}')
def step_total_supply(context, expected_supply):
    context.verifier.expect_token_info(total_supply=expected_supply)


# ========================================
# MINTING
# ========================================

@then('An attempt to mint {amount:d} additional tokens succeeds')
def step_mint_succeeds(context, amount):
    receipt = context.fixtures.mint(amount)
    receipt.raise_for_status()
    steps_logger.info(f"Minted {amount} tokens, total supply now {receipt.total_supply}")


@then('An attempt to mint tokens fails')
def step_mint_default_amount_fails(context):
    step_mint_fails(context, DEFAULT_MINT_ATTEMPT)


@then('An attempt to mint {amount:d} tokens fails')
def step_mint_fails(context, amount):
    error = context.verifier.expect_failure(lambda: context.fixtures.mint(amount))
    token = context.ledger.require_token()
    if token.fixed_supply:
        # no signer can satisfy a missing supply key
        assert isinstance(error, PolicyViolation), f"Expected a policy violation, got {error!r}"
    steps_logger.info(f"Minting {amount} tokens failed as expected: {error}")


# ========================================
# ASSOCIATION AND HOLDINGS
# ========================================

@given('The {role:w} account is associated with the token')
@when('The {role:w} account associates with the token')
def step_associate(context, role):
    created = context.fixtures.ensure_association(role)
    steps_logger.info(f"The {role} account association {'created' if created else 'already existed'}")


@then('The {role:w} account is associated with the token')
def step_expect_association(context, role):
    context.verifier.expect_association(role)


@given('The {role:w} account holds {amount:d} {symbol:w} tokens')
def step_set_holding(context, role, amount, symbol):
    """Setup: the account ends up holding exactly this amount (treasury is the counterparty)."""
    check_symbol(context, symbol)
    context.fixtures.set_token_holding(role, amount)


@then('The {role:w} account holds {amount:d} {symbol:w} tokens')
def step_expect_holding(context, role, amount, symbol):
    check_symbol(context, symbol)
    context.verifier.expect_token_balance(role, amount)
