"""
Shared helpers for the ledger step definitions (no steps are defined here).
"""
import re
import sys
from pathlib import Path

# Get project root (go up 3 levels: steps -> features -> project_root)
project_root = Path(__file__).resolve().parent.parent.parent
sys.path.insert(0, str(project_root))

from utils.custom_exceptions import PreconditionError
from utils.logger import get_logger

steps_logger = get_logger("ledger_steps")


def bind_participant(context, role):
    """Bind ``role``; binding the configured operator also authenticates the session."""
    ledger = context.ledger
    participant = ledger.bind(role)
    if ledger.session is None and participant == ledger.identity_store.resolve(context.ledger_config.operator):
        ledger.authenticate(role)
    return participant


def operator_role(context):
    session = context.ledger.require_session()
    return context.ledger.role_of(session.operator)


def check_symbol(context, *symbols):
    token = context.ledger.require_token()
    for symbol in symbols:
        if token.symbol != symbol:
            raise PreconditionError(
                f"Step refers to {symbol} but the current token is {token.symbol}",
                resource="token", symbol=symbol,
            )
    return token


def parse_roles(text):
    """'first, second and third' -> ['first', 'second', 'third']"""
    return [role for role in re.split(r",\s*|\s+and\s+", text.strip()) if role]
