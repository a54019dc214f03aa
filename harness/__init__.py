"""
Scenario harness: per-scenario context, fixture builders and outcome verifier.
"""
from .context import ScenarioContext, TokenHandle, TopicHandle, BalanceSnapshot
from .fixtures import FixtureBuilders
from .verifier import OutcomeVerifier
from .message_waiter import MessageWaiter

__all__ = [
    'ScenarioContext',
    'TokenHandle',
    'TopicHandle',
    'BalanceSnapshot',
    'FixtureBuilders',
    'OutcomeVerifier',
    'MessageWaiter'
]
