"""
Builders for unit tests: generated participants, a funded local network and
a ready ScenarioContext.
"""
from harness.context import ScenarioContext
from harness.fixtures import FixtureBuilders
from harness.verifier import OutcomeVerifier
from ledger.client import LedgerClient
from ledger.identity_store import IdentityStore
from ledger.keys import PrivateKey
from utils.config_loader import LedgerConfig

NAMES = ("alice", "bob", "carol", "dave", "erin", "frank")


def make_accounts_document(count=4):
    return {
        "accounts": [
            {
                "name": NAMES[i],
                "id": f"0.0.{1001 + i}",
                "private_key": PrivateKey.generate().to_string(),
            }
            for i in range(count)
        ]
    }


def make_context(count=4, roles=("first", "second", "third", "fourth"), **config):
    """Context with ``roles`` bound and the first account authenticated as operator."""
    ledger_config = LedgerConfig(**config)
    store = IdentityStore(make_accounts_document(count))
    client = LedgerClient.for_local_network(store, ledger_config)
    context = ScenarioContext(store, client, ledger_config)
    for role in roles:
        context.bind(role)
    context.authenticate("first")
    return context, FixtureBuilders(context), OutcomeVerifier(context)
