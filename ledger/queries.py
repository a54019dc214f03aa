"""Read-only ledger requests, executed through ``LedgerSession.query``."""
from dataclasses import dataclass

from ledger.models import AccountId, TokenId, TopicId


@dataclass(frozen=True)
class AccountBalanceQuery:
    account_id: AccountId

    def execute(self, network):
        return network.get_account_balance(self.account_id)


@dataclass(frozen=True)
class AccountInfoQuery:
    account_id: AccountId

    def execute(self, network):
        return network.get_account_info(self.account_id)


@dataclass(frozen=True)
class TokenInfoQuery:
    token_id: TokenId

    def execute(self, network):
        return network.get_token_info(self.token_id)


@dataclass(frozen=True)
class TopicInfoQuery:
    topic_id: TopicId

    def execute(self, network):
        return network.get_topic_info(self.topic_id)
