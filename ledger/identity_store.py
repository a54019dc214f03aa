"""
Identity store: resolves scenario roles to configured participants.

The accounts document is an ordered list; "first" is index 0, "second" index 1
and so on. Roles may also be given by participant name or zero-based index.
"""
from typing import Any, Dict, List, Optional, Union

from jsonschema import Draft7Validator

from ledger.keys import PrivateKey
from ledger.models import AccountId, Participant
from utils.config_loader import ConfigLoader, config_loader
from utils.custom_exceptions import ConfigurationError
from utils.logger import get_logger


ORDINALS = ("first", "second", "third", "fourth", "fifth",
            "sixth", "seventh", "eighth", "ninth", "tenth")

ACCOUNTS_SCHEMA = {
    "type": "object",
    "required": ["accounts"],
    "properties": {
        "accounts": {
            "type": "array",
            "minItems": 1,
            "items": {
                "type": "object",
                "required": ["id", "private_key"],
                "properties": {
                    "name": {"type": "string", "minLength": 1},
                    "id": {"type": "string", "pattern": r"^\d+\.\d+\.\d+$"},
                    "private_key": {"type": "string", "minLength": 1},
                    "initial_balance_hbar": {"type": "number", "minimum": 0},
                },
            },
        }
    },
}

logger = get_logger("identity_store")


class IdentityStore:
    """Ordered participant credentials; no network access."""

    def __init__(self, document: Dict[str, Any], source: Optional[str] = None):
        self.source = source
        self._validate(document)
        self._entries: List[Dict[str, Any]] = list(document["accounts"])
        self._participants: Dict[int, Participant] = {}

    @classmethod
    def from_config(cls, loader: Optional[ConfigLoader] = None,
                    accounts_file: Optional[str] = None) -> "IdentityStore":
        loader = loader or config_loader
        filename = accounts_file or loader.get_ledger_config().accounts_file
        return cls(loader.get_accounts_config(filename), source=filename)

    def _validate(self, document: Any) -> None:
        validator = Draft7Validator(ACCOUNTS_SCHEMA)
        errors = sorted(validator.iter_errors(document or {}), key=lambda e: list(e.path))
        if errors:
            messages = [
                f"{'.'.join(str(p) for p in e.path) or 'root'}: {e.message}" for e in errors
            ]
            raise ConfigurationError(
                f"Invalid accounts configuration: {'; '.join(messages)}",
                config_file=self.source, errors=messages,
            )

    def __len__(self):
        return len(self._entries)

    def index_of(self, role: Union[str, int]) -> int:
        """Map an ordinal word, participant name or index to a list position."""
        if isinstance(role, int):
            index = role
        else:
            text = str(role).strip().lower()
            if text.endswith(" account"):
                text = text[: -len(" account")].strip()
            if text.isdigit():
                index = int(text)
            elif text in ORDINALS:
                index = ORDINALS.index(text)
            else:
                names = [str(e.get("name", "")).lower() for e in self._entries]
                if text not in names:
                    raise ConfigurationError(f"Unknown participant role '{role}'",
                                             config_key="accounts", config_file=self.source)
                index = names.index(text)
        if not 0 <= index < len(self._entries):
            raise ConfigurationError(
                f"Role '{role}' needs participant #{index + 1} but only "
                f"{len(self._entries)} are configured",
                config_key="accounts", config_file=self.source,
            )
        return index

    def resolve(self, role: Union[str, int]) -> Participant:
        index = self.index_of(role)
        if index not in self._participants:
            entry = self._entries[index]
            name = entry.get("name") or (ORDINALS[index] if index < len(ORDINALS) else str(index))
            try:
                account_id = AccountId.from_string(entry["id"])
                private_key = PrivateKey.from_string(entry["private_key"])
            except ConfigurationError as e:
                raise ConfigurationError(
                    f"Malformed credentials for participant '{name}': {e.message}",
                    config_key=f"accounts[{index}]", config_file=self.source,
                )
            self._participants[index] = Participant(name, account_id, private_key)
            logger.debug(f"Resolved role '{role}' to {name} ({account_id})")
        return self._participants[index]

    def participants(self) -> List[Participant]:
        return [self.resolve(i) for i in range(len(self._entries))]

    def initial_balance_hbar(self, role: Union[str, int]) -> Optional[float]:
        """Configured genesis balance override for a participant, if any."""
        return self._entries[self.index_of(role)].get("initial_balance_hbar")
