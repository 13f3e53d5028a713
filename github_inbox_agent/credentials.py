"""Access token lookup for polled accounts."""

import logging
import os
import re
from abc import ABC, abstractmethod
from typing import List, Optional

logger = logging.getLogger(__name__)


class TokenProvider(ABC):
    """Abstract source of bearer tokens."""

    @abstractmethod
    def get_token(self, account_id: str) -> Optional[str]:
        """
        Return the current token for the account.

        Returns:
            The token, or None if the account has no credential (polling is skipped).
        """
        pass

    def has_token(self, account_id: str) -> bool:
        return bool(self.get_token(account_id))


def _account_key(account_id: str) -> str:
    return re.sub(r"[^A-Za-z0-9]", "_", account_id).upper()


class EnvTokenProvider(TokenProvider):
    """
    Reads tokens from the environment.

    The "default" account uses ``GITHUB_TOKEN``. Other accounts use
    ``GITHUB_TOKEN_<account>`` or ``GITHUB_TOKEN_<ACCOUNT_KEY>`` where the key is
    the account id upper-cased with non-alphanumerics replaced by underscores.
    """

    def get_token(self, account_id: str) -> Optional[str]:
        if account_id == "default":
            token = os.getenv("GITHUB_TOKEN")
        else:
            token = (
                os.getenv(f"GITHUB_TOKEN_{account_id}") or
                os.getenv(f"GITHUB_TOKEN_{_account_key(account_id)}")
            )
        if token:
            token = token.strip()
        return token or None

    def accounts_with_tokens(self, account_ids: List[str]) -> List[str]:
        return [account_id for account_id in account_ids if self.has_token(account_id)]
