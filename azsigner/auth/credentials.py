"""
Storage account credentials for SharedKey signing.

The account key arrives base64-encoded (as shown in the Azure portal) and is
decoded once, when the credentials are constructed.
"""

import base64
import binascii
import logging
from dataclasses import dataclass, field

from azsigner.auth.exceptions import DecodeError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Credentials:
    """Immutable credentials for one storage account."""

    account_name: str
    account_key: bytes = field(repr=False)  # Decoded
    service: str = ""

    @classmethod
    def from_base64(cls, account_name: str, account_key: str, service: str) -> "Credentials":
        """
        Build credentials from a base64-encoded account key.

        Args:
            account_name: Storage account name
            account_key: Base64-encoded shared key (standard alphabet, padded)
            service: Target service, e.g. "blob" or "queue"

        Returns:
            Credentials holding the decoded key

        Raises:
            DecodeError: If account_key is not valid base64
        """
        try:
            decoded_key = base64.b64decode(account_key, validate=True)
        except (binascii.Error, ValueError) as e:
            logger.warning(f"Rejected account key for account '{account_name}': {e}")
            raise DecodeError(f"decode account key: {e}") from e

        return cls(account_name=account_name, account_key=decoded_key, service=service)


def parse_credentials(account_name: str, account_key: str, service: str) -> Credentials:
    """Shorthand for Credentials.from_base64."""
    return Credentials.from_base64(account_name, account_key, service)
