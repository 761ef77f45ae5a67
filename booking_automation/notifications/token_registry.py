"""
Push token registry
Tokens live on the owner's document (users/{id} or staff/{id}). A token the
transport rejected for good is removed before anything else targets it.
"""

import logging
from typing import Optional

from ..store import DocumentStore, Transaction, delete_field

logger = logging.getLogger(__name__)

# Older app builds wrote the camelCase name
TOKEN_FIELDS = ("fcm_token", "fcmToken")


def token_from(data: Optional[dict]) -> Optional[str]:
    """Return the usable push token stored on a document, if any"""
    if not data:
        return None
    for name in TOKEN_FIELDS:
        token = data.get(name)
        if isinstance(token, str) and token.strip():
            return token
    return None


class TokenRegistry:
    def __init__(self, store: DocumentStore):
        self.store = store

    async def get_token(self, owner_path: str) -> Optional[str]:
        return token_from(await self.store.get(owner_path))

    async def remove_token(self, owner_path: str, token: str) -> bool:
        """
        Remove token from the owner document if it is still the stored one.
        A token registered after the failed send is left alone.
        """

        async def _remove(tx: Transaction) -> bool:
            data = await tx.get(owner_path)
            if token_from(data) != token:
                return False
            tx.write(
                [delete_field(owner_path, name) for name in TOKEN_FIELDS if name in data]
            )
            return True

        removed = await self.store.run_transaction(_remove)
        if removed:
            logger.info(f"🧹 Removed invalid push token from {owner_path}")
        else:
            logger.debug(f"Push token on {owner_path} already replaced or removed")
        return removed
