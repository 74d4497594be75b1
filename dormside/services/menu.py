"""
Menu Store

The menu lives in ``menu.json`` beside the order data::

    {"items": [{"name": "...", "description": "...", "price": "$9.50"}]}

Prices stay display strings; pricing parses them when a cart is quoted.
"""

import asyncio
import logging
from pathlib import Path

from dormside.core.errors import StorageUnavailable
from dormside.schemas import MenuItem
from dormside.services.storage.file import LockedJsonFile

logger = logging.getLogger(__name__)


def _is_complete(item: MenuItem) -> bool:
    return bool(item.name.strip() and item.description.strip() and item.price.strip())


class MenuStore:
    """Reads and replaces the menu document under a file lock."""

    def __init__(self, data_directory: str, lock_timeout: float = 30, read_only: bool = False):
        self._file = LockedJsonFile(
            Path(data_directory) / "menu.json",
            lock_timeout=lock_timeout,
            read_only=read_only,
        )

    def _load(self) -> list[MenuItem]:
        try:
            document = self._file.read()
        except StorageUnavailable:
            logger.warning("Unreadable menu file; serving an empty menu")
            return []
        if not isinstance(document, dict) or not isinstance(document.get("items"), list):
            return []
        return [MenuItem.model_validate(raw) for raw in document["items"] if isinstance(raw, dict)]

    async def get_menu(self) -> list[MenuItem]:
        return await asyncio.to_thread(self._file.locked, self._load)

    async def update_menu(self, items: list[MenuItem]) -> list[MenuItem]:
        """
        Replace the menu.

        Items missing a name, description or price are dropped; the rest
        are stored with surrounding whitespace trimmed.
        """
        sanitized = [
            MenuItem(
                name=item.name.strip(),
                description=item.description.strip(),
                price=item.price.strip(),
            )
            for item in items
            if _is_complete(item)
        ]
        document = {"items": [item.model_dump(by_alias=True) for item in sanitized]}
        await asyncio.to_thread(self._file.locked, lambda: self._file.write(document))
        logger.info(f"Menu updated: {len(sanitized)} items ({len(items) - len(sanitized)} dropped)")
        return sanitized
