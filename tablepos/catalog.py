"""Menu catalog: menu item id -> recipe."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from .db.repositories import MenuRepository
from .errors import RemoteError
from .models import MenuItem

if TYPE_CHECKING:
    from .remote.client import RemoteClient

logger = logging.getLogger(__name__)


class MenuCatalog:
    """Looks up recipes from the locally cached menu."""

    def __init__(self, menu: MenuRepository) -> None:
        self._menu = menu
        self._index: dict[str, MenuItem] | None = None

    def _items_by_id(self) -> dict[str, MenuItem]:
        if self._index is None:
            self._index = {item.id: item for item in self._menu.items()}
        return self._index

    def get(self, menu_item_id: str) -> MenuItem | None:
        return self._items_by_id().get(menu_item_id)

    def items(self) -> list[MenuItem]:
        return list(self._items_by_id().values())

    def load(self, items: list[MenuItem]) -> None:
        """Replace the cached menu."""
        self._menu.save_items(items)
        self._index = None

    async def refresh(self, client: RemoteClient) -> bool:
        """Fetch the menu from the remote store and cache it.

        Returns:
            True if the cache was updated, False if the cached copy was kept.
        """
        try:
            payload = await client.get_menu()
        except RemoteError as e:
            logger.warning("Menu refresh failed, using cached menu: %s", e)
            return False
        items = parse_menu(payload)
        self.load(items)
        logger.info("Menu cached: %d items", len(items))
        return True


def parse_menu(payload: Any) -> list[MenuItem]:
    """Flatten the remote menu into MenuItems.

    Accepts a list of categories (``{"name", "items": [...]}``), a flat list
    of items, or either wrapped under a ``categories``/``items`` key.
    """
    if isinstance(payload, dict):
        payload = payload.get("categories") or payload.get("items") or []

    items: list[MenuItem] = []
    for entry in payload or []:
        if not isinstance(entry, dict):
            continue
        if "items" in entry:
            category = entry.get("name") or entry.get("category") or ""
            for raw in entry.get("items") or []:
                item = _parse_item(raw, category)
                if item is not None:
                    items.append(item)
        else:
            item = _parse_item(entry, entry.get("category", ""))
            if item is not None:
                items.append(item)
    return items


def _parse_item(raw: dict, category: str) -> MenuItem | None:
    if not raw.get("id"):
        logger.warning("Skipping menu entry without id: %r", raw.get("name"))
        return None
    item = MenuItem.from_dict(raw)
    item.category = item.category or category
    return item
