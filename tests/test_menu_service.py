"""MenuService rows come back as menu models."""
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from restobot.models.menu import MenuItem
from restobot.services.menu_service import MenuService

CREATED = datetime(2024, 6, 1, 10, 0)
PIZZA_ID = UUID(int=7)
MAINS_ID = UUID(int=3)


def item_row(**fields):
    row = {
        "id": PIZZA_ID,
        "category_id": MAINS_ID,
        "category_name": "Mains",
        "name": "Margherita",
        "description": None,
        "price": Decimal("349.00"),
        "is_veg": True,
        "is_available": True,
        "display_order": 1,
        "created_at": CREATED,
        "updated_at": None,
    }
    row.update(fields)
    return row


async def test_categories(db, conn):
    conn.fetch.return_value = [
        {"id": MAINS_ID, "name": "Mains", "description": None, "display_order": 1,
         "is_active": True, "created_at": CREATED, "updated_at": None},
    ]

    categories = await MenuService(db).get_categories()

    assert [(c.id, c.name) for c in categories] == [(str(MAINS_ID), "Mains")]
    assert "WHERE is_active = true" in conn.fetch.await_args.args[0]


async def test_category_items(db, conn):
    conn.fetch.return_value = [item_row()]

    [item] = await MenuService(db).get_category_items(str(MAINS_ID))

    assert item.id == str(PIZZA_ID)
    assert item.category_id == str(MAINS_ID)
    assert conn.fetch.await_args.args[1] == str(MAINS_ID)


async def test_missing_item(db, conn):
    assert await MenuService(db).get_item("404") is None


async def test_item_to_cart_line(db, conn):
    conn.fetchrow.return_value = item_row(category_id=None)

    item = await MenuService(db).get_item(str(PIZZA_ID))
    cart_line = item.to_cart_line(quantity=2)

    assert cart_line.item_id == str(PIZZA_ID)
    assert cart_line.category_id is None
    assert cart_line.line_total == Decimal("698.00")
    assert cart_line.is_veg


def test_menu_item_keeps_category_for_offers():
    cart_line = MenuItem(**item_row()).to_cart_line()

    assert cart_line.category_id == str(MAINS_ID)
    assert cart_line.quantity == 1
