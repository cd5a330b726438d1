from typing import List, Optional
from ..models.menu import MenuCategory, MenuItem

class MenuService:
    def __init__(self, db):
        self.db = db

    async def get_categories(self) -> List[MenuCategory]:
        """Active menu categories in display order"""
        async with self.db.pool.acquire() as conn:
            categories = await conn.fetch("""
                SELECT *
                FROM menu_categories
                WHERE is_active = true
                ORDER BY display_order, name
            """)
            return [MenuCategory(**dict(c)) for c in categories]

    async def get_category(self, category_id: str) -> Optional[MenuCategory]:
        """One menu category"""
        async with self.db.pool.acquire() as conn:
            category = await conn.fetchrow("""
                SELECT *
                FROM menu_categories
                WHERE id = $1
            """, category_id)
            return MenuCategory(**dict(category)) if category else None

    async def get_category_items(self, category_id: str) -> List[MenuItem]:
        """Items of a category that can be ordered right now"""
        async with self.db.pool.acquire() as conn:
            items = await conn.fetch("""
                SELECT i.*, c.name as category_name
                FROM menu_items i
                LEFT JOIN menu_categories c ON c.id = i.category_id
                WHERE i.category_id = $1 AND i.is_available = true
                ORDER BY i.display_order, i.name
            """, category_id)
            return [MenuItem(**dict(i)) for i in items]

    async def get_item(self, item_id: str) -> Optional[MenuItem]:
        """One available menu item"""
        async with self.db.pool.acquire() as conn:
            item = await conn.fetchrow("""
                SELECT i.*, c.name as category_name
                FROM menu_items i
                LEFT JOIN menu_categories c ON c.id = i.category_id
                WHERE i.id = $1 AND i.is_available = true
            """, item_id)
            return MenuItem(**dict(item)) if item else None
