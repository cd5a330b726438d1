import json
import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence
from ..models.cart import CustomerRef
from ..models.offer import OfferLineItem, OfferUsageRecord

OFFER_COLUMNS = (
    "name", "description", "offer_type", "is_active", "priority",
    "start_date", "end_date", "valid_hours_start", "valid_hours_end",
    "valid_days", "usage_limit", "promo_code", "target_customer_type",
    "conditions", "benefits",
)

OFFER_WITH_ITEMS = """
    SELECT o.*,
        COALESCE((SELECT json_agg(json_build_object(
            'id', oi.id,
            'menu_item_id', oi.menu_item_id,
            'menu_category_id', oi.menu_category_id,
            'item_type', oi.item_type,
            'quantity', oi.quantity
        ) ORDER BY oi.id)
        FROM offer_items oi
        WHERE oi.offer_id = o.id
        ), '[]'::json) as offer_items
    FROM offers o
"""

def _json_default(value):
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")

def _to_json(value) -> Optional[str]:
    if value is None:
        return None
    return json.dumps(value, default=_json_default)

class OfferService:
    """Offer storage: what the offer engine reads and the admin panel writes"""

    def __init__(self, db):
        self.db = db
        self.logger = logging.getLogger(__name__)

    async def query_offers(self, is_active: bool = True, promo_code: Optional[str] = None) -> List[Dict[str, Any]]:
        """Offers by active flag; promo offers only when their code is asked for"""
        if promo_code:
            query = OFFER_WITH_ITEMS + """
                WHERE o.is_active = $1 AND UPPER(o.promo_code) = $2
                ORDER BY o.created_at
            """
            params = [is_active, promo_code.upper()]
        else:
            query = OFFER_WITH_ITEMS + """
                WHERE o.is_active = $1 AND o.promo_code IS NULL
                ORDER BY o.created_at
            """
            params = [is_active]

        async with self.db.pool.acquire() as conn:
            offers = await conn.fetch(query, *params)
            return [dict(o) for o in offers]

    async def count_prior_orders(self, customer: CustomerRef) -> int:
        """Orders already placed with the customer's email or phone"""
        clauses = []
        params = []
        if customer.email:
            params.append(customer.email)
            clauses.append(f"customer_email = ${len(params)}")
        if customer.phone:
            params.append(customer.phone)
            clauses.append(f"customer_phone = ${len(params)}")

        if not clauses:
            return 0

        async with self.db.pool.acquire() as conn:
            count = await conn.fetchval(
                f"SELECT COUNT(*) FROM orders WHERE {' OR '.join(clauses)}",
                *params
            )
            return int(count or 0)

    async def record_offer_usage(self, records: Sequence[OfferUsageRecord]):
        """Insert one offer_usage row per applied offer"""
        if not records:
            return

        rows = [
            (
                record.offer_id,
                record.order_id,
                record.customer_email,
                record.customer_phone,
                record.discount_amount,
                _to_json([grant.model_dump(mode="json") for grant in record.free_items]),
            )
            for record in records
        ]

        async with self.db.pool.acquire() as conn:
            await conn.executemany("""
                INSERT INTO offer_usage (
                    offer_id, order_id, customer_email, customer_phone,
                    discount_amount, free_items
                ) VALUES ($1, $2, $3, $4, $5, $6)
            """, rows)

    async def increment_offer_usage_count(self, offer_id: str) -> bool:
        """Atomic usage_count + 1"""
        async with self.db.pool.acquire() as conn:
            result = await conn.execute("""
                UPDATE offers
                SET usage_count = COALESCE(usage_count, 0) + 1
                WHERE id = $1
            """, offer_id)
            return result == "UPDATE 1"

    async def create_offer(self, offer_data: Dict[str, Any], line_items: Sequence[OfferLineItem] = ()) -> str:
        """Insert an offer prepared by prepare_offer, with its items"""
        columns = [c for c in OFFER_COLUMNS if c in offer_data]
        values = [self._column_value(c, offer_data[c]) for c in columns]
        placeholders = ", ".join(f"${i}" for i in range(1, len(columns) + 1))

        async with self.db.pool.acquire() as conn:
            async with conn.transaction():
                offer_id = await conn.fetchval(f"""
                    INSERT INTO offers ({', '.join(columns)})
                    VALUES ({placeholders})
                    RETURNING id
                """, *values)

                await self._insert_items(conn, offer_id, line_items)

        self.logger.info(f"Offer {offer_id} created ({offer_data.get('offer_type')})")
        return str(offer_id)

    async def update_offer(self, offer_id: str, offer_data: Dict[str, Any],
                           line_items: Optional[Sequence[OfferLineItem]] = None) -> bool:
        """Update offer columns; line_items, when given, replace the old ones"""
        query_parts = []
        params = []
        param_count = 1

        for key in OFFER_COLUMNS:
            if key not in offer_data:
                continue
            query_parts.append(f"{key} = ${param_count}")
            params.append(self._column_value(key, offer_data[key]))
            param_count += 1

        if not query_parts and line_items is None:
            return False

        async with self.db.pool.acquire() as conn:
            async with conn.transaction():
                if query_parts:
                    params.append(offer_id)
                    result = await conn.execute(f"""
                        UPDATE offers
                        SET {', '.join(query_parts)}, updated_at = NOW()
                        WHERE id = ${param_count}
                    """, *params)
                    if result != "UPDATE 1":
                        return False

                if line_items is not None:
                    await conn.execute("DELETE FROM offer_items WHERE offer_id = $1", offer_id)
                    await self._insert_items(conn, offer_id, line_items)

                return True

    async def get_offer(self, offer_id: str) -> Optional[Dict[str, Any]]:
        """One offer with its items"""
        async with self.db.pool.acquire() as conn:
            offer = await conn.fetchrow(OFFER_WITH_ITEMS + " WHERE o.id = $1", offer_id)
            return dict(offer) if offer else None

    async def list_offers(self) -> List[Dict[str, Any]]:
        """All offers for the admin panel, highest priority first"""
        async with self.db.pool.acquire() as conn:
            offers = await conn.fetch(
                OFFER_WITH_ITEMS + " ORDER BY o.is_active DESC, o.priority DESC, o.created_at DESC"
            )
            return [dict(o) for o in offers]

    async def set_offer_active(self, offer_id: str, is_active: bool) -> bool:
        """Switch an offer on or off"""
        async with self.db.pool.acquire() as conn:
            result = await conn.execute("""
                UPDATE offers
                SET is_active = $1, updated_at = NOW()
                WHERE id = $2
            """, is_active, offer_id)
            return result == "UPDATE 1"

    async def get_offer_usage_stats(self, offer_id: str) -> Dict[str, Any]:
        """How often an offer was used and what it gave away"""
        async with self.db.pool.acquire() as conn:
            stats = await conn.fetchrow("""
                SELECT
                    COUNT(*) as total_usage,
                    COALESCE(SUM(ou.discount_amount), 0) as total_discount_amount,
                    COALESCE(SUM(o.total_amount), 0) as total_order_amount,
                    COUNT(DISTINCT COALESCE(ou.customer_phone, ou.customer_email)) as unique_customers
                FROM offer_usage ou
                LEFT JOIN orders o ON o.id = ou.order_id
                WHERE ou.offer_id = $1
            """, offer_id)
            return dict(stats)

    @staticmethod
    def _column_value(column: str, value: Any) -> Any:
        if column in ("conditions", "benefits"):
            return _to_json(value)
        return value

    @staticmethod
    async def _insert_items(conn, offer_id, line_items: Sequence[OfferLineItem]):
        if not line_items:
            return
        await conn.executemany("""
            INSERT INTO offer_items (
                offer_id, menu_item_id, menu_category_id, item_type, quantity
            ) VALUES ($1, $2, $3, $4, $5)
        """, [
            (offer_id, line.menu_item_id, line.menu_category_id, line.role.value, line.quantity)
            for line in line_items
        ])
