import logging
from typing import Dict, List, Optional, Any
from ..models.cart import CartLine, CustomerRef
from ..models.offer import ResolvedFreeItem
from ..models.order import Order, OrderStatus, OrderType
from ..offers.calculator import OfferCalculator

ORDER_WITH_ITEMS = """
    SELECT o.*,
        (SELECT json_agg(json_build_object(
            'menu_item_id', oi.menu_item_id,
            'name', oi.name,
            'quantity', oi.quantity,
            'price_per_unit', oi.price_per_unit,
            'is_free', oi.is_free
        ))
        FROM order_items oi
        WHERE oi.order_id = o.id
        ) as items
    FROM orders o
"""

class OrderService:
    def __init__(self, db, calculator: OfferCalculator):
        self.db = db
        self.calculator = calculator
        self.logger = logging.getLogger(__name__)

    async def place_order(self, cart: List[CartLine], customer: CustomerRef,
                          order_type: OrderType = OrderType.DINE_IN,
                          promo_code: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """Store the order with its offers, then book the offer usage"""
        if not cart:
            return None

        calculation = await self.calculator.calculate(cart, customer, promo_code)
        used_code = promo_code.strip().upper() if promo_code and calculation.applied_offers else None

        try:
            async with self.db.pool.acquire() as conn:
                async with conn.transaction():
                    order_id = await conn.fetchval("""
                        INSERT INTO orders (
                            order_type, status, table_code, customer_email, customer_phone,
                            total_amount, discount_amount, final_amount, promo_code
                        ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
                        RETURNING id
                    """,
                        order_type.value,
                        OrderStatus.PENDING.value,
                        customer.table_code,
                        customer.email,
                        customer.phone,
                        calculation.original_amount,
                        calculation.discount_amount,
                        calculation.final_amount,
                        used_code
                    )

                    rows = [
                        (order_id, line.item_id, line.name, line.quantity, line.price, False)
                        for line in cart
                    ]
                    rows.extend(
                        (order_id, grant.item_id, grant.item_name, grant.quantity, grant.unit_price, True)
                        for grant in calculation.free_items
                        if isinstance(grant, ResolvedFreeItem)
                    )
                    await conn.executemany("""
                        INSERT INTO order_items (
                            order_id, menu_item_id, name, quantity, price_per_unit, is_free
                        ) VALUES ($1, $2, $3, $4, $5, $6)
                    """, rows)

        except Exception as e:
            self.logger.error(f"Error placing order: {e}", exc_info=True)
            return None

        order_id = str(order_id)
        self.logger.info(f"Order {order_id} placed with {len(calculation.applied_offers)} offer(s)")

        await self.calculator.record_usage(calculation.applied_offers, order_id, customer)

        return {
            "order_id": order_id,
            "calculation": calculation,
        }

    async def get_order(self, order_id: str) -> Optional[Order]:
        """One order with its items"""
        async with self.db.pool.acquire() as conn:
            order = await conn.fetchrow(ORDER_WITH_ITEMS + " WHERE o.id = $1", order_id)
            return Order(**dict(order)) if order else None

    async def get_customer_orders(self, customer: CustomerRef, limit: int = 10) -> List[Order]:
        """Latest orders placed with the customer's phone or email"""
        clauses = []
        params = []
        if customer.phone:
            params.append(customer.phone)
            clauses.append(f"o.customer_phone = ${len(params)}")
        if customer.email:
            params.append(customer.email)
            clauses.append(f"o.customer_email = ${len(params)}")

        if not clauses:
            return []

        params.append(limit)
        async with self.db.pool.acquire() as conn:
            orders = await conn.fetch(
                ORDER_WITH_ITEMS
                + f" WHERE {' OR '.join(clauses)} ORDER BY o.created_at DESC LIMIT ${len(params)}",
                *params
            )
            return [Order(**dict(order)) for order in orders]

    async def update_order_status(self, order_id: str, status: OrderStatus) -> bool:
        """Move an order along the kitchen workflow"""
        async with self.db.pool.acquire() as conn:
            result = await conn.execute("""
                UPDATE orders
                SET status = $1, updated_at = CURRENT_TIMESTAMP
                WHERE id = $2
            """, status.value, order_id)
            return result == "UPDATE 1"
