from typing import List
from telegram import Update, ReplyKeyboardRemove
from telegram.ext import (
    ContextTypes, ConversationHandler, CommandHandler,
    MessageHandler, CallbackQueryHandler, filters
)
from .base_handler import BaseHandler
from ..config import Config
from ..models.cart import CartLine, CustomerRef
from ..models.order import OrderType
from ..offers.calculator import OfferCalculator
from ..services.menu_service import MenuService
from ..services.order_service import OrderService
from ..constants import (
    WAITING_PROMO_CODE, WAITING_CONTACT,
    CART_KEY, PROMO_CODE_KEY, CUSTOMER_KEY, ORDER_TYPE_KEY
)

class CartHandler(BaseHandler):
    """Guest side: menu, cart, offers and checkout"""
    def __init__(self, db, calculator: OfferCalculator):
        super().__init__(db)
        self.calculator = calculator
        self.menu_service = MenuService(db)
        self.order_service = OrderService(db, calculator)

    @staticmethod
    def get_cart(context: ContextTypes.DEFAULT_TYPE) -> List[CartLine]:
        """Cart kept in user_data as plain dicts"""
        return [
            CartLine.model_validate(line)
            for line in context.user_data.get(CART_KEY, {}).values()
        ]

    @staticmethod
    def get_customer(context: ContextTypes.DEFAULT_TYPE) -> CustomerRef:
        return CustomerRef(**context.user_data.get(CUSTOMER_KEY, {}))

    async def start(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """/start, optionally with the table code from the table's QR link"""
        customer = context.user_data.setdefault(CUSTOMER_KEY, {})

        if context.args and not context.args[0].lower().startswith("takeaway"):
            customer['table_code'] = context.args[0]
            context.user_data[ORDER_TYPE_KEY] = OrderType.DINE_IN.value
            where = f"Table {context.args[0]}"
        else:
            customer.pop('table_code', None)
            context.user_data[ORDER_TYPE_KEY] = OrderType.TAKEAWAY.value
            where = "Takeaway"

        await update.message.reply_text(
            f"Hi {update.effective_user.first_name}! 👋 Welcome to {Config.RESTAURANT_NAME}.\n\n"
            f"📍 {where}\n"
            "Browse the menu and add dishes to your cart.",
            reply_markup=self.keyboards.main_menu()
        )

    async def show_menu(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Menu categories"""
        categories = await self.menu_service.get_categories()

        if not categories:
            await self.reply(update, "The menu is not available right now.", self.keyboards.main_menu())
            return

        await self.reply(update, "🍽 Menu", self.keyboards.categories_menu(categories))

    async def show_category_items(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Items of one category"""
        category_id = update.callback_query.data.split('_', 1)[1]

        category = await self.menu_service.get_category(category_id)
        items = await self.menu_service.get_category_items(category_id)

        if not category or not items:
            await self.reply(update, "Nothing to order in this section right now.", self.keyboards.main_menu())
            return

        await self.reply(update, f"🍽 {category.name}", self.keyboards.items_menu(items))

    async def add_to_cart(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Add one unit of an item"""
        query = update.callback_query
        item_id = query.data.split('_', 1)[1]

        item = await self.menu_service.get_item(item_id)
        if not item:
            await query.answer("⚠️ This item is no longer available", show_alert=True)
            return

        cart = context.user_data.setdefault(CART_KEY, {})
        if item_id in cart:
            cart[item_id]['quantity'] += 1
        else:
            cart[item_id] = item.to_cart_line().model_dump(mode="json")

        await query.answer(f"✅ {item.name} added ({cart[item_id]['quantity']} in cart)")

    async def show_cart(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Cart with the offers that apply"""
        cart = self.get_cart(context)
        promo_code = context.user_data.get(PROMO_CODE_KEY)

        if not cart:
            await self.reply(update, "🛒 Your cart is empty.", self.keyboards.main_menu())
            return

        result = await self.calculator.calculate(cart, self.get_customer(context), promo_code)

        await self.reply(
            update,
            self.messages.format_cart(cart, result, promo_code),
            self.keyboards.cart_menu(has_promo=bool(promo_code))
        )

    async def clear_cart(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        context.user_data.pop(CART_KEY, None)
        context.user_data.pop(PROMO_CODE_KEY, None)
        await self.reply(update, "🗑 Cart cleared.", self.keyboards.main_menu())

    async def show_offers(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Running offers and what is missing to unlock them"""
        previews = await self.calculator.preview_offers(self.get_cart(context), self.get_customer(context))
        await self.reply(update, self.messages.format_offer_previews(previews), self.keyboards.main_menu())

    async def show_orders(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Latest orders of the guest"""
        customer = self.get_customer(context)
        if not customer.has_identity:
            await self.reply(update, "📱 Place an order first and we will remember it here.", self.keyboards.main_menu())
            return

        orders = await self.order_service.get_customer_orders(customer, limit=5)
        await self.reply(update, self.messages.format_orders(orders), self.keyboards.main_menu())

    async def start_promo_entry(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        await self.reply(update, "🏷 Send your promo code:")
        return WAITING_PROMO_CODE

    async def handle_promo_code(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Check the promo code against the cart"""
        result = await self.calculator.validate_promo_code(
            update.message.text,
            self.get_cart(context),
            self.get_customer(context)
        )

        if result['valid']:
            context.user_data[PROMO_CODE_KEY] = result['code']
            await update.message.reply_text(
                f"✅ {result['offer_name']} applied\n"
                f"💰 You save: {self.messages.format_price(result['amount'])}\n"
                f"📊 New total: {self.messages.format_price(result['final_amount'])}",
                reply_markup=self.keyboards.cart_menu(has_promo=True)
            )
        else:
            await update.message.reply_text(
                f"❌ {result['error']}",
                reply_markup=self.keyboards.main_menu()
            )
        return ConversationHandler.END

    async def remove_promo(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        context.user_data.pop(PROMO_CODE_KEY, None)
        await self.show_cart(update, context)

    async def start_checkout(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Ask for a phone number unless we already have one"""
        query = update.callback_query
        await query.answer()

        if not self.get_cart(context):
            await query.edit_message_text("🛒 Your cart is empty.", reply_markup=self.keyboards.main_menu())
            return ConversationHandler.END

        if self.get_customer(context).phone:
            await self._place_order(update, context)
            return ConversationHandler.END

        await query.message.reply_text(
            "📱 Please share your phone number so we can reach you about your order.",
            reply_markup=self.keyboards.contact_request()
        )
        return WAITING_CONTACT

    async def handle_contact(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        if update.message.contact:
            phone = update.message.contact.phone_number
        else:
            phone = update.message.text.strip()

        if not phone.lstrip('+').isdigit():
            await update.message.reply_text("❌ That does not look like a phone number. Try again:")
            return WAITING_CONTACT

        context.user_data.setdefault(CUSTOMER_KEY, {})['phone'] = phone
        await update.message.reply_text("👍 Thanks!", reply_markup=ReplyKeyboardRemove())
        await self._place_order(update, context)
        return ConversationHandler.END

    async def _place_order(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        order_type = OrderType(context.user_data.get(ORDER_TYPE_KEY, OrderType.TAKEAWAY.value))
        placed = await self.order_service.place_order(
            cart=self.get_cart(context),
            customer=self.get_customer(context),
            order_type=order_type,
            promo_code=context.user_data.get(PROMO_CODE_KEY)
        )

        if not placed:
            await update.effective_message.reply_text(
                "❌ We could not place your order. Please try again.",
                reply_markup=self.keyboards.main_menu()
            )
            return

        context.user_data.pop(CART_KEY, None)
        context.user_data.pop(PROMO_CODE_KEY, None)

        await update.effective_message.reply_text(
            self.messages.order_confirmation(placed['order_id'], placed['calculation']),
            reply_markup=self.keyboards.main_menu()
        )

    def build_handlers(self) -> list:
        """Telegram handlers for the guest flow"""
        promo_conversation = ConversationHandler(
            entry_points=[CallbackQueryHandler(self.start_promo_entry, pattern='^enter_promo$')],
            states={
                WAITING_PROMO_CODE: [
                    MessageHandler(filters.TEXT & ~filters.COMMAND, self.handle_promo_code)
                ]
            },
            fallbacks=[CommandHandler('cancel', self.cancel_conversation)]
        )

        checkout_conversation = ConversationHandler(
            entry_points=[CallbackQueryHandler(self.start_checkout, pattern='^checkout$')],
            states={
                WAITING_CONTACT: [
                    MessageHandler(filters.CONTACT, self.handle_contact),
                    MessageHandler(filters.TEXT & ~filters.COMMAND, self.handle_contact)
                ]
            },
            fallbacks=[CommandHandler('cancel', self.cancel_conversation)]
        )

        return [
            CommandHandler("start", self.start),
            CommandHandler("menu", self.show_menu),
            CommandHandler("cart", self.show_cart),
            CommandHandler("offers", self.show_offers),
            CommandHandler("orders", self.show_orders),
            promo_conversation,
            checkout_conversation,
            CallbackQueryHandler(self.show_menu, pattern='^show_menu$'),
            CallbackQueryHandler(self.show_category_items, pattern='^category_'),
            CallbackQueryHandler(self.add_to_cart, pattern='^cartadd_'),
            CallbackQueryHandler(self.show_cart, pattern='^view_cart$'),
            CallbackQueryHandler(self.clear_cart, pattern='^clear_cart$'),
            CallbackQueryHandler(self.show_offers, pattern='^view_offers$'),
            CallbackQueryHandler(self.remove_promo, pattern='^remove_promo$'),
        ]
