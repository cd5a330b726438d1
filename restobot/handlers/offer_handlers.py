import logging
from telegram import Update, InlineKeyboardButton, InlineKeyboardMarkup
from telegram.ext import (
    ContextTypes, ConversationHandler, CommandHandler,
    MessageHandler, CallbackQueryHandler, filters
)
from .base_handler import BaseHandler
from ..exceptions import OfferValidationError
from ..models.offer import OfferType
from ..offers.validation import parse_offer_text, prepare_offer
from ..services.offer_service import OfferService
from ..constants import (
    WAITING_OFFER_TYPE, WAITING_OFFER_NAME, WAITING_OFFER_TERMS, NEW_OFFER_KEY
)

COMMON_TERMS_HELP = (
    "Optional for every type:\n"
    "description=...\n"
    "priority=5\n"
    "start_date=2024-12-01  end_date=2024-12-31\n"
    "valid_days=saturday,sunday\n"
    "valid_hours_start=12:00  valid_hours_end=15:00\n"
    "usage_limit=100"
)

TERMS_HELP = {
    OfferType.CART_PERCENTAGE: "discount_percentage=10\nmin_amount=500\nmax_discount_amount=200",
    OfferType.CART_FLAT_AMOUNT: "discount_amount=100\nmin_amount=800",
    OfferType.MIN_ORDER_DISCOUNT: "threshold_amount=1000\ndiscount_percentage=15 (or discount_amount=150)",
    OfferType.CART_THRESHOLD_ITEM: "threshold_amount=999\nmax_price=150\nget=item:<id> (one line per choice)",
    OfferType.ITEM_BUY_GET_FREE: (
        "buy_quantity=2\nget_quantity=1\nget_same_item=yes\n"
        "buy=item:<id>\nget=item:<id>"
    ),
    OfferType.ITEM_FREE_ADDON: "buy=category:<id>\nget=item:<id> x1\nmax_price=80",
    OfferType.ITEM_PERCENTAGE: "categories=<id>,<id>\ndiscount_percentage=20\ntarget=category:<id>",
    OfferType.TIME_BASED: (
        "valid_hours_start=16:00\nvalid_hours_end=19:00\n"
        "discount_percentage=25\ncategories=<id> (optional)"
    ),
    OfferType.CUSTOMER_BASED: (
        "customer_type=first_time|returning|loyalty|all\n"
        "min_orders_count=5 (loyalty)\ndiscount_percentage=10"
    ),
    OfferType.COMBO_MEAL: "combo_price=499\nbuy=item:<id>\nbuy=item:<id>",
    OfferType.PROMO_CODE: "promo_code=WELCOME50\ndiscount_amount=50\nmin_amount=300",
}

class OfferAdminHandler(BaseHandler):
    """Offer management for restaurant staff"""
    def __init__(self, db):
        super().__init__(db)
        self.offer_service = OfferService(db)
        self.logger = logging.getLogger(__name__)

    async def offers_panel(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Entry point of the offer panel"""
        if not await self.is_admin(update.effective_user.id):
            await update.effective_message.reply_text("⛔️ You do not have access to this section.")
            return

        await self.reply(update, "🎁 Offer management", self.keyboards.admin_menu())

    async def list_offers(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """All offers with on/off and stats buttons"""
        if not await self.is_admin(update.effective_user.id):
            await update.callback_query.answer("⛔️ Admins only", show_alert=True)
            return

        offers = await self.offer_service.list_offers()
        if not offers:
            await self.reply(update, "No offers yet.", self.keyboards.admin_menu())
            return

        text = "\n".join(self.messages.format_offer(offer) for offer in offers)
        await self.reply(update, text, self.keyboards.offers_list(offers))

    async def toggle_offer(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Switch an offer on or off"""
        query = update.callback_query
        if not await self.is_admin(update.effective_user.id):
            await query.answer("⛔️ Admins only", show_alert=True)
            return

        offer_id = query.data.split('_', 2)[2]
        offer = await self.offer_service.get_offer(offer_id)
        if not offer:
            await query.answer("⚠️ Offer not found", show_alert=True)
            return

        if await self.offer_service.set_offer_active(offer_id, not offer['is_active']):
            self.logger.info(
                f"Offer {offer_id} {'paused' if offer['is_active'] else 'activated'} "
                f"by {update.effective_user.id}"
            )
        await self.list_offers(update, context)

    async def offer_stats(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Usage report of one offer"""
        query = update.callback_query
        if not await self.is_admin(update.effective_user.id):
            await query.answer("⛔️ Admins only", show_alert=True)
            return

        offer_id = query.data.split('_', 2)[2]
        offer = await self.offer_service.get_offer(offer_id)
        if not offer:
            await query.answer("⚠️ Offer not found", show_alert=True)
            return

        stats = await self.offer_service.get_offer_usage_stats(offer_id)
        await self.reply(
            update,
            self.messages.format_offer(offer) + "\n" + self.messages.format_usage_stats(offer, stats),
            InlineKeyboardMarkup([[InlineKeyboardButton("🔙 Back", callback_data="list_offers")]])
        )

    async def add_offer_start(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Start of the new offer conversation"""
        query = update.callback_query
        if not await self.is_admin(update.effective_user.id):
            await query.answer("⛔️ Admins only", show_alert=True)
            return ConversationHandler.END

        context.user_data[NEW_OFFER_KEY] = {}
        await self.reply(update, "📊 Choose the offer type:", self.keyboards.offer_types())
        return WAITING_OFFER_TYPE

    async def add_offer_type(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        query = update.callback_query
        offer_type = query.data.split('_', 1)[1]
        context.user_data.setdefault(NEW_OFFER_KEY, {})['offer_type'] = offer_type

        await self.reply(update, "🏷 Send the offer name:")
        return WAITING_OFFER_NAME

    async def add_offer_name(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        name = update.message.text.strip()
        if not name:
            await update.message.reply_text("❌ The name cannot be empty. Send the offer name:")
            return WAITING_OFFER_NAME

        new_offer = context.user_data.setdefault(NEW_OFFER_KEY, {})
        new_offer['name'] = name
        offer_type = OfferType(new_offer['offer_type'])

        await update.message.reply_text(
            "📝 Send the offer terms, one key=value per line.\n\n"
            f"For {offer_type.value.replace('_', ' ')}:\n"
            f"{TERMS_HELP[offer_type]}\n\n"
            f"{COMMON_TERMS_HELP}\n\n"
            "/cancel to stop."
        )
        return WAITING_OFFER_TERMS

    async def add_offer_terms(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Validate and store the new offer"""
        new_offer = context.user_data.get(NEW_OFFER_KEY, {})
        offer_type = new_offer.get('offer_type')

        try:
            form, line_items = parse_offer_text(update.message.text)
            form['name'] = new_offer.get('name')
            offer_data = prepare_offer(offer_type, form, line_items)
        except OfferValidationError as e:
            await update.message.reply_text(
                "❌ The offer was not saved:\n"
                + "\n".join(f"- {error}" for error in e.errors)
                + "\n\nFix the terms and send them again, or /cancel."
            )
            return WAITING_OFFER_TERMS
        except ValueError as e:
            await update.message.reply_text(f"❌ {e}\n\nSend the terms again, or /cancel.")
            return WAITING_OFFER_TERMS

        try:
            offer_id = await self.offer_service.create_offer(offer_data, line_items)
        except Exception as e:
            self.logger.error(f"Error creating offer: {e}", exc_info=True)
            await update.message.reply_text(
                "❌ The offer could not be saved. Is the promo code already taken?",
                reply_markup=self.keyboards.admin_menu()
            )
            context.user_data.pop(NEW_OFFER_KEY, None)
            return ConversationHandler.END

        context.user_data.pop(NEW_OFFER_KEY, None)
        offer = await self.offer_service.get_offer(offer_id)
        await update.message.reply_text(
            "✅ Offer saved\n\n" + self.messages.format_offer(offer or offer_data),
            reply_markup=self.keyboards.admin_menu()
        )
        return ConversationHandler.END

    def build_handlers(self) -> list:
        """Telegram handlers for the offer panel"""
        new_offer_conversation = ConversationHandler(
            entry_points=[CallbackQueryHandler(self.add_offer_start, pattern='^add_offer$')],
            states={
                WAITING_OFFER_TYPE: [
                    CallbackQueryHandler(self.add_offer_type, pattern='^otype_'),
                    CallbackQueryHandler(self.cancel_conversation, pattern='^cancel$')
                ],
                WAITING_OFFER_NAME: [
                    MessageHandler(filters.TEXT & ~filters.COMMAND, self.add_offer_name)
                ],
                WAITING_OFFER_TERMS: [
                    MessageHandler(filters.TEXT & ~filters.COMMAND, self.add_offer_terms)
                ]
            },
            fallbacks=[CommandHandler('cancel', self.cancel_conversation)]
        )

        return [
            CommandHandler("offeradmin", self.offers_panel),
            new_offer_conversation,
            CallbackQueryHandler(self.offers_panel, pattern='^manage_offers$'),
            CallbackQueryHandler(self.list_offers, pattern='^list_offers$'),
            CallbackQueryHandler(self.toggle_offer, pattern='^toggle_offer_'),
            CallbackQueryHandler(self.offer_stats, pattern='^offer_stats_'),
        ]
