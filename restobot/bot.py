# restobot/bot.py
import logging
from telegram.ext import Application
from .config import Config
from .database.database import Database
from .handlers import CartHandler, OfferAdminHandler
from .offers.calculator import OfferCalculator
from .services.offer_service import OfferService

class RestaurantBot:
    def __init__(self):
        """Build the application and its handlers"""
        self.logger = logging.getLogger(__name__)
        self.db = Database()
        self.calculator = OfferCalculator(OfferService(self.db), timezone=Config.TIMEZONE)

        self.application = (
            Application.builder()
            .token(Config.TELEGRAM_TOKEN)
            .post_init(self._on_startup)
            .post_shutdown(self._on_shutdown)
            .build()
        )
        self.setup_handlers()

    def setup_handlers(self):
        """Register guest and admin handlers"""
        # Admin first: its conversation owns the offer panel callbacks
        for handler in OfferAdminHandler(self.db).build_handlers():
            self.application.add_handler(handler)

        for handler in CartHandler(self.db, self.calculator).build_handlers():
            self.application.add_handler(handler)

        self.application.add_error_handler(self._on_error)

    async def _on_startup(self, application: Application):
        await self.db.connect()
        self.logger.info("Bot started")

    async def _on_shutdown(self, application: Application):
        await self.db.close()
        self.logger.info("Bot stopped")

    async def _on_error(self, update, context):
        self.logger.error(f"Error handling update {update}: {context.error}", exc_info=context.error)

    def run(self):
        """Long polling until interrupted"""
        self.application.run_polling()
