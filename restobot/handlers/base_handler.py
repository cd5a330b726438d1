from telegram import Update
from telegram.ext import ContextTypes, ConversationHandler
from ..config import Config
from ..utils.keyboards import Keyboards
from ..utils.messages import Messages

class BaseHandler:
    """Base class for bot handlers"""
    def __init__(self, db):
        self.db = db
        self.keyboards = Keyboards()
        self.messages = Messages()

    @staticmethod
    async def cancel_conversation(update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Abort the current conversation"""
        if update.callback_query:
            await update.callback_query.answer()
            await update.callback_query.edit_message_text("❌ Cancelled.")
        else:
            await update.message.reply_text("❌ Cancelled.")
        return ConversationHandler.END

    @staticmethod
    async def reply(update: Update, text: str, reply_markup=None):
        """Edit the message behind a button press, or answer a typed message"""
        query = update.callback_query
        if query:
            await query.answer()
            await query.edit_message_text(text, reply_markup=reply_markup)
        else:
            await update.effective_message.reply_text(text, reply_markup=reply_markup)

    async def is_admin(self, user_id: int) -> bool:
        """Admin access check"""
        return user_id in Config.ADMIN_IDS
