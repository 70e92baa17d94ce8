import asyncio
import logging

from telegram import Update
from telegram.constants import ChatAction, ChatType
from telegram.ext import (
    Application,
    ContextTypes,
    MessageHandler,
    filters,
)

from core.assistant import Assistant, IncomingMessage

log = logging.getLogger(__name__)


class TelegramChannel:
    def __init__(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        self.update = update
        self.context = context

    async def reply(self, text: str) -> None:
        await self.update.effective_message.reply_text(text)

    async def send_typing(self) -> None:
        await self.context.bot.send_chat_action(
            chat_id=self.update.effective_chat.id, action=ChatAction.TYPING
        )


class TelegramTransport:
    def __init__(self, assistant: Assistant, token: str):
        self.assistant = assistant
        self.application = Application.builder().token(token).build()
        self._register_handlers()
        self._stop_event = asyncio.Event()

    def _register_handlers(self):
        # commands arrive as plain text too; the assistant does its own routing
        self.application.add_handler(MessageHandler(filters.TEXT, self.handle_message))

    async def handle_message(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        message = update.effective_message
        user = update.effective_user
        chat = update.effective_chat
        if not message or not message.text or not user or user.is_bot or not chat:
            return
        incoming = IncomingMessage(
            platform="telegram",
            user_id=str(user.id),
            text=message.text,
            is_group=chat.type != ChatType.PRIVATE,
        )
        try:
            await self.assistant.handle_message(incoming, TelegramChannel(update, context))
        except Exception as exc:
            log.exception("Assistant error: %s", exc)
            await message.reply_text("I'm not available right now.")

    async def start(self):
        await self.application.initialize()
        await self.application.start()
        await self.application.updater.start_polling()
        log.info("Telegram bot is now listening for messages")
        try:
            await self._stop_event.wait()
        except asyncio.CancelledError:
            pass
        finally:
            await self.application.updater.stop()
            await self.application.stop()
            await self.application.shutdown()

    async def stop(self):
        self._stop_event.set()
