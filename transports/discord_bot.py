import logging

import discord

from core.assistant import Assistant, IncomingMessage

log = logging.getLogger(__name__)


class DiscordChannel:
    def __init__(self, message: discord.Message):
        self.message = message

    async def reply(self, text: str) -> None:
        # discord rejects messages over 2000 characters
        for start in range(0, len(text), 2000):
            await self.message.channel.send(text[start : start + 2000])

    async def send_typing(self) -> None:
        await self.message.channel.typing()


class DiscordTransport(discord.Client):
    def __init__(self, assistant: Assistant):
        intents = discord.Intents.default()
        intents.message_content = True
        intents.dm_messages = True
        super().__init__(intents=intents)
        self.assistant = assistant

    async def on_ready(self):
        log.info("Discord bot ready as %s", self.user)

    async def on_message(self, message: discord.Message):
        if not message or not message.content:
            return
        if message.author.bot:
            return
        if self.user and message.author.id == self.user.id:
            return
        incoming = IncomingMessage(
            platform="discord",
            user_id=str(message.author.id),
            text=message.content,
            is_group=message.guild is not None,
        )
        try:
            await self.assistant.handle_message(incoming, DiscordChannel(message))
        except Exception as exc:
            log.exception("Assistant error: %s", exc)
            await message.channel.send("I'm not available right now.")


async def run_discord_bot(assistant: Assistant, token: str):
    bot = DiscordTransport(assistant)
    try:
        await bot.start(token)
    finally:
        await bot.close()
