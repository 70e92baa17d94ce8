import asyncio
import logging
import signal

from dotenv import load_dotenv

from core.assistant import Assistant
from core.config import load_settings
from transports.discord_bot import run_discord_bot
from transports.telegram_bot import TelegramTransport

log = logging.getLogger(__name__)


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s :: %(message)s")
    for noisy in ("httpx", "telegram", "discord"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


async def main():
    load_dotenv()
    try:
        settings = load_settings()
    except ValueError as exc:
        setup_logging()
        raise SystemExit(str(exc))
    setup_logging(settings.log_level)
    log.info("starting chat relay with Ollama at %s", settings.ollama_host)

    assistant = Assistant.from_settings(settings)

    stop_event = asyncio.Event()

    def _signal_handler(*_):
        stop_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _signal_handler)
        except NotImplementedError:
            signal.signal(sig, lambda *_: stop_event.set())

    telegram_transport = None
    telegram_task = None
    discord_task = None
    if settings.telegram_token:
        telegram_transport = TelegramTransport(assistant, settings.telegram_token)
        telegram_task = asyncio.create_task(telegram_transport.start())
    if settings.discord_token:
        discord_task = asyncio.create_task(run_discord_bot(assistant, settings.discord_token))

    await assistant.start()

    await stop_event.wait()
    log.info("shutting down gracefully...")

    if telegram_transport is not None:
        await telegram_transport.stop()

    if discord_task is not None:
        discord_task.cancel()
        try:
            await discord_task
        except asyncio.CancelledError:
            pass

    if telegram_task is not None:
        await telegram_task
    await assistant.close()


def run():
    asyncio.run(main())


if __name__ == "__main__":
    run()
