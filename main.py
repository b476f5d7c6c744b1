import asyncio
import logging
from aiogram import Bot, Dispatcher
from aiohttp import web
from database.db_client import SupabaseClient
from nyayaprep import config
from nyayaprep.handlers.admin import router as admin_router
from nyayaprep.handlers.api import create_app

# Logger setup
logging.basicConfig(level=config.LOG_LEVEL)
logger = logging.getLogger(__name__)


async def start_web_server(db, bot=None):
    app = create_app(db, bot)
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, "0.0.0.0", config.PORT)
    await site.start()
    logger.info(f"Web server started on port {config.PORT}")
    return runner


# --- Main Entry Point ---
async def main():
    logger.info("Starting NyayaPrep...")

    db = SupabaseClient()
    connected = await db.connect()
    if not connected:
        logger.error("Failed to connect to Supabase. Check credentials.")
        return

    bot = Bot(token=config.BOT_TOKEN) if config.BOT_TOKEN else None
    runner = await start_web_server(db, bot)

    try:
        if bot:
            # Staff bot: validations, teacher answers, contact inbox
            dp = Dispatcher(db=db)
            dp.include_router(admin_router)
            logger.info("Staff bot is polling...")
            await dp.start_polling(bot)
        else:
            logger.warning("BOT_TOKEN not set; running the web API only.")
            await asyncio.Event().wait()
    finally:
        await runner.cleanup()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Stopped by user.")
