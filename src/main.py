# src/main.py
import asyncio
import logging

import uvicorn
from asgiref.wsgi import WsgiToAsgi

from src import config
from src.bot.bot_setup import register_menu_commands, setup_bot
from src.core.db import get_supabase_client
from src.core.payments import MercadoPagoClient
from src.utils.log_utils import setup_logging
from src.web import create_web_app

logger = logging.getLogger(__name__)


async def main() -> None:
    setup_logging(config.LOG_LEVEL)
    config.validate_config()
    logger.info("Iniciando PIX Totalizer...")

    supabase_client = get_supabase_client()

    gateway = None
    if config.MERCADO_PAGO_ACCESS_TOKEN:
        gateway = MercadoPagoClient(config.MERCADO_PAGO_ACCESS_TOKEN)
    else:
        logger.warning("MERCADO_PAGO_ACCESS_TOKEN não configurado - pagamentos desativados")

    application = setup_bot({
        "TELEGRAM_BOT_TOKEN": config.TELEGRAM_BOT_TOKEN,
        "SUPABASE_CLIENT": supabase_client,
        "PAYMENT_GATEWAY": gateway,
        "ADMIN_CHAT_ID": config.ADMIN_CHAT_ID,
    })

    flask_app = create_web_app(application, supabase_client, gateway, config.MERCADO_PAGO_WEBHOOK_SECRET)

    # O Flask roda no mesmo loop do bot, via ASGI
    webserver = uvicorn.Server(
        config=uvicorn.Config(
            app=WsgiToAsgi(flask_app),
            host="0.0.0.0",
            port=config.PORT,
            use_colors=False,
        )
    )

    async with application:
        await register_menu_commands(application)
        if config.WEBHOOK_URL:
            webhook_url = f"{config.WEBHOOK_URL.rstrip('/')}/webhook/telegram"
            await application.bot.set_webhook(webhook_url)
            logger.info("Webhook do Telegram configurado: %s", webhook_url)
        else:
            logger.warning("WEBHOOK_URL não definido - webhook do Telegram não configurado")

        bot_info = await application.bot.get_me()
        logger.info("Bot @%s rodando na porta %s", bot_info.username, config.PORT)

        await application.start()
        await webserver.serve()
        logger.info("Encerrando...")
        await application.stop()

        if config.WEBHOOK_URL:
            await application.bot.delete_webhook()


if __name__ == "__main__":
    asyncio.run(main())
