# src/bot/bot_setup.py
import logging

from telegram import BotCommand, Update
from telegram.ext import (
    Application,
    CallbackQueryHandler,
    CommandHandler,
    ContextTypes,
    MessageHandler,
    filters,
)

from src.bot.commands import ALL_COMMANDS, delete_selection_callback, subscribe_callback
from src.bot.commands.ledger import DELETE_CALLBACK_PREFIX
from src.bot.commands.plans import SUBSCRIBE_CALLBACK_PREFIX
from src.bot.handlers import handle_document, handle_photo
from src.bot.jobs import schedule_jobs

logger = logging.getLogger(__name__)

# Menu de comandos exibido no Telegram
MENU_COMMANDS = [
    BotCommand("start", "Iniciar o bot"),
    BotCommand("assinar", "Ver planos e assinar"),
    BotCommand("plano", "Ver seu plano e uso"),
    BotCommand("total", "Ver total do dia"),
    BotCommand("hoje", "Listar transações de hoje"),
    BotCommand("apagar", "Apagar uma transação"),
    BotCommand("editar", "Editar última transação"),
    BotCommand("limpar", "Limpar todas transações de hoje"),
]


async def register_menu_commands(application: Application) -> None:
    """Registra o menu de comandos no Telegram (chamado depois do initialize)."""
    await application.bot.set_my_commands(MENU_COMMANDS)


async def error_handler(update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Registra exceções não tratadas e avisa o usuário, se houver a quem avisar."""
    logger.error("Erro ao processar update", exc_info=context.error)
    if isinstance(update, Update) and update.effective_message:
        await update.effective_message.reply_text("❌ Ocorreu um erro. Tente novamente em instantes.")


def setup_bot(config: dict) -> Application:
    """
    Configura a aplicação do bot do Telegram (comandos, callbacks, comprovantes e jobs).
    Retorna o Application pronto para receber updates via webhook (sem Updater).
    """
    application = (
        Application.builder()
        .token(config["TELEGRAM_BOT_TOKEN"])
        .updater(None)
        .build()
    )

    # Handlers e comandos acessam as dependências pelo bot_data
    application.bot_data["supabase_client"] = config["SUPABASE_CLIENT"]
    application.bot_data["payment_gateway"] = config.get("PAYMENT_GATEWAY")

    for name, callback in ALL_COMMANDS.items():
        application.add_handler(CommandHandler(name, callback))

    application.add_handler(CallbackQueryHandler(delete_selection_callback, pattern=f"^{DELETE_CALLBACK_PREFIX}"))
    application.add_handler(CallbackQueryHandler(subscribe_callback, pattern=f"^{SUBSCRIBE_CALLBACK_PREFIX}"))

    application.add_handler(MessageHandler(filters.PHOTO, handle_photo))
    application.add_handler(MessageHandler(filters.Document.ALL, handle_document))

    application.add_error_handler(error_handler)

    schedule_jobs(application, config.get("ADMIN_CHAT_ID"))

    logger.info("Bot Telegram configurado para webhooks")
    return application
