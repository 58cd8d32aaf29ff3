import asyncio
import logging
from typing import Union

from telegram import Update
from telegram.ext import ContextTypes

from src.core.ai import SUPPORTED_MEDIA_TYPES
from src.core.models import PLANS
from src.core.pipeline import ReceiptStatus, admit_receipt, ingest_receipt

logger = logging.getLogger(__name__)

GENERIC_ERROR_MESSAGE = "❌ Erro ao processar o comprovante. Tente novamente."


async def handle_photo(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Comprovante enviado como foto: usa a maior resolução."""
    photos = update.message.photo
    if not photos:
        return
    await process_receipt(update, context, photos[-1].file_id, media_type=None)


async def handle_document(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Comprovante enviado como arquivo (imagem ou PDF)."""
    document = update.message.document
    mime_type = document.mime_type or ""
    if mime_type not in SUPPORTED_MEDIA_TYPES:
        await update.message.reply_text("⚠️ Envie apenas imagens ou PDFs de comprovantes PIX.")
        return
    await process_receipt(update, context, document.file_id, media_type=mime_type)


async def process_receipt(update: Update, context: ContextTypes.DEFAULT_TYPE,
                          file_id: str, media_type: Union[str, None]) -> None:
    supabase_client = context.bot_data["supabase_client"]
    chat_id = update.effective_chat.id

    try:
        outcome = await asyncio.to_thread(admit_receipt, supabase_client, chat_id, file_id)
    except Exception:
        logger.exception("Erro ao verificar o comprovante do chat %s", chat_id)
        await update.message.reply_text(GENERIC_ERROR_MESSAGE)
        return

    if outcome.status == ReceiptStatus.DUPLICATE:
        await update.message.reply_text("⚠️ Este comprovante já foi registrado.")
        return

    decision = outcome.decision
    if outcome.status == ReceiptStatus.NOT_ALLOWED:
        renew_message = "💳 Use /assinar para renovar" if decision.expired else "Use /assinar para fazer upgrade"
        await update.message.reply_text(
            f"⚠️ {decision.message}\n\n"
            f"📊 Seu plano: {PLANS[decision.plan].display_name}\n\n"
            f"{renew_message}"
        )
        return

    if decision.expired and decision.message:
        await update.message.reply_text(f"⚠️ {decision.message}\n\n💳 Use /assinar para renovar")
    elif decision.in_grace_period and decision.message:
        await update.message.reply_text(f"{decision.message}\n\n💳 Use /assinar {decision.plan.value} para renovar")

    await update.message.reply_text("🔍 Processando comprovante...")

    try:
        telegram_file = await context.bot.get_file(file_id)
        file_bytes = bytes(await telegram_file.download_as_bytearray())
        if media_type is None:
            media_type = "image/png" if (telegram_file.file_path or "").endswith(".png") else "image/jpeg"

        # A extração faz novas tentativas com espera; fora do loop de eventos
        outcome = await asyncio.to_thread(
            ingest_receipt, supabase_client, chat_id, file_id, file_bytes, media_type
        )
    except Exception:
        logger.exception("Erro ao processar o comprovante do chat %s", chat_id)
        await update.message.reply_text(GENERIC_ERROR_MESSAGE)
        return

    if outcome.status == ReceiptStatus.EXTRACTION_FAILED:
        reason = outcome.extraction.error or "Tente enviar uma imagem mais clara."
        await update.message.reply_text(f"❌ Não consegui identificar o valor.\n{reason}")
        return

    await update.message.reply_text(outcome.message)
