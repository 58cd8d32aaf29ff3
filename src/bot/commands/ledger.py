import logging

from telegram import InlineKeyboardButton, InlineKeyboardMarkup, Update
from telegram.error import TelegramError
from telegram.ext import ContextTypes

from src.config import DELETE_PROMPT_TTL
from src.core import db
from src.core.summary import get_daily_summary_message, get_transaction_list_message
from src.utils.text_utils import format_currency, parse_amount

logger = logging.getLogger(__name__)

PENDING_DELETE_KEY = "pending_delete"
DELETE_CALLBACK_PREFIX = "apagar:"
DELETE_LAST = "ultima"
DELETE_CANCEL = "cancelar"

# Acima disso o teclado fica grande demais; o usuário usa /apagar N
MAX_SELECTION_BUTTONS = 48


def delete_prompt_job_name(chat_id: int) -> str:
    return f"delete_prompt:{chat_id}"


async def total_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Mostra o total do dia."""
    supabase_client = context.bot_data["supabase_client"]
    await update.message.reply_text(get_daily_summary_message(supabase_client, update.effective_chat.id))


async def today_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Lista as transações de hoje com a numeração usada pelo /apagar."""
    supabase_client = context.bot_data["supabase_client"]
    await update.message.reply_text(get_transaction_list_message(supabase_client, update.effective_chat.id))


def deleted_message(supabase_client, chat_id: int, deleted) -> str:
    summary = get_daily_summary_message(supabase_client, chat_id)
    return f"🗑️ Transação apagada: {format_currency(deleted.amount)}\n\n{summary}"


async def delete_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """/apagar N apaga a posição N; sem argumento, abre a seleção."""
    supabase_client = context.bot_data["supabase_client"]
    chat_id = update.effective_chat.id

    if context.args:
        try:
            position = int(context.args[0])
        except ValueError:
            await update.message.reply_text("❌ Posição inválida. Use: /apagar 2\n\nVeja as posições em /hoje.")
            return

        deleted = db.delete_transaction_by_position(supabase_client, chat_id, position)
        if deleted:
            await update.message.reply_text(deleted_message(supabase_client, chat_id, deleted))
        else:
            await update.message.reply_text(f"Nenhuma transação na posição {position} hoje. Veja a lista em /hoje.")
        return

    transactions = db.get_today_transactions(supabase_client, chat_id)
    if not transactions:
        await update.message.reply_text("Nenhuma transação para apagar hoje.")
        return

    keyboard = []
    if len(transactions) <= MAX_SELECTION_BUTTONS:
        row = []
        for position, transaction in enumerate(transactions, start=1):
            row.append(InlineKeyboardButton(
                f"{position}. {format_currency(transaction.amount)}",
                callback_data=f"{DELETE_CALLBACK_PREFIX}{position}",
            ))
            if len(row) == 3:
                keyboard.append(row)
                row = []
        if row:
            keyboard.append(row)
    keyboard.append([
        InlineKeyboardButton("⏮️ Última", callback_data=f"{DELETE_CALLBACK_PREFIX}{DELETE_LAST}"),
        InlineKeyboardButton("✖️ Cancelar", callback_data=f"{DELETE_CALLBACK_PREFIX}{DELETE_CANCEL}"),
    ])

    prompt = await update.message.reply_text(
        "🗑️ Qual transação apagar?\n\n" + get_transaction_list_message(supabase_client, chat_id),
        reply_markup=InlineKeyboardMarkup(keyboard),
    )

    # Uma seleção pendente por chat; a anterior deixa de valer
    context.chat_data[PENDING_DELETE_KEY] = {"message_id": prompt.message_id}
    job_name = delete_prompt_job_name(chat_id)
    for job in context.job_queue.get_jobs_by_name(job_name):
        job.schedule_removal()
    context.job_queue.run_once(
        expire_delete_prompt,
        when=DELETE_PROMPT_TTL,
        chat_id=chat_id,
        data=prompt.message_id,
        name=job_name,
    )


async def expire_delete_prompt(context: ContextTypes.DEFAULT_TYPE) -> None:
    """Remove a seleção do /apagar que não foi respondida a tempo."""
    job = context.job
    pending = context.chat_data.get(PENDING_DELETE_KEY) if context.chat_data is not None else None
    if pending and pending.get("message_id") == job.data:
        context.chat_data.pop(PENDING_DELETE_KEY, None)
    await delete_message_quietly(context, job.chat_id, job.data)


async def delete_message_quietly(context: ContextTypes.DEFAULT_TYPE, chat_id: int, message_id: int) -> None:
    try:
        await context.bot.delete_message(chat_id=chat_id, message_id=message_id)
    except TelegramError as e:
        # Mensagem já apagada ou antiga demais: nada a fazer
        logger.debug("Não foi possível apagar a mensagem %s do chat %s: %s", message_id, chat_id, e)


async def delete_selection_callback(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Trata o botão escolhido na seleção do /apagar."""
    query = update.callback_query
    supabase_client = context.bot_data["supabase_client"]
    chat_id = update.effective_chat.id

    pending = context.chat_data.get(PENDING_DELETE_KEY)
    if not pending or pending.get("message_id") != query.message.message_id:
        await query.answer("Seleção expirada. Use /apagar novamente.")
        await delete_message_quietly(context, chat_id, query.message.message_id)
        return

    context.chat_data.pop(PENDING_DELETE_KEY, None)
    for job in context.job_queue.get_jobs_by_name(delete_prompt_job_name(chat_id)):
        job.schedule_removal()

    choice = query.data[len(DELETE_CALLBACK_PREFIX):]
    if choice == DELETE_CANCEL:
        await query.answer()
        await query.edit_message_text("Operação cancelada.")
        return

    position = None
    if choice != DELETE_LAST:
        try:
            position = int(choice)
        except ValueError:
            await query.answer("Opção inválida.")
            return

    deleted = db.delete_transaction_by_position(supabase_client, chat_id, position)
    await query.answer()
    if deleted:
        await query.edit_message_text(deleted_message(supabase_client, chat_id, deleted))
    else:
        await query.edit_message_text("Essa transação não existe mais. Veja a lista em /hoje.")


async def edit_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Corrige o valor da última transação de hoje."""
    supabase_client = context.bot_data["supabase_client"]
    chat_id = update.effective_chat.id

    if not context.args:
        await update.message.reply_text("Use: /editar 150.00\n\nExemplo: /editar 1500,50")
        return

    new_amount = parse_amount(" ".join(context.args))
    if new_amount is None:
        await update.message.reply_text("❌ Valor inválido. Use: /editar 150.00")
        return

    updated = db.update_last_transaction_amount(supabase_client, chat_id, new_amount)
    if updated:
        summary = get_daily_summary_message(supabase_client, chat_id)
        await update.message.reply_text(
            f"✏️ Última transação editada para: {format_currency(new_amount)}\n\n{summary}"
        )
    else:
        await update.message.reply_text("Nenhuma transação para editar hoje.")


async def clear_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Apaga todas as transações de hoje."""
    supabase_client = context.bot_data["supabase_client"]
    count = db.clear_today_transactions(supabase_client, update.effective_chat.id)
    if count > 0:
        await update.message.reply_text(f"🧹 {count} transação(ões) apagada(s). Total zerado.")
    else:
        await update.message.reply_text("Nenhuma transação para limpar hoje.")
