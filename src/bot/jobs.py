# src/bot/jobs.py
import datetime
import logging

from telegram.ext import Application, ContextTypes

from src.core import db
from src.core.summary import get_daily_summary_message
from src.utils.date_utils import local_timezone

logger = logging.getLogger(__name__)


async def send_daily_summary(context: ContextTypes.DEFAULT_TYPE) -> None:
    """Envia o resumo do dia para o chat do administrador."""
    chat_id = context.job.chat_id
    supabase_client = context.bot_data["supabase_client"]
    logger.info("Enviando resumo diário para o chat %s...", chat_id)
    try:
        message = get_daily_summary_message(supabase_client, chat_id)
        await context.bot.send_message(chat_id, message)
        logger.info("Resumo diário enviado")
    except Exception:
        logger.exception("Falha ao enviar o resumo diário")


async def reset_monthly_usage_job(context: ContextTypes.DEFAULT_TYPE) -> None:
    """Zera o uso das assinaturas pagas no dia 1 de cada mês."""
    supabase_client = context.bot_data["supabase_client"]
    logger.info("Zerando uso mensal...")
    try:
        count = db.reset_monthly_usage(supabase_client)
        logger.info("Uso zerado para %s assinaturas", count)
    except Exception:
        logger.exception("Falha ao zerar o uso mensal")


def schedule_jobs(application: Application, admin_chat_id=None) -> None:
    """Agenda o resumo diário (23:59) e o reset mensal (dia 1, 00:01) no fuso local."""
    tz = local_timezone()
    job_queue = application.job_queue

    if admin_chat_id:
        job_queue.run_daily(
            send_daily_summary,
            time=datetime.time(23, 59, tzinfo=tz),
            chat_id=int(admin_chat_id),
            name="daily_summary",
        )
        logger.info("Resumo diário agendado para 23:59 (%s)", tz.key)

    job_queue.run_monthly(
        reset_monthly_usage_job,
        when=datetime.time(0, 1, tzinfo=tz),
        day=1,
        name="monthly_usage_reset",
    )
