import base64
import io
import logging

from telegram import InlineKeyboardButton, InlineKeyboardMarkup, InputFile, Update
from telegram.ext import ContextTypes

from src.core.models import PLANS, PlanType
from src.core.payments import create_pix_charge, get_payment_message
from src.core.subscription import get_status_message

logger = logging.getLogger(__name__)

SUBSCRIBE_CALLBACK_PREFIX = "assinar:"

PLAN_EMOJIS = {
    PlanType.BASICO: "💼",
    PlanType.PRO: "🚀",
    PlanType.ULTRA: "⚡",
}


def parse_paid_plan(text: str):
    """Converte o nome digitado em um plano pago, ou None."""
    try:
        plan = PlanType(text.strip().lower())
    except ValueError:
        return None
    return plan if PLANS[plan].is_paid else None


async def plan_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Mostra o plano atual e o uso."""
    supabase_client = context.bot_data["supabase_client"]
    message = get_status_message(supabase_client, update.effective_chat.id)
    await update.message.reply_text(message, parse_mode="Markdown")


async def subscribe_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """/assinar <plano> gera o PIX direto; sem argumento, mostra os planos."""
    if context.args:
        plan = parse_paid_plan(context.args[0])
        if plan is None:
            await update.message.reply_text("Plano inválido. Opções: basico, pro, ultra.")
            return
        await send_pix_charge(update, context, plan)
        return

    keyboard = [
        [InlineKeyboardButton(
            f"{PLAN_EMOJIS[plan]} {info.display_name} - R${info.price}",
            callback_data=f"{SUBSCRIBE_CALLBACK_PREFIX}{plan.value}",
        )]
        for plan, info in PLANS.items()
        if info.is_paid
    ]
    await update.message.reply_text(
        "📋 *Escolha seu plano:*\n\n"
        "🆓 *Grátis* - 5 comprovantes/dia - R$0\n\n"
        "💼 *Básico* - 1.000 comprovantes/mês - R$197\n"
        "🚀 *Pro* - 3.500 comprovantes/mês - R$349\n"
        "⚡ *Ultra* - Comprovantes ilimitados - R$697",
        parse_mode="Markdown",
        reply_markup=InlineKeyboardMarkup(keyboard),
    )


async def subscribe_callback(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Trata o clique em um dos botões de plano."""
    query = update.callback_query
    plan = parse_paid_plan(query.data[len(SUBSCRIBE_CALLBACK_PREFIX):])
    if plan is None:
        await query.answer("Plano inválido")
        return

    await query.answer("Gerando PIX...")
    await send_pix_charge(update, context, plan)


async def send_pix_charge(update: Update, context: ContextTypes.DEFAULT_TYPE, plan: PlanType) -> None:
    supabase_client = context.bot_data["supabase_client"]
    gateway = context.bot_data.get("payment_gateway")
    chat_id = update.effective_chat.id
    plan_info = PLANS[plan]

    await context.bot.send_message(chat_id, f"⏳ Gerando PIX para plano {plan_info.display_name}...")

    result = create_pix_charge(supabase_client, gateway, chat_id, plan)
    if not result.success:
        await context.bot.send_message(chat_id, f"❌ Erro ao gerar PIX: {result.error}")
        return

    if result.qr_code_base64:
        image = io.BytesIO(base64.b64decode(result.qr_code_base64))
        await context.bot.send_photo(chat_id, photo=InputFile(image, filename="qrcode.png"))

    await context.bot.send_message(
        chat_id,
        get_payment_message(plan, result.qr_code or ""),
        parse_mode="Markdown",
    )
