# src/core/subscription.py
import datetime
import logging
import math
from typing import Union

from supabase import Client

from src.core import db
from src.core.models import PLANS, PlanType, Subscription, UsageDecision
from src.utils.date_utils import local_timezone, utc_now

logger = logging.getLogger(__name__)

# Dias de tolerância depois do vencimento antes do rebaixamento
GRACE_PERIOD_DAYS = 3

SECONDS_PER_DAY = 24 * 60 * 60


def _has_expiry(subscription: Subscription) -> bool:
    return subscription.plan != PlanType.FREE and subscription.period_end is not None


def is_subscription_expired(subscription: Subscription, now: datetime.datetime) -> bool:
    """Vencida além do período de carência."""
    if not _has_expiry(subscription):
        return False
    grace_period_end = subscription.period_end + datetime.timedelta(days=GRACE_PERIOD_DAYS)
    return now > grace_period_end


def is_in_grace_period(subscription: Subscription, now: datetime.datetime) -> bool:
    if not _has_expiry(subscription):
        return False
    grace_period_end = subscription.period_end + datetime.timedelta(days=GRACE_PERIOD_DAYS)
    return subscription.period_end < now <= grace_period_end


def get_days_until_expiry(subscription: Subscription, now: datetime.datetime) -> Union[int, None]:
    """Dias (arredondados para cima) até o vencimento. Negativo se já venceu."""
    if not _has_expiry(subscription):
        return None
    remaining = (subscription.period_end - now).total_seconds()
    return math.ceil(remaining / SECONDS_PER_DAY)


def _grace_message(days_until_expiry: int) -> str:
    grace_days_left = GRACE_PERIOD_DAYS + days_until_expiry
    return f"⚠️ Assinatura vencida! Renove em {grace_days_left} dias para manter acesso."


def _free_decision(supabase_client: Client, chat_id: int, now: datetime.datetime) -> UsageDecision:
    """Plano grátis: o uso é a contagem ao vivo das transações de hoje."""
    today_count = db.count_today_transactions(supabase_client, chat_id, now)
    daily_limit = PLANS[PlanType.FREE].limit
    if today_count >= daily_limit:
        return UsageDecision(
            allowed=False,
            plan=PlanType.FREE,
            used=today_count,
            limit=daily_limit,
            message=f"Limite diário atingido ({today_count}/{daily_limit})",
        )
    return UsageDecision(allowed=True, plan=PlanType.FREE, used=today_count, limit=daily_limit)


def can_process(supabase_client: Client, chat_id: int,
                now: Union[datetime.datetime, None] = None) -> UsageDecision:
    """
    Decide se um novo comprovante pode ser processado para este chat.

    Assinaturas pagas vencidas além da carência são rebaixadas para o plano
    grátis nesta mesma chamada, e a decisão passa a seguir a regra do grátis.
    Falhas de leitura/escrita no banco são propagadas.
    """
    now = now or utc_now()
    subscription = db.get_or_create_subscription(supabase_client, chat_id)
    plan = subscription.plan
    plan_info = PLANS[plan]

    if plan == PlanType.FREE:
        return _free_decision(supabase_client, chat_id, now)

    if is_subscription_expired(subscription, now):
        db.downgrade_to_free(supabase_client, chat_id)
        decision = _free_decision(supabase_client, chat_id, now)
        decision.expired = True
        decision.message = f"Sua assinatura {plan_info.display_name} expirou. Plano rebaixado para Grátis."
        return decision

    days_until_expiry = get_days_until_expiry(subscription, now)
    in_grace = is_in_grace_period(subscription, now)
    used = subscription.transactions_used

    if plan_info.limit is None:
        return UsageDecision(
            allowed=True,
            plan=plan,
            used=used,
            limit=None,
            message=_grace_message(days_until_expiry) if in_grace else None,
            in_grace_period=in_grace,
            days_until_expiry=days_until_expiry,
        )

    monthly_limit = plan_info.limit
    allowed = used < monthly_limit
    if in_grace:
        message = _grace_message(days_until_expiry)
    elif not allowed:
        message = f"Limite mensal atingido ({used}/{monthly_limit})"
    else:
        message = None

    return UsageDecision(
        allowed=allowed,
        plan=plan,
        used=used,
        limit=monthly_limit,
        message=message,
        in_grace_period=in_grace,
        days_until_expiry=days_until_expiry,
    )


def get_plans_message() -> str:
    return (
        "📋 *Planos PIX Totalizer*\n\n"
        "🆓 *Grátis*\n"
        "• 5 comprovantes/dia\n"
        "• R$0\n\n"
        "💼 *Básico* - R$197/mês\n"
        "• 1.000 comprovantes/mês\n"
        "• Suporte prioritário\n\n"
        "🚀 *Pro* - R$349/mês\n"
        "• 3.500 comprovantes/mês\n"
        "• Suporte prioritário\n\n"
        "⚡ *Ultra* - R$697/mês\n"
        "• Comprovantes ilimitados\n"
        "• Suporte VIP\n\n"
        "Use /assinar <plano> para assinar\n"
        "Exemplo: /assinar basico"
    )


def get_status_message(supabase_client: Client, chat_id: int,
                       now: Union[datetime.datetime, None] = None) -> str:
    """Monta o texto do /plano com uso e situação da assinatura."""
    now = now or utc_now()
    subscription = db.get_or_create_subscription(supabase_client, chat_id)
    plan = subscription.plan
    plan_info = PLANS[plan]

    if plan == PlanType.FREE:
        today_count = db.count_today_transactions(supabase_client, chat_id, now)
        usage = f"{today_count}/{plan_info.limit} hoje"
    elif plan_info.limit is None:
        usage = f"{subscription.transactions_used} este mês (ilimitado)"
    else:
        usage = f"{subscription.transactions_used}/{plan_info.limit} este mês"

    lines = [
        "📊 *Seu Plano*",
        "",
        f"Plano: {plan_info.display_name}",
        f"Uso: {usage}",
    ]

    if plan == PlanType.FREE:
        lines.extend(["", "Use /assinar para fazer upgrade"])
        return "\n".join(lines)

    if subscription.period_end:
        period_end = subscription.period_end.astimezone(local_timezone())
        lines.append(f"Válido até: {period_end.strftime('%d/%m/%Y')}")

    days_until = get_days_until_expiry(subscription, now)
    if is_subscription_expired(subscription, now):
        lines.append("⚠️ *Assinatura expirada!* Use /assinar para renovar")
    elif is_in_grace_period(subscription, now):
        lines.append(f"⚠️ *Período de carência:* {GRACE_PERIOD_DAYS + days_until} dias restantes")
    elif days_until is not None and days_until <= 7:
        lines.append(f"⏰ *Expira em {days_until} dias*")

    return "\n".join(lines)
