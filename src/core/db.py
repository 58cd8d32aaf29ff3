# src/core/db.py
import datetime
import logging
from decimal import Decimal
from typing import Any, Dict, List, Union

from supabase import create_client, Client

from src.config import SUPABASE_URL, SUPABASE_KEY
from src.core.models import Payment, PlanType, Subscription, Transaction
from src.utils.date_utils import add_months, local_timezone, utc_now

logger = logging.getLogger(__name__)

TRANSACTIONS = "transactions"
SUBSCRIPTIONS = "subscriptions"
PAYMENTS = "payments"


def get_supabase_client() -> Client:
    """Retorna uma instância do cliente Supabase."""
    return create_client(SUPABASE_URL, SUPABASE_KEY)


def get_start_of_today(now: Union[datetime.datetime, None] = None) -> datetime.datetime:
    """Meia-noite de hoje no fuso configurado (com tzinfo)."""
    now = now or utc_now()
    local_now = now.astimezone(local_timezone())
    return local_now.replace(hour=0, minute=0, second=0, microsecond=0)


def _today_iso(now: Union[datetime.datetime, None]) -> str:
    return get_start_of_today(now).isoformat()


# --- Funções para Transações (comprovantes) ---
def save_transaction(supabase_client: Client, chat_id: int, amount: Decimal,
                     bank_detected: Union[str, None], client_name: Union[str, None],
                     telegram_file_id: str, raw_response: str) -> Transaction:
    """Insere um comprovante e retorna a linha gravada (com id e created_at).
    Não verifica duplicidade: chame is_duplicate antes."""
    response = supabase_client.table(TRANSACTIONS).insert({
        "chat_id": chat_id,
        "amount": str(amount),
        "bank_detected": bank_detected,
        "client_name": client_name,
        "telegram_file_id": telegram_file_id,
        "raw_response": raw_response,
    }).execute()
    transaction = Transaction.from_row(response.data[0])
    logger.info("Transação %s registrada para o chat %s: %s", transaction.id, chat_id, amount)
    return transaction


def is_duplicate(supabase_client: Client, chat_id: int, telegram_file_id: str) -> bool:
    """Verifica se este arquivo já foi registrado neste chat."""
    response = (
        supabase_client.table(TRANSACTIONS)
        .select("id")
        .eq("chat_id", chat_id)
        .eq("telegram_file_id", telegram_file_id)
        .limit(1)
        .execute()
    )
    return len(response.data) > 0


def get_today_transactions(supabase_client: Client, chat_id: int,
                           now: Union[datetime.datetime, None] = None,
                           descending: bool = False) -> List[Transaction]:
    """Obtém as transações de hoje. A ordem crescente define as posições do /hoje."""
    response = (
        supabase_client.table(TRANSACTIONS)
        .select("*")
        .eq("chat_id", chat_id)
        .gte("created_at", _today_iso(now))
        .order("created_at", desc=descending)
        .execute()
    )
    return [Transaction.from_row(row) for row in response.data]


def count_today_transactions(supabase_client: Client, chat_id: int,
                             now: Union[datetime.datetime, None] = None) -> int:
    response = (
        supabase_client.table(TRANSACTIONS)
        .select("id", count="exact", head=True)
        .eq("chat_id", chat_id)
        .gte("created_at", _today_iso(now))
        .execute()
    )
    return response.count or 0


def get_today_stats(supabase_client: Client, chat_id: int,
                    now: Union[datetime.datetime, None] = None) -> Dict[str, Any]:
    """Soma e quantidade das transações de hoje."""
    response = (
        supabase_client.table(TRANSACTIONS)
        .select("amount")
        .eq("chat_id", chat_id)
        .gte("created_at", _today_iso(now))
        .execute()
    )
    total = sum((Decimal(str(row["amount"])) for row in response.data), Decimal("0"))
    return {"total": total, "count": len(response.data)}


def clear_today_transactions(supabase_client: Client, chat_id: int,
                             now: Union[datetime.datetime, None] = None) -> int:
    """Apaga todas as transações de hoje e retorna quantas foram removidas."""
    response = (
        supabase_client.table(TRANSACTIONS)
        .delete()
        .eq("chat_id", chat_id)
        .gte("created_at", _today_iso(now))
        .execute()
    )
    count = len(response.data)
    logger.info("%s transações de hoje apagadas para o chat %s", count, chat_id)
    return count


def delete_transaction_by_position(supabase_client: Client, chat_id: int,
                                   position: Union[int, None] = None,
                                   now: Union[datetime.datetime, None] = None) -> Union[Transaction, None]:
    """
    Apaga a transação na posição indicada (1 = mais antiga, como no /hoje).
    Sem posição, apaga a mais recente. Fora do intervalo retorna None.
    """
    transactions = get_today_transactions(supabase_client, chat_id, now)
    if not transactions:
        return None

    target_index = len(transactions) - 1 if position is None else position - 1
    if target_index < 0 or target_index >= len(transactions):
        return None

    target = transactions[target_index]
    supabase_client.table(TRANSACTIONS).delete().eq("id", target.id).execute()
    logger.info("Transação %s (posição %s) apagada do chat %s", target.id, target_index + 1, chat_id)
    return target


def update_last_transaction_amount(supabase_client: Client, chat_id: int, new_amount: Decimal,
                                   now: Union[datetime.datetime, None] = None) -> Union[Transaction, None]:
    """Corrige o valor da última transação de hoje. O valor deve ser > 0."""
    response = (
        supabase_client.table(TRANSACTIONS)
        .select("*")
        .eq("chat_id", chat_id)
        .gte("created_at", _today_iso(now))
        .order("created_at", desc=True)
        .limit(1)
        .execute()
    )
    if not response.data:
        return None

    last_id = response.data[0]["id"]
    updated = (
        supabase_client.table(TRANSACTIONS)
        .update({"amount": str(new_amount)})
        .eq("id", last_id)
        .execute()
    )
    logger.info("Transação %s do chat %s corrigida para %s", last_id, chat_id, new_amount)
    return Transaction.from_row(updated.data[0])


# --- Funções para Assinaturas ---
def get_subscription(supabase_client: Client, chat_id: int) -> Union[Subscription, None]:
    response = (
        supabase_client.table(SUBSCRIPTIONS)
        .select("*")
        .eq("chat_id", chat_id)
        .limit(1)
        .execute()
    )
    if not response.data:
        return None
    return Subscription.from_row(response.data[0])


def get_or_create_subscription(supabase_client: Client, chat_id: int) -> Subscription:
    """
    Obtém a assinatura do chat, criando-a no plano grátis se não existir.
    O upsert envia apenas chat_id: uma linha existente volta intacta e uma
    nova recebe os valores padrão da tabela.
    """
    response = (
        supabase_client.table(SUBSCRIPTIONS)
        .upsert({"chat_id": chat_id}, on_conflict="chat_id")
        .execute()
    )
    return Subscription.from_row(response.data[0])


def downgrade_to_free(supabase_client: Client, chat_id: int) -> None:
    """Rebaixa uma assinatura vencida para o plano grátis."""
    supabase_client.table(SUBSCRIPTIONS).update({
        "plan": PlanType.FREE.value,
        "transactions_used": 0,
        "period_end": None,
    }).eq("chat_id", chat_id).execute()
    logger.info("Assinatura do chat %s rebaixada para o plano grátis", chat_id)


def increment_usage(supabase_client: Client, chat_id: int) -> bool:
    """Soma um ao uso do período. O plano grátis conta direto das transações."""
    subscription = get_or_create_subscription(supabase_client, chat_id)
    if subscription.plan == PlanType.FREE:
        return False

    supabase_client.table(SUBSCRIPTIONS).update({
        "transactions_used": subscription.transactions_used + 1,
    }).eq("chat_id", chat_id).execute()
    return True


def activate_subscription(supabase_client: Client, chat_id: int, plan: PlanType,
                          now: Union[datetime.datetime, None] = None) -> Subscription:
    """Ativa o plano pago por um mês a partir de agora, zerando o uso."""
    now = now or utc_now()
    response = (
        supabase_client.table(SUBSCRIPTIONS)
        .upsert({
            "chat_id": chat_id,
            "plan": plan.value,
            "transactions_used": 0,
            "period_start": now.isoformat(),
            "period_end": add_months(now, 1).isoformat(),
        }, on_conflict="chat_id")
        .execute()
    )
    logger.info("Plano %s ativado para o chat %s", plan.value, chat_id)
    return Subscription.from_row(response.data[0])


def reset_monthly_usage(supabase_client: Client, now: Union[datetime.datetime, None] = None) -> int:
    """Zera o uso de todas as assinaturas pagas. Retorna quantas foram afetadas."""
    now = now or utc_now()
    response = (
        supabase_client.table(SUBSCRIPTIONS)
        .update({"transactions_used": 0, "period_start": now.isoformat()})
        .neq("plan", PlanType.FREE.value)
        .execute()
    )
    return len(response.data)


# --- Funções para Pagamentos ---
def save_payment(supabase_client: Client, chat_id: int, plan: PlanType, amount: Decimal,
                 mp_payment_id: str, mp_status: Union[str, None],
                 pix_qr_code: Union[str, None], pix_qr_code_base64: Union[str, None]) -> Payment:
    response = supabase_client.table(PAYMENTS).insert({
        "chat_id": chat_id,
        "plan": plan.value,
        "amount": str(amount),
        "mp_payment_id": mp_payment_id,
        "mp_status": mp_status,
        "pix_qr_code": pix_qr_code,
        "pix_qr_code_base64": pix_qr_code_base64,
    }).execute()
    return Payment.from_row(response.data[0])


def update_payment_status(supabase_client: Client, mp_payment_id: str, status: str) -> None:
    supabase_client.table(PAYMENTS).update({"mp_status": status}).eq("mp_payment_id", mp_payment_id).execute()


def get_payment_by_mp_id(supabase_client: Client, mp_payment_id: str) -> Union[Payment, None]:
    response = (
        supabase_client.table(PAYMENTS)
        .select("*")
        .eq("mp_payment_id", mp_payment_id)
        .limit(1)
        .execute()
    )
    if not response.data:
        return None
    return Payment.from_row(response.data[0])
