# src/core/summary.py
import datetime
from decimal import Decimal
from typing import Union

from supabase import Client

from src.core import db
from src.utils.date_utils import local_timezone, utc_now
from src.utils.text_utils import format_currency, plural


def get_running_total_message(supabase_client: Client, chat_id: int, just_added_amount: Decimal,
                              bank: Union[str, None] = None,
                              client_name: Union[str, None] = None) -> str:
    """Resposta enviada logo após registrar um comprovante."""
    stats = db.get_today_stats(supabase_client, chat_id)
    count = stats["count"]

    details = []
    if client_name:
        details.append(f"👤 {client_name}")
    if bank:
        details.append(f"🏦 {bank}")
    details_line = f"\n{' | '.join(details)}" if details else ""

    return (
        f"✓ {format_currency(just_added_amount)}{details_line}\n"
        f"📊 Total hoje: {format_currency(stats['total'])} ({count} {plural(count, 'venda', 'vendas')})"
    )


def get_daily_summary_message(supabase_client: Client, chat_id: int,
                              now: Union[datetime.datetime, None] = None) -> str:
    now = now or utc_now()
    stats = db.get_today_stats(supabase_client, chat_id, now)
    date_str = now.astimezone(local_timezone()).strftime("%d/%m/%Y")
    return (
        f"📅 PIX {date_str}\n"
        f"💰 Total: {format_currency(stats['total'])}\n"
        f"🧾 {stats['count']} {plural(stats['count'], 'transação', 'transações')}"
    )


def get_transaction_list_message(supabase_client: Client, chat_id: int,
                                 now: Union[datetime.datetime, None] = None) -> str:
    """Lista numerada de hoje. A numeração é a mesma usada pelo /apagar."""
    transactions = db.get_today_transactions(supabase_client, chat_id, now)
    if not transactions:
        return "Nenhuma transação registrada hoje."

    tz = local_timezone()
    total = sum((t.amount for t in transactions), Decimal("0"))
    lines = []
    for position, transaction in enumerate(transactions, start=1):
        time_str = transaction.created_at.astimezone(tz).strftime("%H:%M")
        details = [d for d in (transaction.client_name, transaction.bank_detected) if d]
        detail_str = f" ({' - '.join(details)})" if details else ""
        lines.append(f"{position}. {time_str} - {format_currency(transaction.amount)}{detail_str}")

    header = f"📋 Transações de hoje ({len(transactions)}):\n\n"
    footer = f"\n\n💰 Total: {format_currency(total)}"
    return header + "\n".join(lines) + footer
