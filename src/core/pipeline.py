# src/core/pipeline.py
import datetime
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Union

from supabase import Client

from src.core import db
from src.core.ai import extract_receipt_data
from src.core.models import ExtractionResult, Transaction, UsageDecision
from src.core.subscription import can_process
from src.core.summary import get_running_total_message

logger = logging.getLogger(__name__)

Extractor = Callable[[bytes, str], ExtractionResult]


class ReceiptStatus(Enum):
    DUPLICATE = "duplicate"
    NOT_ALLOWED = "not_allowed"
    ADMITTED = "admitted"
    EXTRACTION_FAILED = "extraction_failed"
    RECORDED = "recorded"


@dataclass
class ReceiptOutcome:
    status: ReceiptStatus
    decision: Union[UsageDecision, None] = None
    extraction: Union[ExtractionResult, None] = None
    transaction: Union[Transaction, None] = None
    message: Union[str, None] = None


def admit_receipt(supabase_client: Client, chat_id: int, telegram_file_id: str,
                  now: Union[datetime.datetime, None] = None) -> ReceiptOutcome:
    """Duplicidade primeiro, depois o limite do plano. Nada é gravado aqui."""
    if db.is_duplicate(supabase_client, chat_id, telegram_file_id):
        logger.info("Comprovante %s repetido no chat %s", telegram_file_id, chat_id)
        return ReceiptOutcome(status=ReceiptStatus.DUPLICATE)

    decision = can_process(supabase_client, chat_id, now)
    if not decision.allowed:
        logger.info("Chat %s sem cota no plano %s (%s/%s)",
                    chat_id, decision.plan.value, decision.used, decision.limit)
        return ReceiptOutcome(status=ReceiptStatus.NOT_ALLOWED, decision=decision)

    return ReceiptOutcome(status=ReceiptStatus.ADMITTED, decision=decision)


def ingest_receipt(supabase_client: Client, chat_id: int, telegram_file_id: str,
                   file_bytes: bytes, media_type: str,
                   extractor: Extractor = extract_receipt_data) -> ReceiptOutcome:
    """
    Extrai o valor e registra o comprovante já admitido.

    Sem valor identificado, nenhuma linha é gravada. O uso só é incrementado
    depois da gravação. Exceções do extrator e do banco sobem para o chamador.
    """
    extraction = extractor(file_bytes, media_type)
    if extraction.amount is None:
        logger.info("Valor não identificado no comprovante %s: %s", telegram_file_id, extraction.error)
        return ReceiptOutcome(status=ReceiptStatus.EXTRACTION_FAILED, extraction=extraction)

    transaction = db.save_transaction(
        supabase_client,
        chat_id,
        extraction.amount,
        extraction.bank,
        extraction.client_name,
        telegram_file_id,
        extraction.raw_response,
    )
    db.increment_usage(supabase_client, chat_id)

    message = get_running_total_message(
        supabase_client, chat_id, extraction.amount, extraction.bank, extraction.client_name
    )
    return ReceiptOutcome(
        status=ReceiptStatus.RECORDED,
        extraction=extraction,
        transaction=transaction,
        message=message,
    )
