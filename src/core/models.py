# src/core/models.py
import datetime
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional

from src.utils.date_utils import parse_timestamp

# As funções de db.py recebem dicionários do Supabase e os convertem
# nestes modelos logo na borda.


class PlanType(str, Enum):
    FREE = "free"
    BASICO = "basico"
    PRO = "pro"
    ULTRA = "ultra"


@dataclass(frozen=True)
class PlanInfo:
    name: PlanType
    display_name: str
    price: Decimal
    limit: Optional[int]  # None = ilimitado
    description: str

    @property
    def is_paid(self) -> bool:
        return self.price > 0


PLANS: Dict[PlanType, PlanInfo] = {
    PlanType.FREE: PlanInfo(PlanType.FREE, "Grátis", Decimal("0"), 5, "5 comprovantes/dia"),
    PlanType.BASICO: PlanInfo(PlanType.BASICO, "Básico", Decimal("197"), 1000, "1.000 comprovantes/mês"),
    PlanType.PRO: PlanInfo(PlanType.PRO, "Pro", Decimal("349"), 3500, "3.500 comprovantes/mês"),
    PlanType.ULTRA: PlanInfo(PlanType.ULTRA, "Ultra", Decimal("697"), None, "Comprovantes ilimitados"),
}


def to_decimal(value: Any) -> Optional[Decimal]:
    if value is None:
        return None
    return Decimal(str(value))


@dataclass
class Transaction:
    id: int
    chat_id: int
    amount: Decimal
    bank_detected: Optional[str]
    client_name: Optional[str]
    telegram_file_id: str
    raw_response: Optional[str]
    created_at: datetime.datetime

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Transaction":
        return cls(
            id=row["id"],
            chat_id=row["chat_id"],
            amount=to_decimal(row["amount"]),
            bank_detected=row.get("bank_detected"),
            client_name=row.get("client_name"),
            telegram_file_id=row["telegram_file_id"],
            raw_response=row.get("raw_response"),
            created_at=parse_timestamp(row.get("created_at")),
        )


@dataclass
class Subscription:
    id: int
    chat_id: int
    plan: PlanType
    transactions_used: int
    period_start: Optional[datetime.datetime]
    period_end: Optional[datetime.datetime]
    created_at: Optional[datetime.datetime]

    @property
    def plan_info(self) -> PlanInfo:
        return PLANS[self.plan]

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Subscription":
        return cls(
            id=row.get("id"),
            chat_id=row["chat_id"],
            plan=PlanType(row.get("plan") or PlanType.FREE.value),
            transactions_used=row.get("transactions_used") or 0,
            period_start=parse_timestamp(row.get("period_start")),
            period_end=parse_timestamp(row.get("period_end")),
            created_at=parse_timestamp(row.get("created_at")),
        )


@dataclass
class Payment:
    id: int
    chat_id: int
    plan: PlanType
    amount: Decimal
    mp_payment_id: Optional[str]
    mp_status: Optional[str]
    pix_qr_code: Optional[str]
    pix_qr_code_base64: Optional[str]
    created_at: Optional[datetime.datetime]

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Payment":
        return cls(
            id=row.get("id"),
            chat_id=row["chat_id"],
            plan=PlanType(row["plan"]),
            amount=to_decimal(row["amount"]),
            mp_payment_id=row.get("mp_payment_id"),
            mp_status=row.get("mp_status"),
            pix_qr_code=row.get("pix_qr_code"),
            pix_qr_code_base64=row.get("pix_qr_code_base64"),
            created_at=parse_timestamp(row.get("created_at")),
        )


@dataclass
class UsageDecision:
    """Resposta do controle de uso para um novo comprovante."""

    allowed: bool
    plan: PlanType
    used: int
    limit: Optional[int]
    message: Optional[str] = None
    expired: bool = False
    in_grace_period: bool = False
    days_until_expiry: Optional[int] = None


@dataclass
class ExtractionResult:
    amount: Optional[Decimal]
    bank: Optional[str]
    client_name: Optional[str]
    raw_response: str
    error: Optional[str] = None
