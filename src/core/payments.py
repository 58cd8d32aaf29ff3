# src/core/payments.py
"""
Integração com o Mercado Pago: cobrança PIX, webhook e validação de assinatura.

Docs: https://www.mercadopago.com.br/developers/pt/docs/your-integrations/notifications/webhooks
"""
import datetime
import hashlib
import hmac
import logging
from dataclasses import dataclass
from typing import Any, Dict, Tuple, Union

import requests
from supabase import Client

from src.config import MERCADO_PAGO_API_URL
from src.core import db
from src.core.exceptions import PaymentGatewayError
from src.core.models import PLANS, PlanType
from src.utils.date_utils import utc_now
from src.utils.text_utils import format_currency

logger = logging.getLogger(__name__)

APPROVED = "approved"


class MercadoPagoClient:
    """Cliente mínimo da API de pagamentos do Mercado Pago."""

    def __init__(self, access_token: str, base_url: str = MERCADO_PAGO_API_URL, timeout: float = 30.0):
        self.access_token = access_token
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.headers = {
            "Authorization": f"Bearer {access_token}",
            "Content-Type": "application/json",
        }

    def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        try:
            response = requests.request(
                method, f"{self.base_url}{path}", timeout=self.timeout, **kwargs
            )
        except requests.exceptions.RequestException as e:
            raise PaymentGatewayError(f"Erro ao conectar com Mercado Pago: {e}") from e

        try:
            data = response.json()
        except ValueError:
            data = {}

        if not response.ok:
            logger.error("Mercado Pago respondeu %s: %s", response.status_code, data or response.text)
            message = data.get("message") if isinstance(data, dict) else None
            raise PaymentGatewayError(message or "Erro ao criar pagamento", response.status_code)
        return data

    def create_pix_payment(self, amount, description: str, payer_email: str,
                           external_reference: str, idempotency_key: str) -> Dict[str, Any]:
        return self._request(
            "POST",
            "/v1/payments",
            headers={**self.headers, "X-Idempotency-Key": idempotency_key},
            json={
                "transaction_amount": float(amount),
                "payment_method_id": "pix",
                "payer": {"email": payer_email},
                "description": description,
                "external_reference": external_reference,
            },
        )

    def get_payment(self, payment_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/v1/payments/{payment_id}", headers=self.headers)


@dataclass
class ChargeResult:
    success: bool
    payment_id: Union[str, None] = None
    qr_code: Union[str, None] = None
    qr_code_base64: Union[str, None] = None
    error: Union[str, None] = None


@dataclass
class WebhookResult:
    success: bool
    chat_id: Union[int, None] = None
    plan: Union[PlanType, None] = None
    status: Union[str, None] = None


def validate_webhook_signature(secret: Union[str, None], x_signature: Union[str, None],
                               x_request_id: Union[str, None], data_id: str) -> bool:
    """
    Valida o header x-signature ("ts=...,v1=...") enviado pelo Mercado Pago.

    O HMAC-SHA256 é calculado sobre "id:<dataId>;request-id:<requestId>;ts:<ts>;".
    Sem segredo configurado, aceita tudo (e avisa no log).
    """
    if not secret:
        logger.warning("MERCADO_PAGO_WEBHOOK_SECRET não configurado - assinatura não validada")
        return True

    if not x_signature or not x_request_id:
        logger.error("Headers x-signature ou x-request-id ausentes")
        return False

    signature_parts = {}
    for part in x_signature.split(","):
        key, _, value = part.partition("=")
        if key.strip() and value.strip():
            signature_parts[key.strip()] = value.strip()

    ts = signature_parts.get("ts")
    v1 = signature_parts.get("v1")
    if not ts or not v1:
        logger.error("Formato inválido de x-signature")
        return False

    manifest = f"id:{data_id};request-id:{x_request_id};ts:{ts};"
    expected_signature = hmac.new(secret.encode(), manifest.encode(), hashlib.sha256).hexdigest()

    is_valid = hmac.compare_digest(v1.encode(), expected_signature.encode())
    if not is_valid:
        logger.error("Falha na validação da assinatura do webhook")
    return is_valid


def parse_external_reference(reference: Union[str, None]) -> Union[Tuple[int, PlanType], None]:
    """Decodifica "chatId:plano". Retorna None se a referência for inválida."""
    if not reference:
        return None
    chat_id_str, separator, plan_str = reference.partition(":")
    if not separator:
        return None
    try:
        chat_id = int(chat_id_str)
        plan = PlanType(plan_str)
    except ValueError:
        return None
    if chat_id == 0 or plan == PlanType.FREE:
        return None
    return chat_id, plan


def create_pix_charge(supabase_client: Client, gateway: Union[MercadoPagoClient, None],
                      chat_id: int, plan: PlanType,
                      now: Union[datetime.datetime, None] = None) -> ChargeResult:
    """Cria a cobrança PIX do plano e registra o pagamento pendente."""
    if gateway is None:
        return ChargeResult(success=False, error="Mercado Pago não configurado")

    plan_info = PLANS[plan]
    if not plan_info.is_paid:
        return ChargeResult(success=False, error="Plano gratuito não requer pagamento")

    now = now or utc_now()
    idempotency_key = f"{chat_id}-{plan.value}-{int(now.timestamp() * 1000)}"

    try:
        data = gateway.create_pix_payment(
            amount=plan_info.price,
            description=f"PIX Totalizer - Plano {plan_info.display_name}",
            payer_email=f"telegram_{chat_id}@pixtotalizer.com",
            external_reference=f"{chat_id}:{plan.value}",
            idempotency_key=idempotency_key,
        )
    except PaymentGatewayError as e:
        logger.error("Erro ao criar pagamento PIX para o chat %s: %s", chat_id, e)
        return ChargeResult(success=False, error=str(e))

    transaction_data = (data.get("point_of_interaction") or {}).get("transaction_data") or {}
    qr_code = transaction_data.get("qr_code")
    qr_code_base64 = transaction_data.get("qr_code_base64")
    payment_id = str(data.get("id"))

    db.save_payment(
        supabase_client,
        chat_id,
        plan,
        plan_info.price,
        payment_id,
        data.get("status"),
        qr_code,
        qr_code_base64,
    )
    logger.info("Cobrança PIX %s criada para o chat %s (plano %s)", payment_id, chat_id, plan.value)

    return ChargeResult(
        success=True,
        payment_id=payment_id,
        qr_code=qr_code,
        qr_code_base64=qr_code_base64,
    )


def handle_payment_webhook(supabase_client: Client, gateway: Union[MercadoPagoClient, None],
                           mp_payment_id: str,
                           now: Union[datetime.datetime, None] = None) -> WebhookResult:
    """
    Consulta o pagamento no Mercado Pago e ativa a assinatura se aprovado.

    Pagamento pendente/recusado apenas atualiza o status registrado.
    Referência externa inválida é registrada no log e ignorada. Um pagamento
    já registrado como aprovado não reativa o plano (reenvios do webhook).
    """
    if gateway is None:
        return WebhookResult(success=False)

    payment = gateway.get_payment(mp_payment_id)
    status = payment.get("status")

    if status != APPROVED:
        db.update_payment_status(supabase_client, mp_payment_id, status)
        logger.info("Pagamento %s com status %s", mp_payment_id, status)
        return WebhookResult(success=False, status=status)

    reference = parse_external_reference(payment.get("external_reference"))
    if reference is None:
        logger.error("external_reference inválida no pagamento %s: %r",
                     mp_payment_id, payment.get("external_reference"))
        return WebhookResult(success=False, status=status)

    chat_id, plan = reference
    stored = db.get_payment_by_mp_id(supabase_client, mp_payment_id)
    if stored and stored.mp_status == APPROVED:
        logger.info("Pagamento %s já processado, ignorando reenvio", mp_payment_id)
        return WebhookResult(success=False, chat_id=chat_id, plan=plan, status=status)

    # O status só vira approved depois da ativação
    db.activate_subscription(supabase_client, chat_id, plan, now)
    db.update_payment_status(supabase_client, mp_payment_id, APPROVED)

    return WebhookResult(success=True, chat_id=chat_id, plan=plan, status=status)


def get_payment_message(plan: PlanType, qr_code: str) -> str:
    plan_info = PLANS[plan]
    return (
        f"💳 *Pagamento PIX - {plan_info.display_name}*\n\n"
        f"Valor: {format_currency(plan_info.price)}\n\n"
        "📱 *Como pagar:*\n"
        "1. Abra o app do seu banco\n"
        "2. Escolha pagar com PIX\n"
        "3. Escaneie o QR Code ou copie o código abaixo\n\n"
        f"```\n{qr_code}\n```\n\n"
        "⏰ O PIX expira em 30 minutos.\n"
        "Após o pagamento, seu plano será ativado automaticamente."
    )


def get_confirmation_message(plan: PlanType) -> str:
    plan_info = PLANS[plan]
    return (
        "✅ Pagamento confirmado!\n\n"
        f"Seu plano *{plan_info.display_name}* foi ativado.\n"
        f"Limite: {plan_info.description}\n\n"
        "Obrigado por assinar o PIX Totalizer!"
    )
