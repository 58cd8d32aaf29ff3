# src/web.py
import asyncio
import logging
from typing import Union

from flask import Flask, jsonify, request
from supabase import Client
from telegram import Update
from telegram.error import TelegramError
from telegram.ext import Application

from src.core.payments import (
    MercadoPagoClient,
    get_confirmation_message,
    handle_payment_webhook,
    validate_webhook_signature,
)

logger = logging.getLogger(__name__)

PAYMENT_ACTIONS = {"payment.created", "payment.updated"}


def create_web_app(application: Application, supabase_client: Client,
                   gateway: Union[MercadoPagoClient, None],
                   webhook_secret: Union[str, None]) -> Flask:
    """Cria o app Flask com o healthcheck e os webhooks do Telegram e do Mercado Pago."""
    flask_app = Flask(__name__)

    @flask_app.get("/health")
    def health():
        return jsonify({"status": "ok"}), 200

    @flask_app.post("/webhook/telegram")
    async def telegram_webhook():
        if not request.is_json:
            logger.error("Webhook do Telegram recebeu requisição sem JSON")
            return jsonify({"status": "error", "message": "Request must be JSON"}), 400

        update = Update.de_json(request.get_json(), application.bot)
        await application.update_queue.put(update)
        return jsonify({"status": "ok"}), 200

    @flask_app.post("/webhook/mercadopago")
    async def mercadopago_webhook():
        data = request.get_json(silent=True) or {}
        payload = data.get("data") or {}
        data_id = str(payload.get("id") or "")
        action = data.get("action")
        logger.info("Webhook recebido: %s %s", action, data_id)

        if not validate_webhook_signature(
            webhook_secret,
            request.headers.get("x-signature"),
            request.headers.get("x-request-id"),
            data_id,
        ):
            logger.error("Assinatura inválida no webhook - requisição rejeitada")
            return "Unauthorized", 401

        if action not in PAYMENT_ACTIONS or not data_id:
            return "OK", 200

        try:
            # Chamada HTTP e escritas no banco fora do loop de eventos do bot
            result = await asyncio.to_thread(handle_payment_webhook, supabase_client, gateway, data_id)
        except Exception:
            logger.exception("Erro no webhook do Mercado Pago para o pagamento %s", data_id)
            return "Error", 500

        if result.success and result.chat_id:
            try:
                await application.bot.send_message(
                    result.chat_id,
                    get_confirmation_message(result.plan),
                    parse_mode="Markdown",
                )
            except TelegramError:
                # O plano já foi ativado; um erro aqui não deve gerar reenvio
                logger.exception("Falha ao enviar a confirmação para o chat %s", result.chat_id)

        return "OK", 200

    return flask_app
