# src/core/ai.py
import json
import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Union

import google.generativeai as genai
from google.generativeai.types import HarmCategory, HarmBlockThreshold
from tenacity import (
    before_sleep_log,
    retry,
    stop_after_attempt,
    wait_exponential,
)

from src.config import GOOGLE_API_KEY, GEMINI_MODEL, GEMINI_FALLBACK_MODEL
from src.core.exceptions import VisionAPIError
from src.core.models import ExtractionResult

logger = logging.getLogger(__name__)

genai.configure(api_key=GOOGLE_API_KEY)

# Comprovantes trazem nomes e valores; nada aqui deve ser bloqueado
safety_settings = {
    HarmCategory.HARM_CATEGORY_HARASSMENT: HarmBlockThreshold.BLOCK_NONE,
    HarmCategory.HARM_CATEGORY_HATE_SPEECH: HarmBlockThreshold.BLOCK_NONE,
    HarmCategory.HARM_CATEGORY_SEXUALLY_EXPLICIT: HarmBlockThreshold.BLOCK_NONE,
    HarmCategory.HARM_CATEGORY_DANGEROUS_CONTENT: HarmBlockThreshold.BLOCK_NONE,
}

SUPPORTED_MEDIA_TYPES = {
    "image/jpeg",
    "image/png",
    "image/webp",
    "image/gif",
    "application/pdf",
}

MAX_ATTEMPTS = 3

EXTRACTION_PROMPT = """This is a Brazilian PIX payment confirmation. Extract the transaction details.

Respond in this exact JSON format:
{"amount": 150.00, "bank": "Nubank", "clientName": "João Silva"}

Rules:
- amount: The value in BRL as a number (e.g., 1500.50 for R$1.500,50)
- bank: The bank/institution name if visible (e.g., "Nubank", "Itaú", "Banco do Brasil"), or null
- clientName: The payer's name (who sent the PIX), or null if not visible
- If you cannot find an amount, respond: {"amount": null, "bank": null, "clientName": null, "error": "reason"}

Only respond with the JSON, nothing else."""


@retry(
    stop=stop_after_attempt(MAX_ATTEMPTS),
    wait=wait_exponential(multiplier=1, min=1, max=4),
    before_sleep=before_sleep_log(logger, logging.WARNING),
    reraise=True,
)
def _generate_content(model_name: str, file_bytes: bytes, media_type: str) -> str:
    """Chama o Gemini com o arquivo inline e retorna o texto da resposta."""
    model_instance = genai.GenerativeModel(
        model_name=model_name, safety_settings=safety_settings
    )
    response = model_instance.generate_content(
        [{"mime_type": media_type, "data": file_bytes}, EXTRACTION_PROMPT],
        generation_config={"max_output_tokens": 256, "temperature": 0},
    )
    # Resposta bloqueada ou vazia não tem parts
    if not response.parts:
        logger.debug("Gemini retornou resposta vazia ou bloqueada: %s", response)
        return ""
    return response.text.strip()


def _parse_amount(value: Any) -> Union[Decimal, None]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.replace("R$", "").strip()
        if "," in value:
            value = value.replace(".", "").replace(",", ".")
    try:
        amount = Decimal(str(value))
    except InvalidOperation:
        return None
    if not amount.is_finite() or amount <= 0:
        return None
    return amount


def parse_extraction_response(response_text: str) -> ExtractionResult:
    """Interpreta o JSON devolvido pelo modelo, tolerando cercas de Markdown."""
    json_start = response_text.find("{")
    json_end = response_text.rfind("}")
    try:
        if json_start == -1 or json_end == -1:
            raise ValueError("Resposta sem JSON")
        data = json.loads(response_text[json_start:json_end + 1])
        if not isinstance(data, dict):
            raise ValueError("JSON não é um objeto")
    except (json.JSONDecodeError, ValueError) as e:
        logger.warning("Erro ao decodificar JSON do Gemini: %s. Resposta bruta: %s", e, response_text)
        return ExtractionResult(
            amount=None,
            bank=None,
            client_name=None,
            raw_response=response_text,
            error="Failed to parse response",
        )

    amount = _parse_amount(data.get("amount"))
    error = data.get("error")
    if amount is None and not error and data.get("amount") is not None:
        error = "Invalid amount"

    return ExtractionResult(
        amount=amount,
        bank=data.get("bank") or None,
        client_name=data.get("clientName") or None,
        raw_response=response_text,
        error=error,
    )


def extract_with_model(file_bytes: bytes, media_type: str, model_name: str) -> ExtractionResult:
    try:
        response_text = _generate_content(model_name, file_bytes, media_type)
    except Exception as e:
        logger.error("Gemini (%s) falhou após %s tentativas: %s", model_name, MAX_ATTEMPTS, e)
        raise VisionAPIError(f"Falha na API de visão ({model_name})") from e
    return parse_extraction_response(response_text)


def extract_receipt_data(file_bytes: bytes, media_type: str) -> ExtractionResult:
    """
    Extrai valor, banco e pagador de um comprovante PIX (imagem ou PDF).

    Tenta primeiro o modelo mais barato e, se ele não achar o valor, o modelo
    de fallback. Valor ausente é um resultado válido (amount=None), não um erro.
    Levanta VisionAPIError se a API falhar após as novas tentativas.
    """
    if media_type not in SUPPORTED_MEDIA_TYPES:
        raise ValueError(f"Tipo de mídia não suportado: {media_type}")

    result = extract_with_model(file_bytes, media_type, GEMINI_MODEL)
    if result.amount is not None or GEMINI_FALLBACK_MODEL == GEMINI_MODEL:
        return result

    logger.info("%s não identificou o valor, tentando %s...", GEMINI_MODEL, GEMINI_FALLBACK_MODEL)
    return extract_with_model(file_bytes, media_type, GEMINI_FALLBACK_MODEL)
