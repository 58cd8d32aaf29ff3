# src/config.py
import os
from dotenv import load_dotenv

from src.core.exceptions import ConfigurationError

load_dotenv()

# Configurações do Telegram
TELEGRAM_BOT_TOKEN = os.getenv("TELEGRAM_BOT_TOKEN")
ADMIN_CHAT_ID = os.getenv("ADMIN_CHAT_ID")
WEBHOOK_URL = os.getenv("WEBHOOK_URL")  # ex: https://pix-totalizer.up.railway.app
PORT = int(os.getenv("PORT", "3000"))

# Configurações do Supabase
SUPABASE_URL = os.getenv("SUPABASE_URL")
SUPABASE_KEY = os.getenv("SUPABASE_KEY")

# Configurações do Gemini API
GOOGLE_API_KEY = os.getenv("GOOGLE_API_KEY")
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.0-flash")
GEMINI_FALLBACK_MODEL = os.getenv("GEMINI_FALLBACK_MODEL", "gemini-2.5-pro")

# Configurações do Mercado Pago
MERCADO_PAGO_ACCESS_TOKEN = os.getenv("MERCADO_PAGO_ACCESS_TOKEN")
MERCADO_PAGO_WEBHOOK_SECRET = os.getenv("MERCADO_PAGO_WEBHOOK_SECRET")
MERCADO_PAGO_API_URL = "https://api.mercadopago.com"

# Fuso usado para o corte de "hoje" e para os jobs agendados
TIMEZONE = os.getenv("TIMEZONE", "America/Sao_Paulo")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Segundos até o teclado de seleção do /apagar expirar
DELETE_PROMPT_TTL = int(os.getenv("DELETE_PROMPT_TTL", "300"))

REQUIRED_ENV_VARS = [
    "TELEGRAM_BOT_TOKEN",
    "SUPABASE_URL",
    "SUPABASE_KEY",
    "GOOGLE_API_KEY",
]


def validate_config() -> None:
    """Garante que as variáveis obrigatórias estão definidas."""
    missing = [name for name in REQUIRED_ENV_VARS if not os.getenv(name)]
    if missing:
        raise ConfigurationError(
            f"Variáveis de ambiente obrigatórias ausentes: {', '.join(missing)}"
        )
