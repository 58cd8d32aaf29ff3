# src/utils/text_utils.py
import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Union

Number = Union[Decimal, float, int]


def format_currency(value: Number) -> str:
    """Formata um valor em reais no padrão pt-BR.
    Ex: 1500.5 -> "R$ 1.500,50"
    Ex: -3 -> "-R$ 3,00"
    """
    amount = Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    sign = "-" if amount < 0 else ""
    # Formata no padrão en-US e troca os separadores
    us_format = f"{abs(amount):,.2f}"
    br_format = us_format.replace(",", "_").replace(".", ",").replace("_", ".")
    return f"{sign}R$ {br_format}"


def parse_amount(text: str) -> Union[Decimal, None]:
    """Converte o texto digitado pelo usuário em um valor positivo.

    Aceita vírgula ou ponto como separador decimal ("1500,50", "150.00",
    "R$ 1.500,50"). Retorna None se o texto não representar um valor > 0.
    """
    if not text or text.strip().startswith("-"):
        return None

    cleaned = re.sub(r"[^\d.,]", "", text)
    if not cleaned:
        return None

    # Com os dois separadores, o último é o decimal
    if "," in cleaned and "." in cleaned:
        if cleaned.rfind(",") > cleaned.rfind("."):
            cleaned = cleaned.replace(".", "").replace(",", ".")
        else:
            cleaned = cleaned.replace(",", "")
    else:
        cleaned = cleaned.replace(",", ".")
        if cleaned.count(".") > 1:
            return None

    try:
        amount = Decimal(cleaned)
    except InvalidOperation:
        return None

    if not amount.is_finite() or amount <= 0:
        return None
    return amount.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def plural(count: int, singular: str, plural_form: str) -> str:
    return singular if count == 1 else plural_form
