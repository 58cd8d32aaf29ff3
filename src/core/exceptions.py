# src/core/exceptions.py
"""Hierarquia de exceções do PIX Totalizer."""
from typing import Union


class PixTotalizerError(Exception):
    """Base para todos os erros da aplicação."""


class ConfigurationError(PixTotalizerError):
    """Configuração ausente ou inválida."""


class VisionAPIError(PixTotalizerError):
    """A API de visão falhou mesmo após as novas tentativas."""


class PaymentGatewayError(PixTotalizerError):
    """O Mercado Pago recusou a requisição ou não respondeu."""

    def __init__(self, message: str, status_code: Union[int, None] = None):
        super().__init__(message)
        self.status_code = status_code
