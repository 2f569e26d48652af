"""
engine/errors.py

Taxonomia de erros do motor:
- `InvalidInputError`: entrada rejeitada antes de qualquer codificação.
- `EncodeError`: falha do codec para um (tamanho, qualidade, formato).
- `UnreachableTargetWarning`: alvo fora do alcance; o resultado ainda é entregue.
"""

from __future__ import annotations


class InvalidInputError(ValueError):
    """Dimensões, pedido ou configuração inválidos."""


class EncodeError(RuntimeError):
    """O codec não conseguiu gerar o artefato."""


class UnreachableTargetWarning(UserWarning):
    """Não foi possível atingir o tamanho-alvo; o melhor resultado foi usado."""
