"""
engine/estimate.py

Estimativas de tamanho (KB) de um artefato codificado.

O caminho exato mede os bytes crus. O caminho por transporte reproduz a
conta feita sobre uma data URL base64: cada 4 caracteres carregam 3 bytes,
então `(len(url) - len(cabeçalho)) * 0.75` aproxima o tamanho com uma folga
de poucos bytes (padding `=`).
"""

from __future__ import annotations
from typing import Callable

from .models import EncodedArtifact
from .thumbs import to_data_url

Estimator = Callable[[EncodedArtifact], float]

B64_RATIO = 0.75


def estimate_kb(artifact: EncodedArtifact) -> float:
    """Tamanho exato em KB (bytes / 1024)."""
    return len(artifact.data) / 1024


def estimate_kb_from_data_url(data_url: str) -> float:
    """Tamanho aproximado em KB a partir de `data:<mime>;base64,<payload>`.

    Sem vírgula, a string inteira é tratada como payload.
    """
    header_len = data_url.find(",") + 1  # 0 quando não há cabeçalho
    payload_len = len(data_url) - header_len
    return max(0.0, payload_len * B64_RATIO) / 1024


def estimate_kb_via_transport(artifact: EncodedArtifact) -> float:
    if not artifact.data:
        return 0.0
    return estimate_kb_from_data_url(to_data_url(artifact))


def get_estimator(name: str) -> Estimator:
    if name == "transport":
        return estimate_kb_via_transport
    return estimate_kb
