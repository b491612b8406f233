# src/atlas_workflow/core/config/hashing.py
"""
Hashing canônico de configuração do Atlas Workflow.

O hash representa a identidade estrutural da configuração efetiva e é
registrado no Manifest de cada execução.

Política (v1):
    - JSON canônico (chaves ordenadas, separadores compactos, UTF-8)
    - SHA-256 em hexadecimal (64 caracteres)
    - Valores não serializáveis em JSON (ex.: Path) são convertidos com `str`
"""

import hashlib
import json
from typing import Any, Dict


def canonical_json(config: Dict[str, Any]) -> str:
    return json.dumps(
        config,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=str,
    )


def compute_config_hash(config: Dict[str, Any]) -> str:
    """
    Gera o hash SHA-256 determinístico da configuração.

    Raises:
        TypeError: se `config` não for um dicionário.
    """
    if not isinstance(config, dict):
        raise TypeError(
            f"Config para hashing deve ser dict, recebido: {type(config).__name__}"
        )

    return hashlib.sha256(canonical_json(config).encode("utf-8")).hexdigest()
