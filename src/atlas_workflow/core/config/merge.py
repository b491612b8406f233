# src/atlas_workflow/core/config/merge.py
"""
Deep-merge e leitura de chaves aninhadas de configuração.

Política de merge (v1):
    - dict → merge recursivo por chave
    - list → sobrescrita total
    - escalar → sobrescrita direta
    - conflito de tipos → ConfigTypeConflictError

Números são tratados como uma única família: um override `1` sobre um
default `0.5` é aceito (int e float são intercambiáveis em YAML), mas
`bool` nunca substitui um número nem o contrário.

Invariantes:
    - Nenhum input é mutado
    - O mesmo par (base, override) sempre produz o mesmo resultado
"""

from copy import deepcopy
from typing import Any, Dict, Sequence

from .errors import ConfigTypeConflictError


def _type_family(value: Any) -> type:
    if isinstance(value, bool):
        return bool
    if isinstance(value, (int, float)):
        return float
    return type(value)


def deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """
    Combina `override` sobre `base`, produzindo um novo dicionário.

    Raises:
        ConfigTypeConflictError: se uma chave mudar de tipo entre base e override.
    """
    if not isinstance(base, dict) or not isinstance(override, dict):
        raise ConfigTypeConflictError(
            f"Deep-merge requer dicts no nível raiz, recebido: "
            f"{type(base).__name__} vs {type(override).__name__}"
        )

    merged: Dict[str, Any] = deepcopy(base)

    for key, value in override.items():
        if key not in merged or merged[key] is None or value is None:
            merged[key] = deepcopy(value)
            continue

        current = merged[key]

        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = deep_merge(current, value)
        elif isinstance(value, list) and isinstance(current, list):
            merged[key] = deepcopy(value)
        elif _type_family(current) is not _type_family(value):
            raise ConfigTypeConflictError(
                f"Conflito de tipo na chave '{key}': "
                f"{type(current).__name__} vs {type(value).__name__}"
            )
        else:
            merged[key] = deepcopy(value)

    return merged


def get_in(config: Dict[str, Any], path: Sequence[str], default: Any = None) -> Any:
    """Lê `config[a][b]...` tolerando seções ausentes ou nulas."""
    node: Any = config or {}
    for key in path:
        if not isinstance(node, dict):
            return default
        node = node.get(key)
        if node is None:
            return default
    return node
