# src/atlas_workflow/core/config/loader.py
"""
Loader canônico de configuração do Atlas Workflow.

A configuração efetiva é resolvida a partir de:
    - um arquivo de defaults (obrigatório), por padrão o `defaults.yaml`
      distribuído com o pacote
    - um arquivo local de overrides (opcional)

Princípios fundamentais:
    - Overrides locais sempre têm precedência sobre defaults
    - Erros estruturais são tratados como falhas fatais
    - A mesma entrada sempre produz a mesma configuração final

Limites explícitos:
    - Não valida semântica de domínio
    - Não interage com Engine ou Steps
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml  # PyYAML

from .errors import (
    DefaultsNotFoundError,
    InvalidConfigContentError,
    InvalidConfigRootTypeError,
    UnsupportedConfigFormatError,
)
from .merge import deep_merge

PathLike = Union[str, Path]

DEFAULTS_FILE = Path(__file__).with_name("defaults.yaml")


def _load_file(path: Path) -> Dict[str, Any]:
    """
    Lê um arquivo YAML/JSON e garante que a raiz seja um dicionário.

    Arquivos vazios são interpretados como `{}`.

    Raises:
        DefaultsNotFoundError: se o arquivo não existir.
        UnsupportedConfigFormatError: se a extensão não for suportada.
        InvalidConfigContentError: se o conteúdo não puder ser interpretado.
        InvalidConfigRootTypeError: se a raiz não for um dicionário.
    """
    if not path.exists():
        raise DefaultsNotFoundError(f"Arquivo de defaults não encontrado: {path}")

    suffix = path.suffix.lower()

    try:
        if suffix in {".yaml", ".yml"}:
            with path.open("r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        elif suffix == ".json":
            with path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        else:
            raise UnsupportedConfigFormatError(f"Formato não suportado: {path.suffix}")
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise InvalidConfigContentError(f"Conteúdo inválido em {path}: {e}") from e

    if data is None:
        data = {}

    if not isinstance(data, dict):
        raise InvalidConfigRootTypeError(
            f"Config root deve ser dict, recebido: {type(data).__name__}"
        )

    return data


def load_config(
    *,
    defaults_path: PathLike,
    local_path: Optional[PathLike] = None,
) -> Dict[str, Any]:
    """
    Carrega e resolve a configuração efetiva.

    O arquivo local é opcional: quando informado mas inexistente, é ignorado.

    Args:
        defaults_path: caminho para o arquivo de configuração base.
        local_path: caminho opcional para overrides locais.

    Returns:
        Dict[str, Any]: configuração final resolvida.

    Raises:
        DefaultsNotFoundError, UnsupportedConfigFormatError,
        InvalidConfigRootTypeError, InvalidConfigContentError,
        ConfigTypeConflictError
    """
    effective = _load_file(Path(defaults_path))

    if local_path is not None:
        local_file = Path(local_path)
        if local_file.exists():
            effective = deep_merge(effective, _load_file(local_file))

    return effective


def load_default_config(local_path: Optional[PathLike] = None) -> Dict[str, Any]:
    """Resolve a configuração a partir do `defaults.yaml` do pacote."""
    return load_config(defaults_path=DEFAULTS_FILE, local_path=local_path)
