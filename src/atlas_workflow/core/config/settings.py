# src/atlas_workflow/core/config/settings.py
"""
Settings de runtime do processo.

Diferente da configuração de execução (um dict por run, carregado pelo
loader), `Settings` é o registro de runtime do *processo*: ele acompanha
cada TaskContext serializado e é restaurado, por sobrescrita, quando a
tarefa é desserializada em outro processo.

Decisões arquiteturais:
    - Existe uma única instância por processo (`get_settings()`)
    - `set_settings(other)` copia os campos de `other` para a instância
      do processo, preservando a identidade do objeto para quem já o
      referencia

Invariantes:
    - A instância retornada por `get_settings()` nunca é substituída
    - Cópias (`copy()`) são independentes da instância do processo
"""

from __future__ import annotations

import copy
import tempfile
import threading
from dataclasses import dataclass, field, fields
from typing import Dict, Optional


@dataclass
class Settings:
    debug: bool = False
    print_stack_trace: bool = True
    temp_directory: str = field(default_factory=tempfile.gettempdir)
    local_threads: int = 0
    log_level: str = "INFO"
    extra: Dict[str, str] = field(default_factory=dict)

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        return self.extra.get(key, default)

    def set(self, key: str, value: str) -> None:
        self.extra[key] = str(value)

    def copy(self) -> "Settings":
        return copy.deepcopy(self)

    def set_settings(self, other: "Settings") -> None:
        """Sobrescreve todos os campos com os valores de `other`."""
        with _lock:
            for f in fields(self):
                setattr(self, f.name, copy.deepcopy(getattr(other, f.name)))


_lock = threading.RLock()
_settings = Settings()


def get_settings() -> Settings:
    return _settings
