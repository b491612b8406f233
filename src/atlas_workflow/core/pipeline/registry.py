# src/atlas_workflow/core/pipeline/registry.py
"""
Registro explícito de módulos.

Este módulo define o `ModuleRegistry`, responsável por associar nomes de
módulo a fábricas de instâncias e a seus descritores de capacidade.

Decisões arquiteturais:
    - Registro explícito (sem descoberta por reflexão ou plugins)
    - Capacidades resolvidas no momento do registro
    - Cada registro guarda uma referência importável
      (`"pacote.modulo:Nome"`) para que Steps desserializados em outro
      processo possam reconstruir seu módulo
    - Um registry por workflow (não é singleton de processo)

Invariantes:
    - Nomes de módulo são únicos (case-insensitive)
    - `create()` sempre devolve uma instância nova

Limites explícitos:
    - Não configura módulos
    - Não executa tarefas
"""

from __future__ import annotations

import importlib
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from .module import DEFAULT_CAPABILITIES, ModuleCapabilities

ModuleFactory = Callable[[], Any]


class DuplicateModuleError(ValueError):
    """Dois módulos registrados com o mesmo nome."""


class UnknownModuleError(KeyError):
    """Nome de módulo não registrado (ou referência não importável)."""


@dataclass(frozen=True)
class ModuleRegistration:
    name: str
    factory: ModuleFactory
    capabilities: ModuleCapabilities
    reference: Optional[str]


def reference_of(factory: ModuleFactory) -> Optional[str]:
    module = getattr(factory, "__module__", None)
    qualname = getattr(factory, "__qualname__", None)
    if not module or not qualname or "<locals>" in qualname or "<lambda>" in qualname:
        return None
    return f"{module}:{qualname}"


def load_reference(reference: str) -> ModuleFactory:
    """
    Importa uma fábrica a partir de `"pacote.modulo:Nome.Qualificado"`.

    Raises:
        UnknownModuleError: se o módulo ou o atributo não existir.
    """
    module_name, sep, qualname = (reference or "").partition(":")
    if not sep or not module_name or not qualname:
        raise UnknownModuleError(f"Invalid module reference: {reference!r}")
    try:
        target: Any = importlib.import_module(module_name)
        for part in qualname.split("."):
            target = getattr(target, part)
    except (ImportError, AttributeError) as e:
        raise UnknownModuleError(f"Cannot load module reference {reference!r}: {e}") from e
    return target


@dataclass
class ModuleRegistry:
    _entries: Dict[str, ModuleRegistration] = field(default_factory=dict, init=False, repr=False)

    def register(
        self,
        name: str,
        factory: ModuleFactory,
        *,
        capabilities: Optional[ModuleCapabilities] = None,
        reference: Optional[str] = None,
    ) -> ModuleRegistration:
        if not isinstance(name, str) or not name.strip():
            raise ValueError("module name must be a non-empty string")
        key = name.strip().lower()
        if key in self._entries:
            raise DuplicateModuleError(f"Duplicate module name: {key}")

        if capabilities is None:
            capabilities = getattr(factory, "capabilities", None) or DEFAULT_CAPABILITIES

        registration = ModuleRegistration(
            name=key,
            factory=factory,
            capabilities=capabilities,
            reference=reference or reference_of(factory),
        )
        self._entries[key] = registration
        return registration

    def get(self, name: str) -> ModuleRegistration:
        key = name.strip().lower() if isinstance(name, str) else name
        if key not in self._entries:
            raise UnknownModuleError(f"Unknown module: {name}")
        return self._entries[key]

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.strip().lower() in self._entries

    def create(self, name: str) -> Any:
        return self.get(name).factory()

    def capabilities(self, name: str) -> ModuleCapabilities:
        return self.get(name).capabilities

    def names(self) -> List[str]:
        return list(self._entries)

    load_reference = staticmethod(load_reference)
