"""
Atlas Workflow — Canonical Exceptions (v1)

Este módulo define exceções tipadas internas do Atlas Workflow.

Objetivo:
- Permitir que Workflow/Engine levantem exceções semânticas tipadas
- Facilitar o mapeamento determinístico de/para AtlasErrorPayload
- Evitar ValueError/RuntimeError genéricos em guardrails críticos

Regras:
- Erros de configuração são levantados de forma síncrona, antes de qualquer tarefa.
- Erros de tarefa nunca escapam do TaskRunner (viram TaskResult de falha).
- Exceções devem carregar apenas dados estruturados (serializáveis).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, Optional

if TYPE_CHECKING:  # pragma: no cover
    from atlas_workflow.core.errors import AtlasErrorPayload


@dataclass(frozen=True)
class AtlasException(Exception):
    """Base class para exceções internas do Atlas.

    Importante:
    - Sempre carregar dados estruturados em `details`
    - Não embedar stack trace em payloads de erro
    - Mensagem deve ser curta e humana
    """

    message: str
    details: Dict[str, Any] = field(default_factory=dict)
    hint: Optional[str] = None
    decision_required: bool = False

    def __str__(self) -> str:  # pragma: no cover
        return self.message

    @classmethod
    def from_payload(cls, payload: "AtlasErrorPayload") -> "AtlasException":
        """Exceção tipada a partir de um payload canônico (message, details, hint)."""
        return cls(payload.message, dict(payload.details), payload.hint, payload.decision_required)

    def __reduce__(self):
        # resultados de tarefa (com a exceção) são serializados via pickle
        return (self.__class__, (self.message, dict(self.details), self.hint, self.decision_required))


# ---------------------------------------------------------------------------
# Configuração do grafo
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class WorkflowConfigurationError(AtlasException):
    """Grafo malformado: ids, portas, links ou dependências inválidos."""


@dataclass(frozen=True)
class StepConfigurationError(AtlasException):
    """Falha ao configurar um Step (módulo, parâmetros ou portas)."""


# ---------------------------------------------------------------------------
# Execução
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class IllegalStateError(AtlasException):
    """Violação de contrato de uso (ex.: executar uma tarefa duas vezes)."""


@dataclass(frozen=True)
class TaskExecutionError(AtlasException):
    """Erro de execução de uma tarefa, usado para compor resultados de falha."""


@dataclass(frozen=True)
class TaskInterruptedError(TaskExecutionError):
    """A espera pela thread da tarefa foi interrompida."""


@dataclass(frozen=True)
class WorkflowRuntimeError(AtlasException):
    """Inconsistência detectada durante a propagação de tokens."""


# ---------------------------------------------------------------------------
# Engine / Configuração
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class EngineConfigurationError(AtlasException):
    """Configuração inválida ou inconsistente para execução."""

