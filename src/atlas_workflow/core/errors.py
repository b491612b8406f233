"""
Atlas Workflow — Canonical Error Structures (v1)

Este módulo define o padrão canônico de erros do Atlas Workflow.
Erros são artefatos de domínio e fazem parte do contrato operacional
do motor, devendo ser:

- explícitos
- serializáveis
- rastreáveis

Falhas de tarefa nunca atravessam a fronteira do scheduler como exceções:
elas são convertidas em `TaskResult` de falha e, no nível do workflow,
reportadas como um `AtlasErrorPayload` que identifica o Step que falhou.
"""

from __future__ import annotations

from dataclasses import dataclass, asdict
from typing import Any, Dict, List, Optional


# ---------------------------------------------------------------------------
# Payload canônico
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class AtlasErrorPayload:
    """
    Payload canônico de erro do Atlas Workflow.

    Campos:
    - type: código estável do erro (não é texto livre)
    - message: mensagem curta, humana e objetiva
    - details: dados estruturados relevantes para diagnóstico
    - hint: ação sugerida ao operador (onde corrigir)
    - decision_required: indica se a execução está bloqueada aguardando decisão humana
    """

    type: str
    message: str
    details: Dict[str, Any]
    hint: Optional[str] = None
    decision_required: bool = False

    def to_dict(self) -> Dict[str, Any]:
        """Retorna representação serializável do erro."""
        return asdict(self)


# ---------------------------------------------------------------------------
# Catálogo canônico de tipos de erro (v1)
# ---------------------------------------------------------------------------

# Configuração do grafo
WORKFLOW_CONFIGURATION_ERROR = "WORKFLOW_CONFIGURATION_ERROR"
STEP_CONFIGURATION_ERROR = "STEP_CONFIGURATION_ERROR"

# Execução de tarefas
TASK_EXECUTION_ERROR = "TASK_EXECUTION_ERROR"
TASK_NO_RESULT = "TASK_NO_RESULT"
TASK_INTERRUPTED = "TASK_INTERRUPTED"

# Workflow
STEP_FAILED = "STEP_FAILED"
WORKFLOW_STALLED = "WORKFLOW_STALLED"

# Engine / Execução
ENGINE_EXECUTION_ERROR = "ENGINE_EXECUTION_ERROR"
ENGINE_CONFIGURATION_ERROR = "ENGINE_CONFIGURATION_ERROR"


# ---------------------------------------------------------------------------
# Helpers de fábrica
# ---------------------------------------------------------------------------

def workflow_configuration_error(
    *,
    message: str,
    details: Optional[Dict[str, Any]] = None,
    hint: str = "Revise a construção do grafo (ids, portas e dependências) antes de reexecutar.",
) -> AtlasErrorPayload:
    return AtlasErrorPayload(
        type=WORKFLOW_CONFIGURATION_ERROR,
        message=message,
        details=details or {},
        hint=hint,
        decision_required=False,
    )


def step_configuration_error(
    *,
    step: str,
    module: str,
    exc_type: Optional[str] = None,
    exc_message: Optional[str] = None,
    hint: str = "Revise os parâmetros do Step e o configure() do módulo.",
) -> AtlasErrorPayload:
    return AtlasErrorPayload(
        type=STEP_CONFIGURATION_ERROR,
        message=f"Error while configuring step {step}: {exc_message}",
        details={
            "step": step,
            "module": module,
            "exc_type": exc_type,
        },
        hint=hint,
        decision_required=False,
    )


def task_execution_error(
    *,
    step: str,
    context_name: str,
    message: str = "Falha durante a execução de uma tarefa",
    exc_type: Optional[str] = None,
    exc_message: Optional[str] = None,
    hint: str = "Consulte o log da tarefa para o stacktrace completo.",
) -> AtlasErrorPayload:
    return AtlasErrorPayload(
        type=TASK_EXECUTION_ERROR,
        message=message,
        details={
            "step": step,
            "context_name": context_name,
            "exc_type": exc_type,
            "exc_message": exc_message,
        },
        hint=hint,
        decision_required=False,
    )


def task_no_result(*, step: str, context_name: str) -> AtlasErrorPayload:
    return AtlasErrorPayload(
        type=TASK_NO_RESULT,
        message=f"The step {step} has not generate a result object",
        details={"step": step, "context_name": context_name},
        hint="O módulo deve sempre retornar um TaskResult em execute().",
        decision_required=False,
    )


def task_interrupted(*, step: str, task_id: int, context_name: str) -> AtlasErrorPayload:
    return AtlasErrorPayload(
        type=TASK_INTERRUPTED,
        message=f"Task #{task_id} of step {step} has been interrupted",
        details={"step": step, "task": task_id, "context_name": context_name},
        hint="A run foi interrompida (parada de emergência); a thread da tarefa não é encerrada à força.",
        decision_required=False,
    )


def step_failed(
    *,
    step: str,
    error_message: Optional[str] = None,
    failed_tasks: Optional[List[str]] = None,
    hint: str = "Verifique os logs das tarefas do Step. Nenhum fallback é aplicado automaticamente.",
) -> AtlasErrorPayload:
    return AtlasErrorPayload(
        type=STEP_FAILED,
        message=f"Fail of the analysis: step '{step}' failed",
        details={
            "step": step,
            "error_message": error_message,
            "failed_tasks": list(failed_tasks or []),
        },
        hint=hint,
        decision_required=False,
    )


def workflow_stalled(*, waiting_steps: List[str]) -> AtlasErrorPayload:
    return AtlasErrorPayload(
        type=WORKFLOW_STALLED,
        message="Workflow cannot progress: steps are waiting for dependencies that will never finish",
        details={"waiting_steps": list(waiting_steps)},
        hint="Verifique dependências malformadas ou Steps a jusante de uma falha.",
        decision_required=False,
    )


def engine_execution_error(
    *,
    step: Optional[str] = None,
    exc_type: Optional[str] = None,
    exc_message: Optional[str] = None,
    hint: str = "Verifique o stacktrace e os artefatos do run para diagnosticar a falha. Nenhum fallback é aplicado automaticamente.",
) -> AtlasErrorPayload:
    return AtlasErrorPayload(
        type=ENGINE_EXECUTION_ERROR,
        message="Falha inesperada durante a execução do workflow",
        details={
            "step": step,
            "exc_type": exc_type,
            "exc_message": exc_message,
        },
        hint=hint,
        decision_required=False,
    )


def engine_configuration_error(
    *,
    message: str = "Configuração inválida para execução do workflow",
    details: Optional[Dict[str, Any]] = None,
    hint: str = "Configure todos os Steps e revise o grafo antes de reexecutar.",
) -> AtlasErrorPayload:
    return AtlasErrorPayload(
        type=ENGINE_CONFIGURATION_ERROR,
        message=message,
        details=details or {},
        hint=hint,
        decision_required=False,
    )
