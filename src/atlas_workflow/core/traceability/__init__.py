# src/atlas_workflow/core/traceability/__init__.py
"""
Pacote de rastreabilidade (traceability) do Atlas Workflow.

Responsabilidades principais:
    - Criar e manter o Manifest de uma execução de workflow
    - Registrar eventos explícitos em um Event Log ordenado
    - Acompanhar o estado de cada Step e o resultado de suas tarefas
    - Persistir e restaurar o Manifest de forma determinística

API pública exposta:
    - WorkflowManifest    → estrutura canônica do Manifest
    - create_manifest     → criação explícita do Manifest
    - add_event           → registro explícito de eventos no Event Log
    - step_state_changed  → transição de estado de um Step
    - task_finished       → resultado de uma tarefa
    - run_finished        → desfecho da execução
    - save_manifest       → persistência do Manifest em JSON
    - load_manifest       → restauração do Manifest
    - ManifestStepObserver → observer que alimenta o Manifest durante a run
"""

from .manifest import (
    ManifestStepObserver,
    WorkflowManifest,
    add_event,
    create_manifest,
    load_manifest,
    run_finished,
    save_manifest,
    step_state_changed,
    task_finished,
)

__all__ = [
    "WorkflowManifest",
    "ManifestStepObserver",
    "create_manifest",
    "add_event",
    "step_state_changed",
    "task_finished",
    "run_finished",
    "save_manifest",
    "load_manifest",
]
