# src/atlas_workflow/core/pipeline/module.py
"""
Contrato canônico de módulo (unidade de trabalho externa).

O motor não conhece a lógica dos módulos: ele apenas chama
`configure()` uma vez por instância, `execute()` uma vez por tarefa e
inspeciona as portas declaradas e o modo de paralelização.

Flags de capacidade (gerador, terminal, sem log, reuso de instância)
não são descobertas por introspecção: são declaradas em um
`ModuleCapabilities` anexado no registro do módulo.

Limites explícitos:
    - Não registra módulos (responsabilidade do ModuleRegistry)
    - Não executa tarefas (responsabilidade do TaskRunner)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Optional, Protocol, Sequence, runtime_checkable

from atlas_workflow.core.config.settings import Settings
from .parameters import Parameter
from .ports import NO_INPUT_PORTS, NO_OUTPUT_PORTS, InputPorts, OutputPorts
from .types import ParallelizationMode

if TYPE_CHECKING:  # pragma: no cover
    from atlas_workflow.core.engine.task import TaskContext, TaskResult, TaskStatus
    from .step import WorkflowStep


@dataclass(frozen=True)
class ModuleCapabilities:
    """
    Descritor de capacidades de um módulo, resolvido no registro.

    - generator: o Step é um gerador (pode ser pulado quando não é necessário)
    - terminal: o DONE deste Step encerra o workflow com sucesso
    - no_log: não criar arquivo de log por tarefa
    - reuse_instance: a mesma instância atende todas as tarefas do Step
    """

    generator: bool = False
    terminal: bool = False
    no_log: bool = False
    reuse_instance: bool = False


DEFAULT_CAPABILITIES = ModuleCapabilities()


@dataclass
class StepConfigurationContext:
    """Informações disponíveis a um módulo durante `configure()`."""

    step: "WorkflowStep"
    run_id: str
    output_directory: Path
    settings: Settings
    logger: logging.Logger

    @property
    def step_id(self) -> str:
        return self.step.id


@runtime_checkable
class Module(Protocol):
    """
    Contrato mínimo de um módulo executável por um Step.

    `parallelization_mode()` pode retornar None para manter o padrão
    (STANDARD).
    """

    name: str

    def configure(self, context: StepConfigurationContext, parameters: Sequence[Parameter]) -> None:
        ...

    def execute(self, context: "TaskContext", status: "TaskStatus") -> "TaskResult":
        ...

    def input_ports(self) -> InputPorts:
        ...

    def output_ports(self) -> OutputPorts:
        ...

    def parallelization_mode(self) -> Optional[ParallelizationMode]:
        ...


class NoOpModule:
    """Módulo dos Steps especiais: sem portas, uma tarefa vazia bem-sucedida."""

    def __init__(self, name: str = "noop") -> None:
        self.name = name

    def configure(self, context: StepConfigurationContext, parameters: Sequence[Parameter]) -> None:
        return None

    def execute(self, context: Any, status: Any) -> Any:
        return status.create_task_result()

    def input_ports(self) -> InputPorts:
        return NO_INPUT_PORTS

    def output_ports(self) -> OutputPorts:
        return NO_OUTPUT_PORTS

    def parallelization_mode(self) -> Optional[ParallelizationMode]:
        return ParallelizationMode.NOT_NEEDED
