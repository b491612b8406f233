# src/atlas_workflow/core/pipeline/types.py
"""
Tipos canônicos do grafo do Atlas Workflow.

Componentes principais:
    - StepType            → papel estrutural do Step no workflow
    - StepState           → estados do ciclo de vida de um Step
    - ParallelizationMode → política de concorrência das tarefas de um Step

Princípios fundamentais:
    - Enums possuem valores textuais canônicos (serializáveis em JSON)
    - Classificações de estado vivem junto ao enum, não espalhadas no engine

Limites explícitos:
    - Não executa Steps
    - Não decide transições (responsabilidade do StepStateObserver)
"""

from __future__ import annotations

from enum import Enum
from typing import Optional


class StepType(str, Enum):
    """
    Papel estrutural de um Step no workflow.

    Steps especiais (ROOT, DESIGN, CHECKER, FIRST, TERMINAL) possuem id
    padrão e aparecem no máximo uma vez por workflow. A prioridade é
    usada para ordenar Steps em varreduras e logs.

    Invariantes:
        - ROOT não possui dependências e nunca passa por WAITING
        - O valor textual do enum é estável
    """

    ROOT = "root"
    DESIGN = "design"
    CHECKER = "checker"
    FIRST = "first"
    GENERATOR = "generator"
    STANDARD = "standard"
    TERMINAL = "terminal"

    @property
    def priority(self) -> int:
        return _PRIORITIES[self]

    @property
    def default_step_id(self) -> Optional[str]:
        if self in (StepType.GENERATOR, StepType.STANDARD):
            return None
        return self.value

    @property
    def is_special(self) -> bool:
        return self.default_step_id is not None


_PRIORITIES = {
    StepType.ROOT: 0,
    StepType.DESIGN: 1,
    StepType.CHECKER: 2,
    StepType.FIRST: 3,
    StepType.GENERATOR: 4,
    StepType.STANDARD: 5,
    StepType.TERMINAL: 6,
}


class StepState(str, Enum):
    """
    Estados do ciclo de vida de um Step.

    Caminho típico:
        CREATED → CONFIGURED → WAITING → READY → WORKING
        → (PARTIALLY_DONE) → DONE

    Estados absorventes:
        - DONE: todas as saídas foram produzidas
        - FAILED: alguma tarefa falhou (alcançável a partir de WORKING)
        - ABORTED: o Step ainda trabalhava quando o workflow foi interrompido

    Classificações:
        - done:    {DONE}; é o sinal de prontidão para dependentes
        - working: {WORKING, PARTIALLY_DONE}
        - final:   {DONE, FAILED, ABORTED}; nenhuma transição é aceita depois
    """

    CREATED = "created"
    CONFIGURED = "configured"
    WAITING = "waiting"
    READY = "ready"
    WORKING = "working"
    PARTIALLY_DONE = "partially_done"
    DONE = "done"
    FAILED = "failed"
    ABORTED = "aborted"

    @property
    def is_done_state(self) -> bool:
        return self is StepState.DONE

    @property
    def is_working_state(self) -> bool:
        return self in (StepState.WORKING, StepState.PARTIALLY_DONE)

    @property
    def is_final_state(self) -> bool:
        return self in (StepState.DONE, StepState.FAILED, StepState.ABORTED)


class ParallelizationMode(str, Enum):
    """
    Política de concorrência das tarefas de um Step.

    - NOT_NEEDED: o Step inteiro roda como uma única tarefa, disparada
      quando todas as portas de entrada receberam o fim de Step
    - STANDARD: uma tarefa por elemento de dado; tarefas do mesmo Step
      podem rodar em paralelo
    - OWN_PARALLELIZATION: uma tarefa por elemento de dado, mas no máximo
      uma em execução por vez (o módulo paraleliza internamente)
    """

    NOT_NEEDED = "not_needed"
    STANDARD = "standard"
    OWN_PARALLELIZATION = "own_parallelization"
