# src/atlas_workflow/core/engine/state.py
"""
Máquina de estados de um Step.

Este módulo define o `StepStateObserver`, a única autoridade sobre o
estado de um Step e sobre seu conjunto de dependências diretas.

Decisões arquiteturais:
    - Dependências são mantidas em uma estrutura de adjacência
      bidirecional indexada pelo número do Step: `required` (de quem
      dependo) e `to_inform` (quem depende de mim), evitando varrer o
      grafo a cada transição
    - A leitura-e-escrita do estado é atômica sob um lock por Step
    - Efeitos colaterais das transições (logs, notificações, início do
      token manager) rodam fora do lock

Regras de `set_state(novo)`:
    - no-op se `novo` é None, CREATED, igual ao atual, ou se o estado
      atual é final
    - no-op se `novo` é READY e o Step já está trabalhando
      (WORKING ou PARTIALLY_DONE)
    - Step ROOT pedido em WAITING vai direto para READY

Efeitos de uma transição aceita, nesta ordem:
    1. log do estado anterior e do novo
    2. em WAITING, log das dependências
    3. em estado done, `update_status()` de cada dependente
    4. em READY, início (idempotente) do token manager do Step
    5. atualização do mapa de estados do Workflow
    6. notificação dos observers externos
    7. em WAITING, `update_status()` do próprio Step

Invariantes:
    - Um Step em estado final nunca muda de estado
    - Um Step só fica READY quando todas as dependências estão DONE
    - Dependências malformadas (ciclos) nunca travam a máquina: o Step
      simplesmente nunca chega a READY
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Dict, List, Optional

from atlas_workflow.core.pipeline.types import StepState, StepType

if TYPE_CHECKING:  # pragma: no cover
    from atlas_workflow.core.pipeline.step import WorkflowStep

logger = logging.getLogger(__name__)


class StepStateObserver:
    def __init__(self, step: "WorkflowStep") -> None:
        self.step = step
        self._state = StepState.CREATED
        self._lock = threading.RLock()
        self._required: Dict[int, "WorkflowStep"] = {}
        self._to_inform: Dict[int, "WorkflowStep"] = {}
        logger.debug("Step #%d %s is now in state %s", step.number, step.id, self._state.value)

    @property
    def state(self) -> StepState:
        return self._state

    def add_dependency(self, step: "WorkflowStep") -> None:
        with self._lock:
            self._required[step.number] = step
        with step.observer._lock:
            step.observer._to_inform[self.step.number] = self.step

    @property
    def required_steps(self) -> List["WorkflowStep"]:
        with self._lock:
            return [self._required[n] for n in sorted(self._required)]

    @property
    def steps_to_inform(self) -> List["WorkflowStep"]:
        with self._lock:
            return [self._to_inform[n] for n in sorted(self._to_inform)]

    def set_state(self, state: Optional[StepState], *, expected: Optional[StepState] = None) -> bool:
        """
        Pedido de transição; devolve True quando aceito.

        `expected` torna a transição condicional (compare-and-set): ela só
        ocorre se o estado atual for exatamente `expected`.
        """
        with self._lock:
            current = self._state
            if expected is not None and current is not expected:
                return False
            if state is None or state is StepState.CREATED or state is current or current.is_final_state:
                return False
            if state is StepState.READY and current.is_working_state:
                return False

            if self.step.type is StepType.ROOT and state is StepState.WAITING:
                state = StepState.READY
                if current is StepState.READY:
                    return False

            self._state = state

        self._on_transition(current, state)
        return True

    def update_status(self) -> None:
        """
        Reavalia a prontidão: READY quando todas as dependências estão DONE.

        No-op se o Step já está READY. A escolha entre estados finais e de
        trabalho fica com `set_state`. A transição é condicional ao estado
        lido aqui: uma mudança concorrente no meio da varredura a anula.
        """
        with self._lock:
            current = self._state
            if current is StepState.READY:
                return
            required = list(self._required.values())

        for step in required:
            if not step.state.is_done_state:
                return

        self.set_state(StepState.READY, expected=current)

    # -----------------------------
    # Efeitos colaterais
    # -----------------------------
    def _on_transition(self, previous: StepState, state: StepState) -> None:
        step = self.step
        workflow = step.workflow

        logger.debug(
            "Step #%d %s is now in state %s (previous state was %s)",
            step.number, step.id, state.value, previous.value,
        )
        if workflow is not None:
            workflow.ctx.log(
                step_id=step.id,
                level="DEBUG",
                message=f"state {previous.value} -> {state.value}",
                event="step_state",
                previous_state=previous.value,
                state=state.value,
            )

        if state is StepState.WAITING:
            self.log_dependencies()

        if state.is_done_state:
            for dependent in self.steps_to_inform:
                dependent.observer.update_status()

        if workflow is None:
            return

        if state is StepState.READY:
            workflow.token_managers.get_token_manager(step).start()

        workflow.update_step_state(step)
        workflow.observers.notify_step_state(step)

        if state is StepState.WAITING:
            self.update_status()

    def log_dependencies(self) -> None:
        deps = [f"step #{s.number} {s.id}" for s in self.required_steps]
        logger.debug(
            "Step #%d %s has the following dependencies: %s",
            self.step.number, self.step.id, ", ".join(deps) if deps else "no dependencies",
        )
