# src/atlas_workflow/core/engine/workflow.py
"""
Workflow: agregado dono dos Steps de uma execução.

O Workflow consolida:
    - os Steps (indexados por número e por id) e o Step ROOT, criado na
      construção
    - os registros explícitos da execução: módulos, observers, tarefas de
      parada de emergência e token managers
    - o scheduler de tarefas
    - o mapa global Step → estado, protegido por um lock com variável de
      condição, usado pelo Engine para varrer "todos os READY",
      "todos os WAITING" etc.

Decisões arquiteturais:
    - Nenhum registro é singleton de processo: tudo é injetado ou
      construído por workflow
    - Erros de construção do grafo são levantados de forma síncrona
      (WorkflowConfigurationError)
    - Steps desabilitados em configuração (`steps.<id>.enabled: false`)
      são criados com `skip`

Invariantes:
    - Ids de Step são únicos; tipos especiais aparecem no máximo uma vez
    - O mapa de estados reflete a última transição aceita de cada Step

Limites explícitos:
    - Não dirige o laço de execução (Engine)
    - Não decide transições de estado (StepStateObserver)
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from atlas_workflow.core.config.merge import get_in
from atlas_workflow.core.errors import workflow_configuration_error
from atlas_workflow.core.exceptions import WorkflowConfigurationError
from atlas_workflow.core.pipeline.context import RunContext
from atlas_workflow.core.pipeline.parameters import ParametersInput
from atlas_workflow.core.pipeline.registry import ModuleRegistry, UnknownModuleError
from atlas_workflow.core.pipeline.step import WorkflowStep
from atlas_workflow.core.pipeline.types import StepState, StepType
from .observers import EmergencyStopTasks, StepObserverRegistry
from .scheduler import TaskScheduler
from .token_manager import TokenManagerRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DuplicateStepIdError(WorkflowConfigurationError):
    """Dois Steps com o mesmo id, ou dois Steps do mesmo tipo especial."""


class Workflow:
    def __init__(
        self,
        ctx: RunContext,
        modules: ModuleRegistry,
        *,
        scheduler: Optional[TaskScheduler] = None,
        observers: Optional[StepObserverRegistry] = None,
        emergency_stop_tasks: Optional[EmergencyStopTasks] = None,
    ) -> None:
        self.ctx = ctx
        self.modules = modules
        self.scheduler = scheduler if scheduler is not None else TaskScheduler.from_config(ctx.config)
        self.observers = observers if observers is not None else StepObserverRegistry()
        self.emergency_stop_tasks = emergency_stop_tasks if emergency_stop_tasks is not None else EmergencyStopTasks()
        self.token_managers = TokenManagerRegistry(self)

        self._condition = threading.Condition(threading.RLock())
        self._steps: Dict[int, WorkflowStep] = {}
        self._ids: Dict[str, WorkflowStep] = {}
        self._states: Dict[int, StepState] = {}

        self.root_step = WorkflowStep(self, None, StepType.ROOT)

    # -----------------------------
    # Construção do grafo
    # -----------------------------
    def register(self, step: WorkflowStep) -> None:
        with self._condition:
            if step.id in self._ids:
                raise DuplicateStepIdError(
                    f"Duplicate step id: {step.id}", details={"step": step.id}
                )
            if step.type.is_special and any(s.type is step.type for s in self._steps.values()):
                raise DuplicateStepIdError(
                    f"A workflow cannot contain two {step.type.value} steps",
                    details={"step": step.id, "type": step.type.value},
                )
            self._steps[step.number] = step
            self._ids[step.id] = step
            self._states[step.number] = step.state

    def create_step(
        self,
        step_id: str,
        module_name: str,
        parameters: ParametersInput = None,
        *,
        skip: Optional[bool] = None,
        required_memory: int = -1,
        required_processors: int = -1,
        copy_results_to_output: bool = False,
    ) -> WorkflowStep:
        try:
            registration = self.modules.get(module_name)
        except UnknownModuleError as e:
            raise WorkflowConfigurationError(
                f"Unknown module {module_name!r} for step {step_id}",
                details={"step": step_id, "module": module_name, "known": self.modules.names()},
            ) from e

        step_type = StepType.GENERATOR if registration.capabilities.generator else StepType.STANDARD
        if skip is None:
            skip = not bool(get_in(self.ctx.config, ["steps", step_id, "enabled"], True))

        step = WorkflowStep(
            self,
            step_id,
            step_type,
            registration=registration,
            parameters=parameters,
            skip=skip,
            copy_results_to_output=copy_results_to_output,
            required_memory=required_memory,
            required_processors=required_processors,
        )
        logger.debug("Created step #%d %s (%s, module %s)", step.number, step.id, step.type.value, module_name)
        return step

    def add_special_step(self, step_type: StepType) -> WorkflowStep:
        if not step_type.is_special or step_type is StepType.ROOT:
            raise WorkflowConfigurationError(
                f"Not a special step type: {step_type.value}", details={"type": step_type.value}
            )
        return WorkflowStep(self, None, step_type)

    def add_dependency(self, step: WorkflowStep, required_step: WorkflowStep) -> None:
        if step is None or step.workflow is not self:
            raise WorkflowConfigurationError("step is not in this workflow")
        step.add_dependency(required_step)

    def connect(
        self,
        upstream: WorkflowStep,
        output_port: str,
        downstream: WorkflowStep,
        input_port: str,
    ) -> None:
        for s in (upstream, downstream):
            if s is None or s.workflow is not self:
                raise WorkflowConfigurationError("step is not in this workflow")
            if s.state is StepState.CREATED:
                raise WorkflowConfigurationError(
                    f"Step {s.id} must be configured before its ports can be linked",
                    details={"step": s.id},
                )
        downstream.add_port_dependency(downstream.input_port(input_port), upstream.output_port(output_port))

    def configure(self) -> None:
        for step in self.steps:
            if step.state is StepState.CREATED:
                step.configure()

    # -----------------------------
    # Mapa de estados
    # -----------------------------
    def update_step_state(self, step: WorkflowStep) -> None:
        with self._condition:
            self._states[step.number] = step.state
            self._condition.notify_all()

    def steps_by_state(self, *states: StepState) -> List[WorkflowStep]:
        wanted = set(states)
        with self._condition:
            found = [self._steps[n] for n, s in self._states.items() if s in wanted]
        return sorted(found, key=lambda s: (s.type.priority, s.number))

    def state_snapshot(self) -> Dict[str, StepState]:
        with self._condition:
            return {self._steps[n].id: s for n, s in sorted(self._states.items())}

    def wait_for_state_change(self, timeout: float) -> None:
        with self._condition:
            self._condition.wait(timeout)

    def notify_change(self) -> None:
        with self._condition:
            self._condition.notify_all()

    @property
    def steps(self) -> List[WorkflowStep]:
        with self._condition:
            return [self._steps[n] for n in sorted(self._steps)]

    def get_step(self, step_id: str) -> WorkflowStep:
        with self._condition:
            if step_id not in self._ids:
                raise WorkflowConfigurationError(
                    f"Unknown step: {step_id}", details={"step": step_id, "known": sorted(self._ids)}
                )
            return self._ids[step_id]

    def __contains__(self, step_id: object) -> bool:
        with self._condition:
            return step_id in self._ids

    # -----------------------------
    # Verificações antes da execução
    # -----------------------------
    def skip_generators_if_not_needed(self) -> List[WorkflowStep]:
        """Pula geradores cujas saídas só alimentam Steps pulados."""
        skipped: List[WorkflowStep] = []
        for step in self.steps_by_state(*StepState):
            if step.type is not StepType.GENERATOR or step.skip:
                continue
            if all(port.is_all_links_to_skipped_steps() for port in step.output_ports.values()):
                step.set_skipped(True)
                skipped.append(step)
                logger.info("Generator step %s is not needed and will be skipped", step.id)
        return skipped

    def check_input_links(self) -> None:
        """Toda porta de entrada de um Step não pulado precisa de um link."""
        unlinked = [
            f"{step.id}.{port.name}"
            for step in self.steps
            if not step.skip
            for port in step.input_ports.values()
            if port.link is None
        ]
        if unlinked:
            raise WorkflowConfigurationError.from_payload(workflow_configuration_error(
                message=f"Input ports without link: {', '.join(unlinked)}",
                details={"ports": unlinked},
                hint="Conecte cada porta de entrada com workflow.connect(...).",
            ))

    def check_existing_output_files(self) -> None:
        conflicts: Dict[str, Any] = {}
        for step in self.steps:
            if step.type is not StepType.STANDARD or step.skip:
                continue
            for port in step.output_ports.values():
                existing = port.existing_output_files()
                if existing:
                    conflicts.setdefault(step.id, []).extend(str(p) for p in existing)

        if conflicts:
            raise WorkflowConfigurationError.from_payload(workflow_configuration_error(
                message="Some output files already exist",
                details={"files": conflicts},
                hint="Remova as saídas anteriores ou use outro diretório de job.",
            ))

    def __repr__(self) -> str:
        return f"Workflow(run_id={self.ctx.run_id}, steps={len(self._steps)})"
