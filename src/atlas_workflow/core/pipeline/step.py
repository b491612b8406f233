# src/atlas_workflow/core/pipeline/step.py
"""
Step do workflow (nó do grafo).

Um `WorkflowStep` envolve um módulo, seus parâmetros, portas e modo de
paralelização. O estado do Step é mantido exclusivamente pelo seu
`StepStateObserver`; o Step apenas delega.

Decisões arquiteturais:
    - O número do Step vem de um contador monotônico de processo e
      nunca é reutilizado
    - O Step se registra no Workflow na construção e pertence a ele
      por toda a vida
    - `skip` só pode ser alterado em Steps GENERATOR
    - Um Step pode ser serializado (pickle) de forma destacada: Workflow,
      observer, links de portas e instância do módulo não viajam; o
      módulo é reconstruído pela referência importável registrada

Invariantes:
    - `configure()` só é aceito no estado CREATED
    - Um Step não pode depender de si mesmo nem de Step de outro workflow
    - Tokens nunca saem de um Step em FAILED ou ABORTED

Limites explícitos:
    - Não decide transições de estado (StepStateObserver)
    - Não decide granularidade de tarefas (TokenManager)
"""

from __future__ import annotations

import itertools
import logging
import re
import threading
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from atlas_workflow.core.config.settings import get_settings
from atlas_workflow.core.engine.state import StepStateObserver
from atlas_workflow.core.errors import step_configuration_error
from atlas_workflow.core.exceptions import (
    IllegalStateError,
    StepConfigurationError,
    WorkflowConfigurationError,
)
from .module import DEFAULT_CAPABILITIES, ModuleCapabilities, NoOpModule, StepConfigurationContext
from .parameters import Parameter, ParametersInput, build_parameters
from .ports import (
    InputPorts,
    OutputPorts,
    StepInputPort,
    StepOutputPort,
    bind_input_ports,
    bind_output_ports,
)
from .registry import ModuleRegistration, load_reference
from .types import ParallelizationMode, StepState, StepType

if TYPE_CHECKING:  # pragma: no cover
    from atlas_workflow.core.engine.token import Token
    from atlas_workflow.core.engine.workflow import Workflow

logger = logging.getLogger(__name__)

STEP_ID_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.\-]*$")

_numbers = itertools.count()
_numbers_lock = threading.Lock()


def _next_number() -> int:
    with _numbers_lock:
        return next(_numbers)


class WorkflowStep:
    def __init__(
        self,
        workflow: "Workflow",
        step_id: Optional[str],
        step_type: StepType,
        *,
        registration: Optional[ModuleRegistration] = None,
        parameters: ParametersInput = None,
        skip: bool = False,
        copy_results_to_output: bool = False,
        required_memory: int = -1,
        required_processors: int = -1,
    ) -> None:
        if workflow is None:
            raise WorkflowConfigurationError("A step must belong to a workflow")

        if step_type.is_special:
            step_id = step_type.default_step_id
        elif registration is None:
            raise WorkflowConfigurationError(
                f"Step type {step_type.value} requires a registered module",
                details={"step": step_id},
            )

        if not isinstance(step_id, str) or not STEP_ID_PATTERN.match(step_id):
            raise WorkflowConfigurationError(
                f"Invalid step id: {step_id!r}",
                details={"step": step_id, "pattern": STEP_ID_PATTERN.pattern},
            )

        self.workflow: Optional["Workflow"] = workflow
        self.number = _next_number()
        self.id = step_id
        self.type = step_type
        self.run_id = workflow.ctx.run_id

        if registration is not None:
            self.module_name = registration.name
            self.module_reference = registration.reference
            self.capabilities: ModuleCapabilities = registration.capabilities
        else:
            self.module_name = step_type.value
            self.module_reference = None
            self.capabilities = DEFAULT_CAPABILITIES

        self.parameters: List[Parameter] = build_parameters(parameters)
        self.skip = bool(skip)
        self.terminal = self.capabilities.terminal
        self.create_log_files = not self.capabilities.no_log
        self.copy_results_to_output = copy_results_to_output
        self.required_memory = required_memory
        self.required_processors = required_processors

        if step_type.is_special:
            self.parallelization_mode = ParallelizationMode.NOT_NEEDED
        else:
            self.parallelization_mode = ParallelizationMode.STANDARD

        if copy_results_to_output:
            self.output_directory = workflow.ctx.output_directory
        else:
            self.output_directory = workflow.ctx.working_directory

        self._module: Any = None
        self.input_ports_declaration: InputPorts = InputPorts()
        self.output_ports_declaration: OutputPorts = OutputPorts()
        self.input_ports: Dict[str, StepInputPort] = {}
        self.output_ports: Dict[str, StepOutputPort] = {}

        self.observer: Optional[StepStateObserver] = StepStateObserver(self)
        self._detached_state: Optional[StepState] = None

        workflow.register(self)

    # -----------------------------
    # Estado
    # -----------------------------
    @property
    def state(self) -> StepState:
        if self.observer is None:
            return self._detached_state or StepState.CREATED
        return self.observer.state

    def set_state(self, state: StepState, *, expected: Optional[StepState] = None) -> bool:
        if self.observer is None:
            raise IllegalStateError(
                f"Step {self.id} is detached from its workflow", details={"step": self.id}
            )
        return self.observer.set_state(state, expected=expected)

    def set_skipped(self, skipped: bool) -> None:
        if self.type is not StepType.GENERATOR:
            raise WorkflowConfigurationError(
                f"The step is not a generator and cannot be skipped: {self.id}",
                details={"step": self.id, "type": self.type.value},
            )
        self.skip = bool(skipped)

    # -----------------------------
    # Módulo
    # -----------------------------
    def new_module_instance(self) -> Any:
        if self.type.is_special:
            return NoOpModule(self.module_name)
        if self.workflow is not None:
            return self.workflow.modules.create(self.module_name)
        if not self.module_reference:
            raise IllegalStateError(
                f"Cannot rebuild module {self.module_name!r} of detached step {self.id}",
                details={"step": self.id, "module": self.module_name},
                hint="Registre fábricas importáveis (não lambdas nem classes locais).",
            )
        return load_reference(self.module_reference)()

    def get_module(self) -> Any:
        """Instância compartilhada do módulo (recriada e configurada se o Step estiver destacado)."""
        if self._module is None:
            module = self.new_module_instance()
            module.configure(self.configuration_context(), self.parameters)
            self._module = module
        return self._module

    def configuration_context(self, log: Optional[logging.Logger] = None) -> StepConfigurationContext:
        return StepConfigurationContext(
            step=self,
            run_id=self.run_id,
            output_directory=self.output_directory,
            settings=get_settings(),
            logger=log or logger,
        )

    def configure(self) -> None:
        if self.state is not StepState.CREATED:
            raise IllegalStateError(
                f"Illegal step state for configuration: {self.state.value}",
                details={"step": self.id, "state": self.state.value},
            )

        logger.info("Configure %s step with step parameters: %s", self.id,
                    [f"{p.name}={p.value}" for p in self.parameters])

        module = self.new_module_instance()
        try:
            module.configure(self.configuration_context(), self.parameters)
            mode = module.parallelization_mode()
            inputs = module.input_ports()
            outputs = module.output_ports()
        except StepConfigurationError:
            raise
        except Exception as e:
            raise StepConfigurationError.from_payload(step_configuration_error(
                step=self.id,
                module=self.module_name,
                exc_type=e.__class__.__name__,
                exc_message=str(e),
            )) from e

        self._module = module
        if not self.type.is_special:
            self.parallelization_mode = mode or ParallelizationMode.STANDARD

        self.input_ports_declaration = InputPorts(inputs)
        self.output_ports_declaration = OutputPorts(outputs)
        self.input_ports = bind_input_ports(self, list(self.input_ports_declaration))
        self.output_ports = bind_output_ports(self, list(self.output_ports_declaration))

        self.set_state(StepState.CONFIGURED)

    # -----------------------------
    # Portas e dependências
    # -----------------------------
    def input_port(self, name: str) -> StepInputPort:
        key = name.strip().lower()
        if key not in self.input_ports:
            raise WorkflowConfigurationError(
                f"Unknown input port {name!r} for step {self.id}",
                details={"step": self.id, "port": name, "known": sorted(self.input_ports)},
            )
        return self.input_ports[key]

    def output_port(self, name: str) -> StepOutputPort:
        key = name.strip().lower()
        if key not in self.output_ports:
            raise WorkflowConfigurationError(
                f"Unknown output port {name!r} for step {self.id}",
                details={"step": self.id, "port": name, "known": sorted(self.output_ports)},
            )
        return self.output_ports[key]

    def _check_dependency(self, step: "WorkflowStep") -> None:
        if step is None:
            raise WorkflowConfigurationError("step argument cannot be None")
        if step is self:
            raise WorkflowConfigurationError(
                f"a step cannot depends on itself: {step.id}", details={"step": step.id}
            )
        if self.workflow is None or step.workflow is not self.workflow:
            raise WorkflowConfigurationError(
                "step dependency is not in the same workflow",
                details={"step": self.id, "dependency": step.id},
            )

    def add_dependency(self, step: "WorkflowStep") -> None:
        self._check_dependency(step)
        self.observer.add_dependency(step)

    def add_port_dependency(self, input_port: StepInputPort, dependency_port: StepOutputPort) -> None:
        if input_port.step is not self:
            raise WorkflowConfigurationError(
                f"input port ({input_port.name}) is not a port of the step ({self.id})",
                details={"step": self.id, "port": input_port.name},
            )
        self._check_dependency(dependency_port.step)
        dependency_port.add_link(input_port)
        self.observer.add_dependency(dependency_port.step)

    @property
    def required_steps(self) -> List["WorkflowStep"]:
        return self.observer.required_steps if self.observer is not None else []

    # -----------------------------
    # Tokens
    # -----------------------------
    def send_token(self, token: "Token") -> None:
        if self.state in (StepState.FAILED, StepState.ABORTED):
            logger.warning("Step %s is %s: token #%d not sent", self.id, self.state.value, token.id)
            return

        port = self.output_port(token.origin.name)
        for link in list(port.links):
            link.step.post_token(link, token)

        self.workflow.token_managers.get_token_manager(self).log_sending_token(port, token)

    def post_token(self, input_port: StepInputPort, token: "Token") -> None:
        self.workflow.token_managers.get_token_manager(self).post_token(input_port, token)

    # -----------------------------
    # Serialização destacada
    # -----------------------------
    def __getstate__(self) -> Dict[str, Any]:
        state = dict(self.__dict__)
        state["workflow"] = None
        state["observer"] = None
        state["_module"] = None
        state["_detached_state"] = self.state
        state["input_ports"] = {n: StepInputPort(step=self, port=p.port) for n, p in self.input_ports.items()}
        state["output_ports"] = {n: StepOutputPort(step=self, port=p.port) for n, p in self.output_ports.items()}
        return state

    def __repr__(self) -> str:
        return f"WorkflowStep(#{self.number} {self.id}, {self.type.value}, {self.state.value})"
