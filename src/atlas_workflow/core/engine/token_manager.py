# src/atlas_workflow/core/engine/token_manager.py
"""
Token manager: ponte entre tokens recebidos e tarefas despachadas.

Cada Step possui um `TokenManager`, criado sob demanda pelo
`TokenManagerRegistry` do workflow. O manager acumula os tokens de
entrada, decide quando há dados suficientes para materializar um
`TaskContext`, submete-o ao scheduler e, quando todas as entradas se
encerram, emite os tokens de fim de Step e leva o Step a DONE.

Regras de casamento:
    - Step sem portas de entrada: exatamente uma tarefa
    - Modo NOT_NEEDED: uma única tarefa, após o fim de todas as portas;
      cada porta escalar deve ter no máximo um dado
    - Portas lista reúnem todos os elementos em um `DataList` e precisam
      estar encerradas antes de qualquer tarefa
    - Portas escalares casam dados pelo nome: uma tarefa por nome
      presente em todas as portas escalares

Regra de conclusão (única e explícita):
    o Step vai a DONE quando todas as portas de entrada receberam o fim
    de Step, nenhum dado está pendente, nenhuma tarefa está em voo e
    nenhuma tarefa falhou. Nesse momento os tokens de fim de Step são
    emitidos em todas as portas de saída.

Invariantes:
    - Tokens recebidos antes de `start()` ficam em buffer
    - Dados sem par ao final levam o Step a FAILED (nunca são descartados)
    - Uma falha de tarefa leva o Step a FAILED; o manager não emite
      mais nada

Limites explícitos:
    - Não executa tarefas (TaskRunner)
    - Não controla concorrência (TaskScheduler)
"""

from __future__ import annotations

import logging
import threading
from collections import OrderedDict, deque
from typing import TYPE_CHECKING, Deque, Dict, List, Optional, Set, Tuple

from atlas_workflow.core.exceptions import WorkflowRuntimeError
from atlas_workflow.core.pipeline.data import Data, DataList
from atlas_workflow.core.pipeline.ports import StepInputPort, StepOutputPort
from atlas_workflow.core.pipeline.types import ParallelizationMode, StepState
from .task import AnyData, TaskContext, TaskResult
from .token import Token

if TYPE_CHECKING:  # pragma: no cover
    from atlas_workflow.core.pipeline.step import WorkflowStep
    from .workflow import Workflow

logger = logging.getLogger(__name__)


class TokenManager:
    def __init__(self, step: "WorkflowStep", workflow: "Workflow") -> None:
        self.step = step
        self.workflow = workflow

        self._lock = threading.RLock()
        self._started = False
        self._stopped = False
        self._finished = False
        self._failed = False
        self._single_task_submitted = False
        self.error: Optional[str] = None

        self._buffer: List[Tuple[StepInputPort, Token]] = []
        self._pending: Dict[str, "OrderedDict[str, Deque[AnyData]]"] = {}
        self._lists: Dict[str, List[Data]] = {}
        self._closed: Set[str] = set()

        self._received: Dict[str, int] = {}
        self._sent: Dict[str, int] = {}
        self._in_flight: Set[int] = set()
        self._submitted = 0
        self._terminated = 0
        self._results: List[TaskResult] = []
        self._produced: List[AnyData] = []

    # -----------------------------
    # Consultas
    # -----------------------------
    @property
    def is_started(self) -> bool:
        return self._started

    @property
    def is_finished(self) -> bool:
        return self._finished

    @property
    def has_failed(self) -> bool:
        return self._failed

    @property
    def submitted_tasks(self) -> int:
        return self._submitted

    @property
    def terminated_tasks(self) -> int:
        return self._terminated

    @property
    def in_flight_tasks(self) -> int:
        with self._lock:
            return len(self._in_flight)

    @property
    def results(self) -> List[TaskResult]:
        with self._lock:
            return list(self._results)

    def received_tokens(self, port_name: str) -> int:
        with self._lock:
            return self._received.get(port_name, 0)

    def sent_tokens(self, port_name: str) -> int:
        with self._lock:
            return self._sent.get(port_name, 0)

    def produced_data(self) -> List[AnyData]:
        with self._lock:
            return list(self._produced)

    # -----------------------------
    # Ciclo de vida
    # -----------------------------
    def start(self) -> None:
        with self._lock:
            if self._started or self._stopped:
                return
            self._started = True
            buffered = self._buffer
            self._buffer = []

        step = self.step
        if step.skip:
            logger.info("Step %s is skipped: no task will be executed", step.id)
            with self._lock:
                self._finished = True
            self._emit_end_of_step()
            return

        with self._lock:
            for input_port, token in buffered:
                self._register(input_port, token)
            contexts = self._collect_contexts()

        self._submit(contexts)
        self._check_completion()

    def stop(self) -> None:
        with self._lock:
            self._stopped = True

    # -----------------------------
    # Tokens
    # -----------------------------
    def post_token(self, input_port: StepInputPort, token: Token) -> None:
        if input_port.step is not self.step:
            raise WorkflowRuntimeError(
                f"Input port {input_port.step.id}.{input_port.name} does not belong to step {self.step.id}",
                details={"step": self.step.id, "port": input_port.name},
            )

        with self._lock:
            if self._finished or self._stopped:
                logger.warning(
                    "Step %s is no longer accepting tokens: token #%d on port %s ignored",
                    self.step.id, token.id, input_port.name,
                )
                return
            if not token.is_end_of_step:
                self._received[input_port.name] = self._received.get(input_port.name, 0) + 1
            if not self._started:
                self._buffer.append((input_port, token))
                return
            self._register(input_port, token)
            contexts = self._collect_contexts()

        self._submit(contexts)
        self._check_completion()

    def log_sending_token(self, port: StepOutputPort, token: Token) -> None:
        with self._lock:
            if not token.is_end_of_step:
                self._sent[port.name] = self._sent.get(port.name, 0) + 1
                self._produced.append(token.data)
        logger.debug(
            "Step %s sends token #%d on port %s (%s)",
            self.step.id, token.id, port.name,
            "end of step" if token.is_end_of_step else "data",
        )

    def _register(self, input_port: StepInputPort, token: Token) -> None:
        name = input_port.name
        if token.is_end_of_step:
            self._closed.add(name)
            return

        data = token.data
        if input_port.is_list:
            self._lists.setdefault(name, []).extend(data.iter_data())
        else:
            self._pending.setdefault(name, OrderedDict()).setdefault(data.name, deque()).append(data)

    # -----------------------------
    # Materialização de tarefas
    # -----------------------------
    def _all_inputs_closed(self) -> bool:
        return all(name in self._closed for name in self.step.input_ports)

    def _collect_contexts(self) -> List[TaskContext]:
        if self._failed or self._stopped:
            return []

        step = self.step
        ports = step.input_ports
        list_ports = [n for n, p in ports.items() if p.is_list]
        scalar_ports = [n for n, p in ports.items() if not p.is_list]

        if not ports:
            if self._single_task_submitted:
                return []
            self._single_task_submitted = True
            return [self._new_context({})]

        if step.parallelization_mode is ParallelizationMode.NOT_NEEDED:
            if self._single_task_submitted or not self._all_inputs_closed():
                return []
            return self._collect_single_context(list_ports, scalar_ports)

        if any(n not in self._closed for n in list_ports):
            return []

        if not scalar_ports:
            if self._single_task_submitted:
                return []
            self._single_task_submitted = True
            return [self._new_context(self._list_inputs(list_ports))]

        contexts: List[TaskContext] = []
        first = self._pending.get(scalar_ports[0], OrderedDict())
        for data_name in list(first):
            # o mesmo nome pode chegar mais de uma vez
            while all(self._pending.get(n, {}).get(data_name) for n in scalar_ports):
                inputs = self._list_inputs(list_ports)
                for n in scalar_ports:
                    inputs[n] = self._pop_pending(n, data_name)
                contexts.append(self._new_context(inputs))
        return contexts

    def _collect_single_context(self, list_ports: List[str], scalar_ports: List[str]) -> List[TaskContext]:
        counts = {n: sum(len(q) for q in self._pending.get(n, {}).values()) for n in scalar_ports}
        if scalar_ports and all(c == 0 for c in counts.values()):
            return []
        if any(c != 1 for c in counts.values()):
            self._mark_failed(
                f"Step {self.step.id} runs as a single task and cannot process these inputs: {counts}"
            )
            return []

        inputs = self._list_inputs(list_ports)
        for n in scalar_ports:
            data_name = next(iter(self._pending[n]))
            inputs[n] = self._pop_pending(n, data_name)
        self._single_task_submitted = True
        return [self._new_context(inputs)]

    def _pop_pending(self, port_name: str, data_name: str) -> AnyData:
        by_name = self._pending[port_name]
        queue = by_name[data_name]
        data = queue.popleft()
        if not queue:
            del by_name[data_name]
        return data

    def _list_inputs(self, list_ports: List[str]) -> Dict[str, AnyData]:
        inputs: Dict[str, AnyData] = {}
        for n in list_ports:
            port = self.step.input_ports[n]
            inputs[n] = DataList(name=n, format=port.format, elements=list(self._lists.get(n, [])),
                                 is_default_name=True)
        return inputs

    def _new_context(self, inputs: Dict[str, AnyData]) -> TaskContext:
        context = TaskContext(self.step, inputs)
        name = context.context_name
        default_name = name == f"context{context.id}"

        outputs: Dict[str, AnyData] = {}
        for port_name, port in self.step.output_ports.items():
            if port.is_list:
                outputs[port_name] = DataList(name=name, format=port.format, is_default_name=default_name)
            else:
                outputs[port_name] = Data(name=name, format=port.format, files=[port.file_path(name)],
                                          is_default_name=default_name)
        context.output_data = outputs

        self._in_flight.add(context.id)
        self._submitted += 1
        return context

    def _submit(self, contexts: List[TaskContext]) -> None:
        if not contexts:
            return
        for context in contexts:
            logger.debug("Step %s submits task #%d (%s)", self.step.id, context.id, context.context_name)
            self.workflow.scheduler.submit(context, self)
        self._notify_progress()

    # -----------------------------
    # Fim de tarefas
    # -----------------------------
    def task_done(self, context: TaskContext, result: TaskResult) -> None:
        with self._lock:
            self._in_flight.discard(context.id)
            self._terminated += 1
            self._results.append(result)
            failed = not result.success
            if failed and not self._failed:
                self._failed = True
                self.error = result.error_message

        self._notify_progress()

        if failed:
            self.workflow.ctx.log(
                step_id=self.step.id,
                level="ERROR",
                message=f"task #{context.id} ({context.context_name}) failed: {result.error_message}",
                event="task_failed",
                task_id=context.id,
            )
            self.step.set_state(StepState.FAILED)
            return

        self._check_completion()

    def add_failed_output_data(self, context: TaskContext) -> None:
        """Registra uma tarefa abortada para que o Step chegue a um estado final."""
        with self._lock:
            self._failed = True
            if self.error is None:
                self.error = f"task #{context.id} ({context.context_name}) has been interrupted"
        self.step.set_state(StepState.FAILED)

    def _mark_failed(self, message: str) -> None:
        self._failed = True
        if self.error is None:
            self.error = message

    def _check_completion(self) -> None:
        with self._lock:
            if not self._started or self._finished or self._stopped:
                return
            if self._failed:
                failed = True
            else:
                if self._in_flight or not self._all_inputs_closed():
                    return
                if not self.step.input_ports and not self._single_task_submitted:
                    return
                leftovers = {n: list(by_name) for n, by_name in self._pending.items() if by_name}
                if leftovers:
                    self._mark_failed(f"Unmatched input data for step {self.step.id}: {leftovers}")
                    failed = True
                else:
                    self._finished = True
                    failed = False

        if failed:
            logger.error("Step %s failed: %s", self.step.id, self.error)
            self.step.set_state(StepState.FAILED)
            return

        self._emit_end_of_step()

    def _emit_end_of_step(self) -> None:
        step = self.step
        for port in step.output_ports.values():
            step.send_token(Token.end_of_step_token(port))
        step.set_state(StepState.DONE)

    def _notify_progress(self) -> None:
        self.workflow.observers.notify_step_progress(self.step, self._terminated, self._submitted)

    # -----------------------------
    # Saídas
    # -----------------------------
    def remove_all_outputs(self) -> int:
        removed = 0
        for data in self.produced_data():
            for f in data.files:
                if f.exists():
                    f.unlink()
                    removed += 1
        if removed:
            logger.info("Removed %d output file(s) of step %s", removed, self.step.id)
        return removed


class TokenManagerRegistry:
    """Token managers de um workflow, um por Step, criados sob demanda."""

    def __init__(self, workflow: "Workflow") -> None:
        self.workflow = workflow
        self._lock = threading.Lock()
        self._managers: Dict[int, TokenManager] = {}

    def get_token_manager(self, step: "WorkflowStep") -> TokenManager:
        with self._lock:
            manager = self._managers.get(step.number)
            if manager is None:
                manager = TokenManager(step, self.workflow)
                self._managers[step.number] = manager
            return manager

    def managers(self) -> List[TokenManager]:
        with self._lock:
            return [self._managers[n] for n in sorted(self._managers)]

    def stop(self) -> None:
        for manager in self.managers():
            manager.stop()

    def results_by_step(self) -> Dict[str, List[TaskResult]]:
        return {m.step.id: m.results for m in self.managers()}

    def remove_outputs(self, steps: List["WorkflowStep"]) -> int:
        return sum(self.get_token_manager(s).remove_all_outputs() for s in steps)
