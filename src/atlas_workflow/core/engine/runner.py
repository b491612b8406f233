# src/atlas_workflow/core/engine/runner.py
"""
Execução isolada de uma tarefa.

O `TaskRunner` executa exatamente uma tarefa: cria uma thread dedicada
(e, se o Step registra logs, um logger de tarefa com arquivo próprio),
chama `module.execute(context, status)`, aguarda a thread e guarda o
`TaskResult`. Depois, `send_tokens()` converte um resultado de sucesso em
tokens nas portas de saída do Step.

Política de instanciação de módulos:
    - Steps STANDARD cujo módulo não pede reuso (capacidade
      `reuse_instance` ou `force_step_instance_reuse`) recebem uma
      instância nova, configurada, por tarefa
    - Demais casos usam a instância compartilhada do Step

Invariantes:
    - `run()` e `send_tokens()` são chamados no máximo uma vez cada
    - Exceções do módulo nunca escapam de `run()`: viram TaskResult de falha
    - Um resultado de falha não emite nenhum token
    - Sempre existe exatamente um TaskResult após `run()`

Limites explícitos:
    - Não decide quando uma tarefa é criada (TokenManager)
    - Não decide quantas tarefas rodam em paralelo (TaskScheduler)
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Optional

from atlas_workflow.core.errors import task_execution_error, task_interrupted, task_no_result
from atlas_workflow.core.exceptions import (
    IllegalStateError,
    TaskExecutionError,
    TaskInterruptedError,
)
from atlas_workflow.core.logs import close_task_logger, create_task_logger
from atlas_workflow.core.pipeline.types import StepState, StepType
from .task import TASK_LOG_EXTENSION, TaskContext, TaskResult, TaskStatus
from .token import Token

if TYPE_CHECKING:  # pragma: no cover
    from .token_manager import TokenManager

logger = logging.getLogger(__name__)


class TaskRunner:
    def __init__(
        self,
        context: TaskContext,
        token_manager: Optional["TokenManager"] = None,
        *,
        join_poll_seconds: float = 0.2,
        force_step_instance_reuse: bool = False,
    ) -> None:
        if context is None:
            raise IllegalStateError("TaskRunner requires a task context")
        self.context = context
        self.token_manager = token_manager
        self.join_poll_seconds = join_poll_seconds
        self.force_step_instance_reuse = force_step_instance_reuse

        self._result: Optional[TaskResult] = None
        self._executed = False
        self._tokens_sent = False
        self._interrupt = threading.Event()
        self._task_logger: Optional[logging.Logger] = None

    @property
    def result(self) -> TaskResult:
        if self._result is None:
            raise IllegalStateError(
                f"Task #{self.context.id} has no result yet", details={"task": self.context.id}
            )
        return self._result

    @property
    def has_result(self) -> bool:
        return self._result is not None

    def interrupt(self) -> None:
        self._interrupt.set()

    # -----------------------------
    # Execução
    # -----------------------------
    def run(self) -> TaskResult:
        if self._executed:
            raise IllegalStateError(
                "task has been already executed",
                details={"task": self.context.id, "step": self.context.step.id},
            )
        self._executed = True

        step = self.context.step
        if step.create_log_files:
            self._task_logger = create_task_logger(
                self.context.task_file_prefix,
                self.context.task_file(TASK_LOG_EXTENSION),
            )
            self.context.logger = self._task_logger

        thread = threading.Thread(
            target=self._execute,
            name=f"TaskRunner_{step.id}_#{self.context.id}",
            daemon=True,
        )
        try:
            thread.start()
            while thread.is_alive():
                thread.join(self.join_poll_seconds)
                if self._interrupt.is_set() and thread.is_alive():
                    self._on_interrupted()
                    break
        finally:
            close_task_logger(self._task_logger)

        if self._result is None:
            self._result = TaskStatus(self.context).create_failed_task_result(
                error_message=task_no_result(step=step.id, context_name=self.context.context_name).message
            )
        return self._result

    def _on_interrupted(self) -> None:
        step = self.context.step
        logger.warning("Task #%d of step %s interrupted while running", self.context.id, step.id)
        if self.token_manager is not None:
            self.token_manager.add_failed_output_data(self.context)
        exc = TaskInterruptedError.from_payload(
            task_interrupted(step=step.id, task_id=self.context.id, context_name=self.context.context_name)
        )
        self._result = TaskStatus(self.context).create_failed_task_result(exception=exc)

    def _module_for_task(self):
        step = self.context.step
        reuse = step.capabilities.reuse_instance or self.force_step_instance_reuse
        if step.type is StepType.STANDARD and not reuse:
            module = step.new_module_instance()
            module.configure(step.configuration_context(self.context.logger), step.parameters)
            return module
        return step.get_module()

    def _execute(self) -> None:
        context = self.context
        log = context.logger
        status = TaskStatus(context)
        status.duration_start()
        log.info("Start of task #%d (%s) of step %s", context.id, context.context_name, context.step.id)

        try:
            module = self._module_for_task()
            result = module.execute(context, status)
            if result is not None and not isinstance(result, TaskResult):
                raise TaskExecutionError.from_payload(task_execution_error(
                    step=context.step.id,
                    context_name=context.context_name,
                    message=f"Module {context.step.module_name} returned {type(result).__name__} instead of TaskResult",
                    exc_type=type(result).__name__,
                ))
        except BaseException as e:
            # SystemExit e KeyboardInterrupt do módulo também viram falha da tarefa
            result = status.create_failed_task_result(exception=e)

        if self._interrupt.is_set() and self._result is not None:
            return

        if result is None:
            log.error(task_no_result(step=context.step.id, context_name=context.context_name).message)
        else:
            log.info("End of task #%d", context.id)
            log.info("Duration: %d ms", result.duration_ms)
            log.info("Result: %s", "Success" if result.success else "Fail")
            if not result.success:
                if result.error_message:
                    log.error("Error: %s", result.error_message)
                if result.stack_trace:
                    log.error("Stack trace:\n%s", result.stack_trace)
        self._result = result

    # -----------------------------
    # Tokens
    # -----------------------------
    def send_tokens(self) -> int:
        """Emite um token por porta de saída; devolve o número de tokens enviados."""
        if self._result is None:
            raise IllegalStateError(
                "Cannot send tokens of a null result task", details={"task": self.context.id}
            )
        if self._tokens_sent:
            raise IllegalStateError("Cannot send tokens twice", details={"task": self.context.id})
        self._tokens_sent = True
        return self._send(self.context, self._result)

    @staticmethod
    def _send(context: TaskContext, result: TaskResult) -> int:
        if not result.success:
            return 0

        step = context.step
        sent = 0
        for name, port in step.output_ports.items():
            step.send_token(Token(port, context.get_output_data(name)))
            sent += 1

        step.set_state(StepState.PARTIALLY_DONE, expected=StepState.WORKING)
        return sent

    @staticmethod
    def create_task_result(
        context: TaskContext,
        exception: Optional[BaseException],
        error_message: Optional[str] = None,
    ) -> TaskResult:
        """Resultado de falha para uma tarefa que nunca chegou a executar."""
        return TaskStatus(context).create_failed_task_result(exception=exception, error_message=error_message)

    @staticmethod
    def send_tokens_for_result(context: TaskContext, result: TaskResult) -> int:
        """Emite os tokens de um resultado produzido em outro processo."""
        if result is None:
            raise IllegalStateError("Cannot send tokens of a null result task", details={"task": context.id})
        if result.context.id != context.id:
            raise IllegalStateError(
                "Task result does not belong to this context",
                details={"task": context.id, "result_task": result.context.id},
            )
        return TaskRunner._send(context, result)
