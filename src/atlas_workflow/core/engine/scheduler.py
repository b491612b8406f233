# src/atlas_workflow/core/engine/scheduler.py
"""
Scheduler de tarefas.

Cada tarefa submetida ganha uma "chamada gerenciadora" em um pool de
threads (`concurrent.futures.ThreadPoolExecutor`). A chamada gerenciadora
cria o `TaskRunner`, que por sua vez executa o módulo em uma thread
própria e a aguarda: uma thread por tarefa, com join antes de declarar a
tarefa terminada.

Sequência de uma chamada gerenciadora:
    1. Step READY → WORKING (compare-and-set)
    2. `TaskRunner.run()`
    3. `TaskRunner.send_tokens()`
    4. `TokenManager.task_done(context, result)`

Decisões arquiteturais:
    - `max_workers` limita as tarefas em voo no processo
    - Steps em modo NOT_NEEDED ou OWN_PARALLELIZATION têm no máximo
      uma tarefa em voo (semáforo por Step)
    - O scheduler é uma tarefa de parada de emergência: `stop()` recusa
      trabalho novo, cancela o que não começou e interrompe a espera dos
      runners (threads em execução não são mortas)

Invariantes:
    - `task_done` é chamado exatamente uma vez por tarefa iniciada,
      mesmo quando a própria chamada gerenciadora falha
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import TYPE_CHECKING, Any, Dict, Mapping, Optional, Set

from atlas_workflow.core.exceptions import IllegalStateError
from atlas_workflow.core.pipeline.types import ParallelizationMode, StepState
from .runner import TaskRunner
from .task import TaskContext, TaskResult

if TYPE_CHECKING:  # pragma: no cover
    from atlas_workflow.core.pipeline.step import WorkflowStep
    from .token_manager import TokenManager

logger = logging.getLogger(__name__)


class TaskScheduler:
    def __init__(self, max_workers: int = 4, join_poll_seconds: float = 0.2) -> None:
        if max_workers < 1:
            raise ValueError("max_workers must be >= 1")
        self.max_workers = int(max_workers)
        self.join_poll_seconds = float(join_poll_seconds)

        self._lock = threading.Lock()
        self._executor: Optional[ThreadPoolExecutor] = None
        self._stopped = False
        self._active = 0
        self._runners: Set[TaskRunner] = set()
        self._step_locks: Dict[int, threading.Semaphore] = {}

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "TaskScheduler":
        engine_cfg = (config or {}).get("engine", {}) or {}
        return cls(
            max_workers=int(engine_cfg.get("max_workers", 4)),
            join_poll_seconds=float(engine_cfg.get("task_join_poll_seconds", 0.2)),
        )

    # -----------------------------
    # Ciclo de vida
    # -----------------------------
    def start(self) -> None:
        with self._lock:
            if self._executor is not None:
                return
            self._stopped = False
            self._executor = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="atlas-task")
        logger.debug("Task scheduler started with %d worker(s)", self.max_workers)

    @property
    def is_started(self) -> bool:
        return self._executor is not None

    @property
    def is_stopped(self) -> bool:
        return self._stopped

    def is_idle(self) -> bool:
        with self._lock:
            return self._active == 0

    @property
    def active_tasks(self) -> int:
        with self._lock:
            return self._active

    def stop(self) -> None:
        with self._lock:
            if self._stopped:
                return
            self._stopped = True
            runners = list(self._runners)
            executor = self._executor

        logger.warning("Stopping task scheduler (%d running task(s))", len(runners))
        for runner in runners:
            runner.interrupt()
        if executor is not None:
            executor.shutdown(wait=False, cancel_futures=True)

    def shutdown(self, wait: bool = True) -> None:
        with self._lock:
            self._stopped = True
            executor = self._executor
        if executor is not None:
            executor.shutdown(wait=wait)

    # -----------------------------
    # Submissão
    # -----------------------------
    def submit(self, context: TaskContext, token_manager: "TokenManager") -> Optional[Future]:
        with self._lock:
            if self._stopped:
                logger.warning(
                    "Scheduler stopped: task #%d of step %s not submitted", context.id, context.step.id
                )
                return None
            if self._executor is None:
                raise IllegalStateError(
                    "Task scheduler has not been started", details={"step": context.step.id}
                )
            self._active += 1
            future = self._executor.submit(self._execute, context, token_manager)
        future.add_done_callback(self._on_done)
        return future

    def _on_done(self, future: Future) -> None:
        with self._lock:
            self._active -= 1

    def _step_lock(self, step: "WorkflowStep") -> Optional[threading.Semaphore]:
        if step.parallelization_mode is ParallelizationMode.STANDARD:
            return None
        with self._lock:
            sem = self._step_locks.get(step.number)
            if sem is None:
                sem = threading.Semaphore(1)
                self._step_locks[step.number] = sem
            return sem

    def _execute(self, context: TaskContext, token_manager: "TokenManager") -> None:
        step = context.step
        runner = TaskRunner(context, token_manager, join_poll_seconds=self.join_poll_seconds)

        try:
            result = self._run_task(runner, step)
        except Exception as e:
            logger.exception("Unexpected error while managing task #%d of step %s", context.id, step.id)
            result = TaskRunner.create_task_result(context, e)

        try:
            token_manager.task_done(context, result)
        except Exception:
            logger.exception("Cannot record the end of task #%d of step %s", context.id, step.id)

    def _run_task(self, runner: TaskRunner, step: "WorkflowStep") -> TaskResult:
        context = runner.context
        if self._stopped or step.state.is_final_state:
            return TaskRunner.create_task_result(
                context, None, f"Task #{context.id} not executed: step {step.id} is {step.state.value}"
            )

        sem = self._step_lock(step)
        if sem is not None:
            sem.acquire()
        with self._lock:
            self._runners.add(runner)
        try:
            step.set_state(StepState.WORKING, expected=StepState.READY)
            result = runner.run()
            try:
                runner.send_tokens()
            except Exception as e:
                logger.exception("Cannot send tokens of task #%d of step %s", context.id, step.id)
                result = TaskRunner.create_task_result(context, e)
            return result
        finally:
            with self._lock:
                self._runners.discard(runner)
            if sem is not None:
                sem.release()
