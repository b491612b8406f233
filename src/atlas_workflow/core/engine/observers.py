# src/atlas_workflow/core/engine/observers.py
"""
Observers externos e tarefas de parada de emergência.

Ambos os registros são objetos explícitos, construídos por workflow e
injetados nele (não há singleton de processo).

Decisões arquiteturais:
    - Notificações são callbacks tipados chamados em sequência, na thread
      que originou o evento
    - Um observer que levanta exceção não interrompe os demais nem o motor:
      a falha é registrada no log e a notificação segue
    - A parada de emergência apenas impede novo trabalho; threads de
      tarefas em execução não são mortas

Limites explícitos:
    - Não decide transições de estado
    - Não persiste eventos (ver traceability.manifest)
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Any, List, Protocol, runtime_checkable

if TYPE_CHECKING:  # pragma: no cover
    from atlas_workflow.core.pipeline.step import WorkflowStep

logger = logging.getLogger(__name__)


@runtime_checkable
class StepObserver(Protocol):
    def notify_step_state(self, step: "WorkflowStep") -> None:
        ...

    def notify_task_progress(self, step: "WorkflowStep", task_id: int, context_name: str, progress: float) -> None:
        ...

    def notify_step_progress(self, step: "WorkflowStep", terminated_tasks: int, submitted_tasks: int) -> None:
        ...

    def notify_step_note(self, step: "WorkflowStep", note: str) -> None:
        ...

    def notify_workflow_success(self, success: bool, message: str) -> None:
        ...


class StepObserverRegistry:
    """Lista de observers de um workflow; métodos ausentes no observer são ignorados."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._observers: List[Any] = []

    def add(self, observer: Any) -> None:
        if observer is None:
            return
        with self._lock:
            if observer not in self._observers:
                self._observers.append(observer)

    def remove(self, observer: Any) -> None:
        with self._lock:
            if observer in self._observers:
                self._observers.remove(observer)

    @property
    def observers(self) -> List[Any]:
        with self._lock:
            return list(self._observers)

    def _fan_out(self, method: str, *args: Any) -> None:
        for observer in self.observers:
            callback = getattr(observer, method, None)
            if callback is None:
                continue
            try:
                callback(*args)
            except Exception:
                logger.exception("Observer %r failed on %s", observer, method)

    def notify_step_state(self, step: "WorkflowStep") -> None:
        self._fan_out("notify_step_state", step)

    def notify_task_progress(self, step: "WorkflowStep", task_id: int, context_name: str, progress: float) -> None:
        self._fan_out("notify_task_progress", step, task_id, context_name, progress)

    def notify_step_progress(self, step: "WorkflowStep", terminated_tasks: int, submitted_tasks: int) -> None:
        self._fan_out("notify_step_progress", step, terminated_tasks, submitted_tasks)

    def notify_step_note(self, step: "WorkflowStep", note: str) -> None:
        self._fan_out("notify_step_note", step, note)

    def notify_workflow_success(self, success: bool, message: str) -> None:
        self._fan_out("notify_workflow_success", success, message)


@runtime_checkable
class EmergencyStopTask(Protocol):
    def stop(self) -> None:
        ...


class EmergencyStopTasks:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._tasks: List[EmergencyStopTask] = []

    def add(self, task: EmergencyStopTask) -> None:
        if task is None:
            return
        with self._lock:
            if task not in self._tasks:
                self._tasks.append(task)

    def remove(self, task: EmergencyStopTask) -> None:
        with self._lock:
            if task in self._tasks:
                self._tasks.remove(task)

    def __len__(self) -> int:
        with self._lock:
            return len(self._tasks)

    def stop(self) -> None:
        """Executa todas as tarefas de parada em uma única passada."""
        with self._lock:
            tasks = list(self._tasks)
        logger.warning("Emergency stop: executing %d stop task(s)", len(tasks))
        for task in tasks:
            try:
                task.stop()
            except Exception:
                logger.exception("Emergency stop task %r failed", task)
