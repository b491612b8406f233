# src/atlas_workflow/core/engine/task.py
"""
Tarefas: contexto, status e resultado.

Uma tarefa é a aplicação de um Step a um conjunto resolvido de dados de
entrada. Este módulo define:
    - TaskContext → identidade da tarefa, dados de entrada/saída e
      serialização para execução em outro processo
    - TaskStatus  → progresso e contadores reportados pelo módulo
    - TaskResult  → registro imutável do desfecho da tarefa

Formato de serialização (pickle):
    - arquivo de contexto: dois registros em sequência, o TaskContext e
      o `Settings` do processo
    - arquivo de dados de saída: o mapa porta → dado produzido

Decisões arquiteturais:
    - Desserializar um contexto sobrescreve os Settings do processo
      (acoplamento mantido de forma explícita: o código da tarefa depende
      de configuração global consistente durante sua execução)
    - O TaskResult é construído de uma vez; nada é preenchido depois

Invariantes:
    - Ids de tarefa são únicos e monotônicos no processo
    - `update_output_data` só aceita exatamente as portas já conhecidas
"""

from __future__ import annotations

import itertools
import logging
import pickle
import threading
import traceback
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any, BinaryIO, Dict, List, Optional, Union

from atlas_workflow.core.config.settings import Settings, get_settings
from atlas_workflow.core.exceptions import IllegalStateError, WorkflowRuntimeError
from atlas_workflow.core.pipeline.data import Data, DataList

if TYPE_CHECKING:  # pragma: no cover
    from atlas_workflow.core.pipeline.step import WorkflowStep

logger = logging.getLogger(__name__)

TASK_LOG_EXTENSION = ".log"
TASK_CONTEXT_EXTENSION = ".context"
TASK_RESULT_EXTENSION = ".result"
TASK_DONE_EXTENSION = ".done"
TASK_DATA_EXTENSION = ".data"

AnyData = Union[Data, DataList]

_ids = itertools.count(1)
_ids_lock = threading.Lock()


def _next_id() -> int:
    with _ids_lock:
        return next(_ids)


def create_default_context_name(inputs: Dict[str, AnyData]) -> str:
    """
    Nome diagnóstico derivado das entradas.

    Prioridade: nomes de dados nomeados, depois nomes de arquivos de dados
    com nome padrão, depois nomes de listas. Partes distintas unidas por '-'.
    """
    named: List[str] = []
    file_names: List[str] = []
    list_names: List[str] = []

    for port_name in inputs:
        data = inputs[port_name]
        if data.is_list:
            list_names.append(data.name)
        elif not data.is_default_name:
            named.append(data.name)
        else:
            file_names.extend(data.file_names())

    for candidates in (named, file_names, list_names):
        if candidates:
            return "-".join(dict.fromkeys(candidates))
    return ""


class TaskContext:
    def __init__(
        self,
        step: "WorkflowStep",
        input_data: Optional[Dict[str, AnyData]] = None,
        output_data: Optional[Dict[str, AnyData]] = None,
        *,
        task_directory: Optional[Path] = None,
        working_directory: Optional[Path] = None,
    ) -> None:
        self.id = _next_id()
        self.step = step
        self.run_id = step.run_id
        self.input_data: Dict[str, AnyData] = dict(input_data or {})
        self.output_data: Dict[str, AnyData] = dict(output_data or {})

        ctx = step.workflow.ctx if step.workflow is not None else None
        self.task_directory = Path(task_directory) if task_directory is not None else (
            ctx.task_directory if ctx is not None else Path(get_settings().temp_directory)
        )
        self.working_directory = Path(working_directory) if working_directory is not None else (
            ctx.working_directory if ctx is not None else Path(get_settings().temp_directory)
        )

        self.context_name = create_default_context_name(self.input_data) or f"context{self.id}"
        self.logger: logging.Logger = logger

    # -----------------------------
    # Dados
    # -----------------------------
    def get_input_data(self, port_name: str) -> AnyData:
        key = port_name.strip().lower()
        if key not in self.input_data:
            raise WorkflowRuntimeError(
                f"Unknown input port for task #{self.id}: {port_name}",
                details={"step": self.step.id, "known": sorted(self.input_data)},
            )
        return self.input_data[key]

    def get_output_data(self, port_name: str) -> AnyData:
        key = port_name.strip().lower()
        if key not in self.output_data:
            raise WorkflowRuntimeError(
                f"Unknown output port for task #{self.id}: {port_name}",
                details={"step": self.step.id, "known": sorted(self.output_data)},
            )
        return self.output_data[key]

    def update_output_data(self, data: Dict[str, AnyData]) -> None:
        if data is None or len(data) != len(self.output_data):
            raise IllegalStateError(
                "Output data size mismatch",
                details={"expected": sorted(self.output_data), "received": sorted(data or {})},
            )
        for key in data:
            if key not in self.output_data:
                raise IllegalStateError(
                    f"Unknown output data port: {key}",
                    details={"expected": sorted(self.output_data)},
                )
        self.output_data.update(data)

    # -----------------------------
    # Arquivos da tarefa
    # -----------------------------
    @property
    def task_file_prefix(self) -> str:
        return f"{self.step.id}_task{self.id}"

    def task_file(self, extension: str) -> Path:
        return self.task_directory / f"{self.task_file_prefix}{extension}"

    # -----------------------------
    # Serialização
    # -----------------------------
    def serialize(self, target: Union[Path, str, BinaryIO]) -> None:
        if isinstance(target, (str, Path)):
            path = Path(target)
            path.parent.mkdir(parents=True, exist_ok=True)
            with path.open("wb") as f:
                self.serialize(f)
            return
        pickle.dump(self, target)
        pickle.dump(get_settings(), target)

    @classmethod
    def deserialize(cls, source: Union[Path, str, BinaryIO]) -> "TaskContext":
        """Lê um contexto e sobrescreve os Settings do processo com os do arquivo."""
        if isinstance(source, (str, Path)):
            with Path(source).open("rb") as f:
                return cls.deserialize(f)

        context = pickle.load(source)
        settings = pickle.load(source)
        if not isinstance(context, cls) or not isinstance(settings, Settings):
            raise IllegalStateError(
                "Invalid task context stream",
                details={"context": type(context).__name__, "settings": type(settings).__name__},
            )
        get_settings().set_settings(settings)
        return context

    def serialize_output_data(self, target: Union[Path, str, BinaryIO]) -> None:
        if isinstance(target, (str, Path)):
            with Path(target).open("wb") as f:
                self.serialize_output_data(f)
            return
        pickle.dump(self.output_data, target)

    def deserialize_output_data(self, source: Union[Path, str, BinaryIO]) -> None:
        if isinstance(source, (str, Path)):
            with Path(source).open("rb") as f:
                self.deserialize_output_data(f)
            return
        self.update_output_data(pickle.load(source))

    def __getstate__(self) -> Dict[str, Any]:
        state = dict(self.__dict__)
        state.pop("logger", None)
        return state

    def __setstate__(self, state: Dict[str, Any]) -> None:
        self.__dict__.update(state)
        self.logger = logger

    def __repr__(self) -> str:
        return f"TaskContext(#{self.id} {self.step.id}:{self.context_name})"


@dataclass(frozen=True)
class TaskResult:
    context: TaskContext
    start_time: datetime
    end_time: datetime
    duration_ms: int
    success: bool
    counters: Dict[str, int] = field(default_factory=dict)
    description: Optional[str] = None
    message: Optional[str] = None
    exception: Optional[BaseException] = None
    error_message: Optional[str] = None
    stack_trace: Optional[str] = None

    @property
    def is_success(self) -> bool:
        return self.success

    def to_dict(self) -> Dict[str, Any]:
        return {
            "task_id": self.context.id,
            "step_id": self.context.step.id,
            "context_name": self.context.context_name,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat(),
            "duration_ms": self.duration_ms,
            "success": self.success,
            "counters": dict(self.counters),
            "description": self.description,
            "message": self.message,
            "exception": None if self.exception is None else self.exception.__class__.__name__,
            "error_message": self.error_message,
        }


class TaskStatus:
    """Canal entre o módulo em execução e o motor (progresso, contadores, resultado)."""

    def __init__(self, context: TaskContext) -> None:
        self.context = context
        self._lock = threading.Lock()
        self._counters: Dict[str, int] = {}
        self._progress = 0.0
        self._description: Optional[str] = None
        self._message: Optional[str] = None
        self._start: Optional[datetime] = None

    # -----------------------------
    # Progresso
    # -----------------------------
    @property
    def progress(self) -> float:
        return self._progress

    def set_progress(self, progress: float) -> None:
        self._progress = min(1.0, max(0.0, float(progress)))
        step = self.context.step
        if step.workflow is not None:
            step.workflow.observers.notify_task_progress(
                step, self.context.id, self.context.context_name, self._progress
            )

    def set_progress_counts(self, min_value: int, max_value: int, value: int) -> None:
        if max_value <= min_value:
            self.set_progress(1.0)
            return
        self.set_progress((value - min_value) / (max_value - min_value))

    # -----------------------------
    # Contadores e textos
    # -----------------------------
    def increment_counter(self, name: str, value: int = 1) -> None:
        with self._lock:
            self._counters[name] = self._counters.get(name, 0) + int(value)

    def set_counter(self, name: str, value: int) -> None:
        with self._lock:
            self._counters[name] = int(value)

    @property
    def counters(self) -> Dict[str, int]:
        with self._lock:
            return dict(self._counters)

    def set_description(self, description: str) -> None:
        self._description = description

    def set_message(self, message: str) -> None:
        self._message = message

    # -----------------------------
    # Resultado
    # -----------------------------
    def duration_start(self) -> None:
        self._start = datetime.now(timezone.utc)

    def _times(self):
        end = datetime.now(timezone.utc)
        start = self._start or end
        return start, end, max(0, int((end - start).total_seconds() * 1000))

    def create_task_result(self, success: bool = True) -> TaskResult:
        start, end, duration = self._times()
        if success:
            self._progress = 1.0
        return TaskResult(
            context=self.context,
            start_time=start,
            end_time=end,
            duration_ms=duration,
            success=success,
            counters=self.counters,
            description=self._description,
            message=self._message,
        )

    def create_failed_task_result(
        self,
        exception: Optional[BaseException] = None,
        error_message: Optional[str] = None,
    ) -> TaskResult:
        start, end, duration = self._times()
        if error_message is None and exception is not None:
            error_message = str(exception) or exception.__class__.__name__
        stack = None
        if exception is not None:
            stack = "".join(traceback.format_exception(type(exception), exception, exception.__traceback__))
        return TaskResult(
            context=self.context,
            start_time=start,
            end_time=end,
            duration_ms=duration,
            success=False,
            counters=self.counters,
            description=self._description,
            message=self._message,
            exception=exception,
            error_message=error_message,
            stack_trace=stack,
        )
