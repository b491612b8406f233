# src/atlas_workflow/core/pipeline/context.py
"""
Contexto de execução de uma run do workflow.

Este módulo define o `RunContext`, que consolida a identidade da execução,
a configuração resolvida, os diretórios da run e o log estruturado de
eventos.

O RunContext consolida:
    - identidade da execução (run_id, created_at)
    - configuração resolvida (dict)
    - diretórios da run: job, tarefas, saída e trabalho
    - eventos estruturados (transições de estado, fim de tarefas)
    - warnings não fatais por Step

Decisões arquiteturais:
    - Cada run possui seu próprio contexto (sem estado global)
    - Eventos são registrados sob lock: transições chegam de várias threads
    - Diretórios não informados são derivados do diretório do job

Invariantes:
    - Eventos incluem sempre `run_id`, `step_id` e timestamp UTC
    - A ordem de `events` é a ordem de registro

Limites explícitos:
    - Não executa Steps
    - Não persiste eventos automaticamente (ver traceability.manifest)
"""

from __future__ import annotations

import tempfile
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

WORKFLOW_EVENT = "workflow"


@dataclass
class RunContext:
    """
    Contexto de execução compartilhado de uma run.

    `job_dir` é opcional: sem ele, os diretórios são criados em um
    diretório temporário nomeado pelo `run_id` e o Manifest não é salvo.
    """

    run_id: str
    created_at: datetime
    config: Dict[str, Any]
    meta: Dict[str, Any] = field(default_factory=dict)

    job_dir: Optional[Path] = None
    task_dir: Optional[Path] = None
    output_dir: Optional[Path] = None
    working_dir: Optional[Path] = None

    events: List[Dict[str, Any]] = field(default_factory=list, init=False)
    warnings: Dict[str, List[str]] = field(default_factory=dict, init=False)
    _lock: Any = field(default_factory=threading.Lock, init=False, repr=False, compare=False)

    @classmethod
    def create(
        cls,
        config: Dict[str, Any],
        *,
        job_dir: Optional[Path] = None,
        run_id: Optional[str] = None,
        meta: Optional[Dict[str, Any]] = None,
    ) -> "RunContext":
        return cls(
            run_id=run_id or uuid.uuid4().hex,
            created_at=datetime.now(timezone.utc),
            config=config,
            meta=dict(meta or {}),
            job_dir=Path(job_dir) if job_dir is not None else None,
        )

    # -----------------------------
    # Diretórios
    # -----------------------------
    @property
    def job_directory(self) -> Path:
        if self.job_dir is not None:
            return Path(self.job_dir)
        return Path(tempfile.gettempdir()) / f"atlas-workflow-{self.run_id}"

    @property
    def task_directory(self) -> Path:
        return Path(self.task_dir) if self.task_dir is not None else self.job_directory / "tasks"

    @property
    def output_directory(self) -> Path:
        return Path(self.output_dir) if self.output_dir is not None else self.job_directory / "output"

    @property
    def working_directory(self) -> Path:
        return Path(self.working_dir) if self.working_dir is not None else self.job_directory / "working"

    def ensure_directories(self) -> None:
        for d in (self.job_directory, self.task_directory, self.output_directory, self.working_directory):
            d.mkdir(parents=True, exist_ok=True)

    # -----------------------------
    # Logging & warnings
    # -----------------------------
    def log(self, *, step_id: str, level: str, message: str, **extra: Any) -> None:
        event = {
            "run_id": self.run_id,
            "step_id": step_id,
            "level": level,
            "message": message,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        event.update(extra)
        with self._lock:
            self.events.append(event)

    def events_for(self, step_id: str) -> List[Dict[str, Any]]:
        with self._lock:
            return [e for e in self.events if e.get("step_id") == step_id]

    def add_warning(self, *, step_id: str, message: str) -> None:
        with self._lock:
            self.warnings.setdefault(step_id, []).append(message)
