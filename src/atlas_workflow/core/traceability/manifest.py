# src/atlas_workflow/core/traceability/manifest.py
"""
Manifest de execução do Atlas Workflow.

O Manifest consolida, de forma determinística e auditável:
    - metadados da execução (run)
    - hash semântico da configuração (inputs)
    - estado incremental dos Steps e resultados de suas tarefas
    - Event Log ordenado de eventos explícitos

Durante uma run, o Manifest é alimentado pelo `ManifestStepObserver`,
registrado pelo Engine no `StepObserverRegistry` do workflow.

Decisões arquiteturais:
    - UTC é o timezone canônico para todos os timestamps
    - O formato de persistência é JSON determinístico (chaves ordenadas)
    - Mutações concorrentes (transições chegam de várias threads) são
      serializadas pelo observer

Invariantes:
    - `events` é sempre uma lista na ordem de registro
    - `steps` é sempre um dicionário indexado por step_id

Limites explícitos:
    - Não executa o workflow
    - Não decide políticas de execução
"""

from __future__ import annotations

import json
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List, Optional

if TYPE_CHECKING:  # pragma: no cover
    from atlas_workflow.core.pipeline.step import WorkflowStep


def _ensure_tzaware_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _iso(dt: datetime) -> str:
    return _ensure_tzaware_utc(dt).isoformat()


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class WorkflowManifest:
    """
    Registro forense de uma execução de workflow.

    Campos principais:
        - run: run_id, started_at, atlas_version e, ao final, status
        - inputs: config_hash
        - steps: por step_id, tipo, estado atual, histórico de estados,
          contadores e resultados de tarefas
        - events: Event Log ordenado
    """

    run: Dict[str, Any]
    inputs: Dict[str, Any]
    steps: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    events: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return json.loads(json.dumps({
            "run": self.run,
            "inputs": self.inputs,
            "steps": self.steps,
            "events": self.events,
        }, default=str))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WorkflowManifest":
        return cls(
            run=dict(data.get("run", {})),
            inputs=dict(data.get("inputs", {})),
            steps={k: dict(v) for k, v in (data.get("steps", {}) or {}).items()},
            events=[dict(e) for e in (data.get("events", []) or [])],
        )


def create_manifest(
    *,
    run_id: str,
    started_at: datetime,
    atlas_version: str,
    config_hash: str,
) -> WorkflowManifest:
    """Manifest inicial; o Event Log começa vazio."""
    return WorkflowManifest(
        run={
            "run_id": run_id,
            "started_at": _iso(started_at),
            "atlas_version": atlas_version,
        },
        inputs={"config_hash": config_hash},
    )


def add_event(
    manifest: WorkflowManifest,
    *,
    event_type: str,
    ts: datetime,
    step_id: Optional[str] = None,
    payload: Optional[Dict[str, Any]] = None,
) -> None:
    ev: Dict[str, Any] = {"event_type": event_type, "timestamp": _iso(ts)}
    if step_id is not None:
        ev["step_id"] = step_id
    if payload is not None:
        ev["payload"] = payload
    manifest.events.append(ev)


def _step_entry(manifest: WorkflowManifest, step_id: str) -> Dict[str, Any]:
    return manifest.steps.setdefault(
        step_id, {"step_id": step_id, "state": None, "history": [], "tasks": []}
    )


def step_state_changed(
    manifest: WorkflowManifest,
    *,
    step_id: str,
    state: str,
    ts: datetime,
    step_type: Optional[str] = None,
) -> None:
    s = _step_entry(manifest, step_id)
    previous = s.get("state")
    s["state"] = state
    if step_type is not None:
        s["type"] = step_type
    s["history"].append({"state": state, "timestamp": _iso(ts)})
    add_event(
        manifest,
        event_type="step_state_changed",
        ts=ts,
        step_id=step_id,
        payload={"previous_state": previous, "state": state},
    )


def task_finished(
    manifest: WorkflowManifest,
    *,
    step_id: str,
    ts: datetime,
    result: Dict[str, Any],
) -> None:
    """
    Registra o resultado de uma tarefa.

    `result` é a forma serializável de um TaskResult (`TaskResult.to_dict()`).
    """
    s = _step_entry(manifest, step_id)
    s["tasks"].append(dict(result))
    add_event(
        manifest,
        event_type="task_finished",
        ts=ts,
        step_id=step_id,
        payload={"task_id": result.get("task_id"), "success": bool(result.get("success"))},
    )


def run_finished(
    manifest: WorkflowManifest,
    *,
    ts: datetime,
    success: bool,
    message: str,
    error: Optional[Dict[str, Any]] = None,
) -> None:
    manifest.run.update({
        "finished_at": _iso(ts),
        "status": "success" if success else "failed",
        "message": message,
    })
    if error is not None:
        manifest.run["error"] = error
    add_event(manifest, event_type="run_finished", ts=ts, payload={"success": success})


def save_manifest(manifest: WorkflowManifest, path: Path) -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        json.dumps(manifest.to_dict(), ensure_ascii=False, indent=2, sort_keys=True),
        encoding="utf-8",
    )


def load_manifest(path: Path) -> WorkflowManifest:
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    return WorkflowManifest.from_dict(data)


class ManifestStepObserver:
    """StepObserver que projeta as notificações do workflow no Manifest."""

    def __init__(self, manifest: WorkflowManifest) -> None:
        self.manifest = manifest
        self._lock = threading.Lock()

    def notify_step_state(self, step: "WorkflowStep") -> None:
        with self._lock:
            step_state_changed(
                self.manifest,
                step_id=step.id,
                state=step.state.value,
                ts=_now(),
                step_type=step.type.value,
            )

    def notify_step_progress(self, step: "WorkflowStep", terminated_tasks: int, submitted_tasks: int) -> None:
        with self._lock:
            s = _step_entry(self.manifest, step.id)
            s["submitted_tasks"] = submitted_tasks
            s["terminated_tasks"] = terminated_tasks

    def notify_step_note(self, step: "WorkflowStep", note: str) -> None:
        with self._lock:
            add_event(self.manifest, event_type="step_note", ts=_now(), step_id=step.id, payload={"note": note})

    def notify_task_result(self, step_id: str, result: Dict[str, Any]) -> None:
        with self._lock:
            task_finished(self.manifest, step_id=step_id, ts=_now(), result=result)

    def notify_workflow_success(self, success: bool, message: str) -> None:
        with self._lock:
            run_finished(self.manifest, ts=_now(), success=success, message=message)
