# src/atlas_workflow/core/engine/engine.py
"""
Engine de execução do workflow do Atlas Workflow.

O Engine dirige uma run completa de um `Workflow` já configurado:
valida o grafo (planner), prepara diretórios e Manifest, leva os Steps a
WAITING e acompanha o mapa de estados até o fim da execução.

Laço de execução (acordado a cada transição ou a cada
`engine.poll_interval_seconds`):
    - Step FAILED com `engine.fail_fast` → parada de emergência
    - Step terminal em DONE → fim da run com sucesso
    - nenhum Step ativo nem em espera → fim (falha se algum Step falhou)
    - nenhum Step ativo, scheduler ocioso e Steps em WAITING → run travada:
      a jusante de uma falha, ou dependências malformadas

Parada de emergência:
    - Steps WORKING / PARTIALLY_DONE → ABORTED
    - tarefas de parada de emergência (scheduler e token managers)
    - remoção das saídas de Steps FAILED / ABORTED

Decisões arquiteturais:
    - Falhas de tarefa nunca chegam ao Engine como exceções; o Engine só
      observa estados
    - Uma run mal sucedida é reportada por `RunResult` com um
      `AtlasErrorPayload` identificando o Step que falhou
    - Erros de configuração (grafo inválido, Steps não configurados) são
      levantados antes de qualquer tarefa

Limites explícitos:
    - Não decide prontidão de Steps (StepStateObserver)
    - Não materializa tarefas (TokenManager)
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from atlas_workflow import __version__
from atlas_workflow.core.config.hashing import compute_config_hash
from atlas_workflow.core.config.merge import get_in
from atlas_workflow.core.errors import (
    AtlasErrorPayload,
    engine_configuration_error,
    engine_execution_error,
    step_failed,
    workflow_stalled,
)
from atlas_workflow.core.exceptions import EngineConfigurationError
from atlas_workflow.core.pipeline.context import WORKFLOW_EVENT, RunContext
from atlas_workflow.core.pipeline.step import WorkflowStep
from atlas_workflow.core.pipeline.types import StepState
from atlas_workflow.core.traceability.manifest import (
    ManifestStepObserver,
    WorkflowManifest,
    create_manifest,
    save_manifest,
)
from .planner import plan_execution
from .task import TaskResult
from .workflow import Workflow

logger = logging.getLogger(__name__)

MANIFEST_FILE = "manifest.json"

ACTIVE_STATES = (StepState.READY, StepState.WORKING, StepState.PARTIALLY_DONE)


@dataclass(frozen=True)
class RunResult:
    """Resultado agregado de uma execução de workflow."""

    success: bool
    states: Dict[str, StepState] = field(default_factory=dict)
    results: Dict[str, List[TaskResult]] = field(default_factory=dict)
    failed_step: Optional[str] = None
    error: Optional[AtlasErrorPayload] = None
    duration_ms: int = 0
    message: str = ""


@dataclass(frozen=True)
class _Outcome:
    success: bool
    message: str
    failed_step: Optional[str] = None
    error: Optional[AtlasErrorPayload] = None
    terminal: bool = False


class Engine:
    """Engine canônico do Atlas Workflow (planner + laço de estados)."""

    def __init__(self, *, workflow: Workflow, ctx: Optional[RunContext] = None):
        self.workflow = workflow
        self.ctx: RunContext = ctx if ctx is not None else workflow.ctx
        self.manifest: Optional[WorkflowManifest] = None
        self._manifest_observer: Optional[ManifestStepObserver] = None

    def _fail_fast(self) -> bool:
        return bool(get_in(self.ctx.config, ["engine", "fail_fast"], True))

    def _poll_interval(self) -> float:
        return float(get_in(self.ctx.config, ["engine", "poll_interval_seconds"], 0.5))

    # ------------------------------------------------------------------
    # Preparação
    # ------------------------------------------------------------------
    def _prepare(self) -> List[WorkflowStep]:
        wf = self.workflow
        order = plan_execution(wf.steps)

        not_configured = [s.id for s in order if s.state is not StepState.CONFIGURED]
        if not_configured:
            raise EngineConfigurationError.from_payload(engine_configuration_error(
                message="Every step must be configured before running the workflow",
                details={"steps": not_configured},
                hint="Chame workflow.configure() e conecte as portas antes de executar.",
            ))

        wf.check_input_links()
        wf.skip_generators_if_not_needed()
        wf.check_existing_output_files()
        self.ctx.ensure_directories()

        self.manifest = create_manifest(
            run_id=self.ctx.run_id,
            started_at=self.ctx.created_at,
            atlas_version=__version__,
            config_hash=compute_config_hash(self.ctx.config),
        )
        self._manifest_observer = ManifestStepObserver(self.manifest)
        wf.observers.add(self._manifest_observer)
        return order

    # ------------------------------------------------------------------
    # Execução
    # ------------------------------------------------------------------
    def run(self) -> RunResult:
        started = time.monotonic()
        wf = self.workflow
        order = self._prepare()

        logger.info("Start of workflow run %s (%d steps)", self.ctx.run_id, len(order))
        self.ctx.log(step_id=WORKFLOW_EVENT, level="INFO", message="run started", event="run_started")

        wf.scheduler.start()
        wf.emergency_stop_tasks.add(wf.scheduler)
        wf.emergency_stop_tasks.add(wf.token_managers)
        for step in order:
            wf.token_managers.get_token_manager(step)

        try:
            for step in order:
                # um Step pode já ter ficado READY quando suas dependências terminaram
                step.set_state(StepState.WAITING, expected=StepState.CONFIGURED)
            outcome = self._drive()
        except Exception as e:
            logger.exception("Unexpected error while running workflow %s", self.ctx.run_id)
            outcome = _Outcome(
                success=False,
                message=f"Fail of the analysis: {e}",
                error=engine_execution_error(exc_type=e.__class__.__name__, exc_message=str(e)),
            )

        if outcome.success:
            wf.token_managers.stop()
            wf.scheduler.shutdown(wait=not outcome.terminal)
        else:
            self.emergency_stop()

        return self._finish(outcome, started)

    def _drive(self) -> _Outcome:
        wf = self.workflow
        fail_fast = self._fail_fast()
        poll = self._poll_interval()

        while True:
            failed = wf.steps_by_state(StepState.FAILED)
            if failed and fail_fast:
                return self._failure(failed[0])

            for step in wf.steps_by_state(StepState.DONE):
                if step.terminal:
                    return _Outcome(
                        success=True,
                        message=f"Workflow ended by terminal step {step.id}",
                        terminal=True,
                    )

            active = wf.steps_by_state(*ACTIVE_STATES)
            waiting = wf.steps_by_state(StepState.WAITING)

            if not active and not waiting:
                if failed:
                    return self._failure(failed[0])
                return _Outcome(success=True, message="Workflow successfully executed")

            if not active and wf.scheduler.is_idle():
                if failed:
                    return self._failure(failed[0])
                ids = [s.id for s in waiting]
                payload = workflow_stalled(waiting_steps=ids)
                logger.error("%s: %s", payload.message, ", ".join(ids))
                return _Outcome(success=False, message=payload.message, error=payload)

            wf.wait_for_state_change(poll)

    def _failure(self, step: WorkflowStep) -> _Outcome:
        manager = self.workflow.token_managers.get_token_manager(step)
        failed_tasks = [r.context.context_name for r in manager.results if not r.success]
        payload = step_failed(step=step.id, error_message=manager.error, failed_tasks=failed_tasks)
        logger.error("%s (%s)", payload.message, manager.error)
        return _Outcome(success=False, message=payload.message, failed_step=step.id, error=payload)

    def emergency_stop(self) -> None:
        wf = self.workflow
        for step in wf.steps_by_state(StepState.WORKING, StepState.PARTIALLY_DONE):
            step.set_state(StepState.ABORTED)
        wf.emergency_stop_tasks.stop()
        wf.token_managers.remove_outputs(wf.steps_by_state(StepState.FAILED, StepState.ABORTED))

    # ------------------------------------------------------------------
    # Encerramento
    # ------------------------------------------------------------------
    def _finish(self, outcome: _Outcome, started: float) -> RunResult:
        wf = self.workflow
        results = wf.token_managers.results_by_step()

        if self._manifest_observer is not None:
            for step_id, step_results in results.items():
                for r in step_results:
                    self._manifest_observer.notify_task_result(step_id, r.to_dict())

        wf.observers.notify_workflow_success(outcome.success, outcome.message)
        if self.manifest is not None and outcome.error is not None:
            self.manifest.run["error"] = outcome.error.to_dict()

        self.ctx.log(
            step_id=WORKFLOW_EVENT,
            level="INFO" if outcome.success else "ERROR",
            message=outcome.message,
            event="run_finished",
            success=outcome.success,
            failed_step=outcome.failed_step,
        )
        if outcome.success:
            logger.info(outcome.message)
        else:
            logger.error(outcome.message)

        if self.ctx.job_dir is not None and self.manifest is not None:
            save_manifest(self.manifest, self.ctx.job_directory / MANIFEST_FILE)

        return RunResult(
            success=outcome.success,
            states=wf.state_snapshot(),
            results=results,
            failed_step=outcome.failed_step,
            error=outcome.error,
            duration_ms=int((time.monotonic() - started) * 1000),
            message=outcome.message,
        )