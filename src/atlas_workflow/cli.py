# src/atlas_workflow/cli.py
"""
Entrypoints de linha de comando do Atlas Workflow.

Comandos:
    - task CONTEXT_FILE → executa uma tarefa serializada (processo separado):
      grava `<base>.result`, `<base>.data` e o marcador `<base>.done`
    - run FACTORY       → importa `pacote.modulo:funcao`, constrói o
      workflow com `(ctx, modules)` e o executa com o Engine

Códigos de saída:
    - 0: sucesso
    - 1: arquivo ausente, configuração inválida ou erro de processamento
    - 2: run executada sem sucesso (mensagem identifica o Step que falhou)
"""

from __future__ import annotations

import pickle
import signal
import threading
from pathlib import Path
from typing import NoReturn, Optional

import typer

from atlas_workflow.core.config.errors import ConfigError
from atlas_workflow.core.config.loader import DEFAULTS_FILE, load_config
from atlas_workflow.core.config.merge import deep_merge, get_in
from atlas_workflow.core.config.settings import get_settings
from atlas_workflow.core.engine.engine import Engine
from atlas_workflow.core.engine.runner import TaskRunner
from atlas_workflow.core.engine.task import (
    TASK_DATA_EXTENSION,
    TASK_DONE_EXTENSION,
    TASK_RESULT_EXTENSION,
    TaskContext,
)
from atlas_workflow.core.engine.workflow import Workflow
from atlas_workflow.core.exceptions import AtlasException, WorkflowConfigurationError
from atlas_workflow.core.logs import configure_logging
from atlas_workflow.core.pipeline.context import RunContext
from atlas_workflow.core.pipeline.registry import ModuleRegistry, UnknownModuleError, load_reference

app = typer.Typer(help="Atlas Workflow command line interface")


def _fail(message: str, code: int = 1) -> NoReturn:
    typer.secho(message, fg=typer.colors.RED)
    raise typer.Exit(code=code)


@app.command("task")
def task_command(
    context_file: Path = typer.Argument(..., help="Serialized task context file"),
) -> None:
    """Execute one serialized task context and write its result files."""
    if not context_file.is_file():
        _fail(f"Task context file not found: {context_file}")

    try:
        context = TaskContext.deserialize(context_file)
        configure_logging(get_settings().log_level)

        result = TaskRunner(context, force_step_instance_reuse=False).run()

        with context_file.with_suffix(TASK_RESULT_EXTENSION).open("wb") as f:
            pickle.dump(result, f)
        context.serialize_output_data(context_file.with_suffix(TASK_DATA_EXTENSION))
        context_file.with_suffix(TASK_DONE_EXTENSION).touch()
    except Exception as e:
        _fail(f"Error while executing task {context_file}: {e.__class__.__name__}: {e}")

    typer.echo(
        f"Task #{context.id} ({context.context_name}) of step {context.step.id}: "
        f"{'Success' if result.success else 'Fail'}"
    )


def _load_run_config(config: Optional[Path], local_config: Optional[Path]) -> dict:
    for path in (config, local_config):
        if path is not None and not path.is_file():
            raise WorkflowConfigurationError(f"Configuration file not found: {path}")

    effective = load_config(defaults_path=DEFAULTS_FILE, local_path=config)
    if local_config is not None:
        effective = deep_merge(effective, load_config(defaults_path=local_config))
    return effective


@app.command("run")
def run_command(
    factory: str = typer.Argument(..., help="Workflow factory, as package.module:function"),
    config: Optional[Path] = typer.Option(None, "--config", help="Configuration file (YAML or JSON)"),
    local_config: Optional[Path] = typer.Option(None, "--local-config", help="Local overrides"),
    job_dir: Optional[Path] = typer.Option(None, "--job-dir", help="Job directory of the run"),
) -> None:
    """Build a workflow from a factory and run it."""
    try:
        effective = _load_run_config(config, local_config)
        configure_logging(get_in(effective, ["engine", "log_level"], "INFO"))

        build = load_reference(factory)
        ctx = RunContext.create(effective, job_dir=job_dir)
        workflow = build(ctx, ModuleRegistry())
        if not isinstance(workflow, Workflow):
            raise WorkflowConfigurationError(
                f"Factory {factory} did not return a Workflow", details={"factory": factory}
            )
    except (ConfigError, AtlasException, UnknownModuleError, ValueError) as e:
        _fail(f"Invalid workflow configuration: {e}")

    previous = {}
    if threading.current_thread() is threading.main_thread():
        def _on_signal(signum, frame):
            typer.secho(f"Signal {signum} received: emergency stop", fg=typer.colors.YELLOW)
            workflow.emergency_stop_tasks.stop()

        for sig in (signal.SIGINT, signal.SIGTERM):
            previous[sig] = signal.signal(sig, _on_signal)

    try:
        result = Engine(workflow=workflow, ctx=ctx).run()
    except (AtlasException, ValueError) as e:
        _fail(f"Invalid workflow configuration: {e}")
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)

    if not result.success:
        _fail(result.message, code=2)

    typer.echo(f"{result.message} ({result.duration_ms} ms)")
