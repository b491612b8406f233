# tests/conftest.py
"""
Fixtures compartilhados para testes do Atlas Workflow.

Este módulo define fixtures reutilizáveis que fornecem:
- configuração mínima e determinística (intervalos de espera curtos)
- contexto de execução isolado por teste (RunContext em tmp_path)
- registro de módulos de teste (tests/fixtures/modules.py)
- fábrica de workflows, com scheduler real ou de gravação

Decisões arquiteturais:
    - Testes unitários usam o `RecordingScheduler`: tarefas submetidas são
      apenas registradas, e o teste decide quando cada uma termina
    - Testes de ponta a ponta usam o `TaskScheduler` real
    - Os Settings do processo são restaurados após cada teste

Invariantes:
    - Cada workflow criado por teste possui seu próprio diretório de job
    - Nenhuma fixture executa uma run completa

Limites explícitos:
    - Não substitui testes de integração do Engine
"""

from __future__ import annotations

import itertools

import pytest

from atlas_workflow.core.config.settings import get_settings
from atlas_workflow.core.engine.workflow import Workflow
from atlas_workflow.core.pipeline.context import RunContext
from tests.fixtures.modules import register_test_modules


class RecordingScheduler:
    """Scheduler que apenas registra as submissões (nenhuma tarefa roda)."""

    def __init__(self) -> None:
        self.submitted = []
        self.started = False
        self.stopped = False

    def start(self) -> None:
        self.started = True

    def submit(self, context, token_manager):
        self.submitted.append((context, token_manager))
        return None

    def stop(self) -> None:
        self.stopped = True

    def shutdown(self, wait: bool = True) -> None:
        self.stopped = True

    def is_idle(self) -> bool:
        return True

    @property
    def contexts(self):
        return [c for c, _ in self.submitted]


@pytest.fixture
def engine_config() -> dict:
    """Configuração de execução com esperas curtas, adequada a testes."""
    return {
        "engine": {
            "fail_fast": True,
            "poll_interval_seconds": 0.05,
            "max_workers": 4,
            "log_level": "DEBUG",
            "task_join_poll_seconds": 0.01,
        },
        "steps": {},
    }


@pytest.fixture
def run_ctx(tmp_path, engine_config) -> RunContext:
    return RunContext.create(engine_config, job_dir=tmp_path / "job", run_id="run-test-001")


@pytest.fixture
def make_workflow(tmp_path, engine_config):
    """
    Fábrica de workflows isolados.

    Args (da função devolvida):
        config: configuração de execução (padrão: `engine_config`).
        recording: True usa o RecordingScheduler; False usa o TaskScheduler
            real, construído a partir da configuração.
    """
    counter = itertools.count(1)

    def _make(config=None, *, recording: bool = True) -> Workflow:
        n = next(counter)
        ctx = RunContext.create(
            config if config is not None else engine_config,
            job_dir=tmp_path / f"job{n}",
            run_id=f"run-test-{n:03d}",
        )
        scheduler = RecordingScheduler() if recording else None
        return Workflow(ctx, register_test_modules(), scheduler=scheduler)

    return _make


@pytest.fixture(autouse=True)
def _restore_settings():
    snapshot = get_settings().copy()
    yield
    get_settings().set_settings(snapshot)
