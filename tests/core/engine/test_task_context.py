# tests/core/engine/test_task_context.py
"""
Testes de TaskContext, TaskStatus e TaskResult.

Os testes asseguram que:
- ids de tarefa são únicos e crescentes
- o nome do contexto é derivado das entradas (com fallback `context<id>`)
- acessos a portas desconhecidas falham de forma tipada
- a serialização restaura o contexto e sobrescreve os Settings do processo
- TaskResult é imutável e TaskStatus acumula contadores e progresso

Limites explícitos:
    - Não executa módulos
"""

import dataclasses
import io

import pytest

try:
    from atlas_workflow.core.config.settings import Settings, get_settings
    from atlas_workflow.core.engine.task import (
        TaskContext,
        TaskStatus,
        create_default_context_name,
    )
    from atlas_workflow.core.exceptions import IllegalStateError, WorkflowRuntimeError
    from atlas_workflow.core.pipeline.data import Data, DataList
    from atlas_workflow.core.pipeline.types import StepState
except Exception as e:  # noqa: BLE001
    Settings = None
    get_settings = None
    TaskContext = None
    TaskStatus = None
    create_default_context_name = None
    IllegalStateError = None
    WorkflowRuntimeError = None
    Data = None
    DataList = None
    StepState = None
    _IMPORT_ERR = e
else:
    _IMPORT_ERR = None


def _require_imports():
    if _IMPORT_ERR is not None:
        pytest.fail(
            "Missing task modules. Implement:\n"
            "- src/atlas_workflow/core/engine/task.py (TaskContext, TaskStatus, TaskResult)\n"
            f"Import error: {_IMPORT_ERR}"
        )


@pytest.fixture
def source_step(make_workflow):
    wf = make_workflow()
    step = wf.create_step("a", "source")
    wf.configure()
    return step


def _output_for(step, name):
    port = step.output_port("out")
    return {"out": Data(name=name, format="txt", files=[port.file_path(name)])}


# -----------------------------
# Identidade e nomes
# -----------------------------
def test_task_ids_are_unique_and_increasing(source_step):
    _require_imports()
    c1 = TaskContext(source_step)
    c2 = TaskContext(source_step)

    assert c2.id > c1.id
    assert c1.context_name == f"context{c1.id}"
    assert c1.task_file_prefix == f"a_task{c1.id}"
    assert c1.task_file(".log").name == f"a_task{c1.id}.log"
    assert c1.task_directory == source_step.workflow.ctx.task_directory


def test_default_context_name_priority():
    """
    Verifica a prioridade do nome derivado das entradas.

    Ordem:
        1. nomes de dados nomeados (distintos)
        2. nomes de arquivos de dados com nome padrão
        3. nomes de listas
    """
    _require_imports()
    named = Data(name="sample1", format="txt")
    default = Data(name="context9", format="txt", files=["/tmp/out_a_context9.txt"], is_default_name=True)
    items = DataList(name="items", format="txt")

    assert create_default_context_name({"x": named, "y": default, "z": items}) == "sample1"
    assert create_default_context_name({"x": named, "y": Data(name="sample1", format="txt")}) == "sample1"
    assert create_default_context_name({"y": default, "z": items}) == "out_a_context9.txt"
    assert create_default_context_name({"z": items}) == "items"
    assert create_default_context_name({}) == ""


# -----------------------------
# Dados
# -----------------------------
def test_unknown_ports_raise_runtime_error(source_step):
    _require_imports()
    ctx = TaskContext(source_step, {}, _output_for(source_step, "s1"))

    assert ctx.get_output_data("OUT").name == "s1"
    with pytest.raises(WorkflowRuntimeError):
        ctx.get_input_data("in")
    with pytest.raises(WorkflowRuntimeError):
        ctx.get_output_data("missing")


def test_update_output_data_requires_same_ports(source_step):
    """
    Verifica que `update_output_data` só aceita exatamente as portas conhecidas.

    Invariantes:
        - Tamanho diferente → IllegalStateError
        - Porta desconhecida → IllegalStateError
        - Mapa compatível substitui os dados de saída
    """
    _require_imports()
    ctx = TaskContext(source_step, {}, _output_for(source_step, "s1"))

    with pytest.raises(IllegalStateError):
        ctx.update_output_data({})
    with pytest.raises(IllegalStateError):
        ctx.update_output_data({"other": Data(name="s1", format="txt")})

    replacement = Data(name="s2", format="txt")
    ctx.update_output_data({"out": replacement})
    assert ctx.get_output_data("out") is replacement


# -----------------------------
# Serialização
# -----------------------------
def test_serialize_round_trip_overwrites_process_settings(source_step, tmp_path):
    """
    Verifica o round-trip do contexto e a sobrescrita dos Settings.

    Decisões arquiteturais:
        - O arquivo carrega o contexto seguido dos Settings do processo
        - Desserializar sobrescreve os Settings do processo atual
        - O Step viaja destacado (sem Workflow), preservando seu estado

    Invariantes:
        - id, nome e dados do contexto sobrevivem ao round-trip
        - A instância de `get_settings()` é preservada (só os campos mudam)
    """
    _require_imports()
    source_step.set_state(StepState.WORKING)
    ctx = TaskContext(source_step, {}, _output_for(source_step, "s1"))

    settings = get_settings()
    settings.debug = True
    settings.set("engine.mode", "local")
    path = ctx.task_file(".context")
    ctx.serialize(path)

    settings.set_settings(Settings())
    assert settings.debug is False

    loaded = TaskContext.deserialize(path)

    assert get_settings() is settings
    assert settings.debug is True
    assert settings.get("engine.mode") == "local"
    assert loaded.id == ctx.id
    assert loaded.context_name == ctx.context_name
    assert loaded.get_output_data("out").name == "s1"
    assert loaded.step.id == "a"
    assert loaded.step.workflow is None
    assert loaded.step.state is StepState.WORKING
    assert loaded.step.module_reference == "tests.fixtures.modules:SourceModule"


def test_deserialize_rejects_foreign_stream():
    _require_imports()
    import pickle

    buf = io.BytesIO()
    pickle.dump({"not": "a context"}, buf)
    pickle.dump(Settings(), buf)
    buf.seek(0)

    with pytest.raises(IllegalStateError):
        TaskContext.deserialize(buf)


def test_output_data_round_trip(source_step, tmp_path):
    _require_imports()
    ctx = TaskContext(source_step, {}, _output_for(source_step, "s1"))
    target = tmp_path / "task.data"
    ctx.serialize_output_data(target)

    other = TaskContext(source_step, {}, _output_for(source_step, "placeholder"))
    other.deserialize_output_data(target)

    assert other.get_output_data("out").name == "s1"


# -----------------------------
# Status e resultado
# -----------------------------
def test_task_status_counters_and_progress(source_step):
    _require_imports()
    status = TaskStatus(TaskContext(source_step))

    status.increment_counter("rows")
    status.increment_counter("rows", 4)
    status.set_counter("files", 2)
    status.set_progress(3.0)
    assert status.progress == 1.0
    status.set_progress_counts(0, 10, 5)
    assert status.progress == pytest.approx(0.5)
    status.set_progress(-1)
    assert status.progress == 0.0

    status.set_description("copy")
    result = status.create_task_result()

    assert result.success
    assert result.counters == {"rows": 5, "files": 2}
    assert result.description == "copy"
    assert result.to_dict()["task_id"] == status.context.id


def test_failed_task_result_carries_exception_and_stack(source_step):
    _require_imports()
    status = TaskStatus(TaskContext(source_step))
    try:
        raise ValueError("broken input")
    except ValueError as e:
        result = status.create_failed_task_result(exception=e)

    assert not result.is_success
    assert result.error_message == "broken input"
    assert isinstance(result.exception, ValueError)
    assert "ValueError: broken input" in result.stack_trace
    assert result.to_dict()["exception"] == "ValueError"


def test_task_result_is_immutable(source_step):
    _require_imports()
    result = TaskStatus(TaskContext(source_step)).create_task_result()

    with pytest.raises(dataclasses.FrozenInstanceError):
        result.success = False
