# tests/core/engine/test_token_manager.py
"""
Testes do TokenManager (tokens recebidos → tarefas → fim de Step).

Este módulo valida as regras de materialização de tarefas e a regra de
conclusão de um Step.

Os testes asseguram que:
- tokens recebidos antes de `start()` ficam em buffer
- portas escalares casam dados pelo nome
- portas lista esperam o fim de Step e reúnem todos os elementos
- o modo NOT_NEEDED produz uma única tarefa
- um Step sem portas de entrada roda exatamente uma tarefa
- DONE só ocorre com todas as entradas encerradas e nenhuma tarefa em voo
- dados sem par levam o Step a FAILED
- Steps pulados emitem o fim de Step sem tarefas

Decisões arquiteturais:
    - O RecordingScheduler captura as submissões; o teste encerra cada
      tarefa chamando `task_done` como faria o scheduler real

Limites explícitos:
    - Não executa módulos (ver test_task_runner.py)
"""

import pytest

try:
    from atlas_workflow.core.engine.task import TaskStatus
    from atlas_workflow.core.engine.token import Token
    from atlas_workflow.core.exceptions import WorkflowRuntimeError
    from atlas_workflow.core.pipeline.data import Data, DataList
    from atlas_workflow.core.pipeline.types import StepState
except Exception as e:  # noqa: BLE001
    TaskStatus = None
    Token = None
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
            "Missing token manager modules. Implement:\n"
            "- src/atlas_workflow/core/engine/token_manager.py (TokenManager)\n"
            "- src/atlas_workflow/core/engine/task.py (TaskContext, TaskStatus)\n"
            f"Import error: {_IMPORT_ERR}"
        )


# -----------------------------
# Helpers
# -----------------------------
def _post(upstream, port_name, downstream, input_name, data_name=None):
    port = upstream.output_port(port_name)
    if data_name is None:
        token = Token.end_of_step_token(port)
    else:
        token = Token(port, Data(name=data_name, format=port.format))
    downstream.post_token(downstream.input_port(input_name), token)


def _make_ready(step, *dependencies):
    for dep in dependencies:
        dep.set_state(StepState.DONE)
    step.set_state(StepState.WAITING)
    assert step.state is StepState.READY


def _finish(manager, context, success=True):
    status = TaskStatus(context)
    if success:
        result = status.create_task_result()
    else:
        result = status.create_failed_task_result(exception=RuntimeError("module crashed"))
    manager.task_done(context, result)
    return result


def _chain(make_workflow, module="passthrough"):
    wf = make_workflow()
    a = wf.create_step("a", "source")
    b = wf.create_step("b", module)
    c = wf.create_step("c", "passthrough")
    wf.configure()
    wf.connect(a, "out", b, "in")
    wf.connect(b, "out", c, "in")
    return wf, a, b, c


# -----------------------------
# Buffer e casamento
# -----------------------------
def test_tokens_posted_before_start_are_buffered(make_workflow):
    """
    Verifica que tokens recebidos antes do início do manager não se perdem.

    Invariantes:
        - Nenhuma tarefa é submetida antes de `start()`
        - Tokens em buffer são contados como recebidos
        - No início, o buffer gera as tarefas correspondentes
        - Os dados de saída são pré-construídos com o nome do contexto
    """
    _require_imports()
    wf, a, b, _ = _chain(make_workflow)
    manager = wf.token_managers.get_token_manager(b)

    _post(a, "out", b, "in", "s1")

    assert not manager.is_started
    assert wf.scheduler.submitted == []
    assert manager.received_tokens("in") == 1

    _make_ready(b, a)

    contexts = wf.scheduler.contexts
    assert [c.context_name for c in contexts] == ["s1"]
    ctx = contexts[0]
    assert ctx.get_input_data("in").name == "s1"
    out = ctx.get_output_data("out")
    assert out.name == "s1"
    assert out.file == b.output_port("out").file_path("s1")
    assert out.file.name == "out_b_s1.txt"


def test_done_requires_end_of_step_and_no_task_in_flight(make_workflow):
    """
    Verifica a regra de conclusão: DONE só com todas as entradas
    encerradas, nada pendente e nenhuma tarefa em voo.

    Cenário:
        - b recebe s1 e o fim de Step com a tarefa ainda em voo → não conclui
        - a tarefa termina → b vai a DONE e emite o fim de Step para c
        - c, ao ficar READY, conclui sem tarefas
    """
    _require_imports()
    wf, a, b, c = _chain(make_workflow)
    _make_ready(b, a)
    manager = wf.token_managers.get_token_manager(b)

    _post(a, "out", b, "in", "s1")
    _post(a, "out", b, "in")

    assert b.state is StepState.READY
    assert manager.in_flight_tasks == 1

    _finish(manager, wf.scheduler.contexts[0])

    assert b.state is StepState.DONE
    assert manager.is_finished
    assert manager.submitted_tasks == manager.terminated_tasks == 1

    c.set_state(StepState.WAITING)
    assert c.state is StepState.DONE
    assert [ctx.step.id for ctx in wf.scheduler.contexts] == ["b"]


def test_scalar_ports_match_data_by_name(make_workflow):
    """
    Verifica o casamento por nome entre portas escalares.

    Invariantes:
        - Uma tarefa por nome presente em todas as portas escalares
        - A ordem de chegada entre portas não importa
        - Dados sem par aguardam (não são descartados)
    """
    _require_imports()
    wf = make_workflow()
    left = wf.create_step("left_src", "source")
    right = wf.create_step("right_src", "source")
    join = wf.create_step("j", "join")
    wf.configure()
    wf.connect(left, "out", join, "left")
    wf.connect(right, "out", join, "right")
    _make_ready(join, left, right)
    manager = wf.token_managers.get_token_manager(join)

    _post(left, "out", join, "left", "x")
    _post(left, "out", join, "left", "y")
    _post(right, "out", join, "right", "y")

    assert [c.context_name for c in wf.scheduler.contexts] == ["y"]

    _post(right, "out", join, "right", "x")
    contexts = wf.scheduler.contexts
    assert [c.context_name for c in contexts] == ["y", "x"]
    assert contexts[1].get_input_data("left").name == "x"
    assert contexts[1].get_input_data("right").name == "x"

    _post(left, "out", join, "left")
    _post(right, "out", join, "right")
    for ctx in contexts:
        _finish(manager, ctx)

    assert join.state is StepState.DONE


def test_unmatched_data_fails_step(make_workflow):
    """Dados sem par ao final das entradas levam o Step a FAILED."""
    _require_imports()
    wf = make_workflow()
    left = wf.create_step("left_src", "source")
    right = wf.create_step("right_src", "source")
    join = wf.create_step("j", "join")
    wf.configure()
    wf.connect(left, "out", join, "left")
    wf.connect(right, "out", join, "right")
    _make_ready(join, left, right)
    manager = wf.token_managers.get_token_manager(join)

    _post(left, "out", join, "left", "x")
    _post(left, "out", join, "left")
    _post(right, "out", join, "right")

    assert wf.scheduler.submitted == []
    assert join.state is StepState.FAILED
    assert manager.has_failed
    assert "Unmatched" in manager.error
    assert "x" in manager.error


def test_list_port_waits_for_end_of_step(make_workflow):
    """
    Verifica que portas lista reúnem todos os elementos em um DataList.

    Invariantes:
        - Nenhuma tarefa antes do fim de Step da porta lista
        - Uma única tarefa com todos os elementos, na ordem de chegada
    """
    _require_imports()
    wf = make_workflow()
    a = wf.create_step("a", "source")
    coll = wf.create_step("coll", "collector")
    wf.configure()
    wf.connect(a, "out", coll, "items")
    _make_ready(coll, a)

    _post(a, "out", coll, "items", "e1")
    _post(a, "out", coll, "items", "e2")
    assert wf.scheduler.submitted == []

    _post(a, "out", coll, "items")

    contexts = wf.scheduler.contexts
    assert len(contexts) == 1
    items = contexts[0].get_input_data("items")
    assert isinstance(items, DataList)
    assert [d.name for d in items.iter_data()] == ["e1", "e2"]


def test_single_task_mode_runs_once_after_end_of_step(make_workflow):
    _require_imports()
    wf, a, b, _ = _chain(make_workflow, module="single")
    _make_ready(b, a)
    manager = wf.token_managers.get_token_manager(b)

    _post(a, "out", b, "in", "s1")
    assert wf.scheduler.submitted == []

    _post(a, "out", b, "in")
    assert [c.context_name for c in wf.scheduler.contexts] == ["s1"]

    _finish(manager, wf.scheduler.contexts[0])
    assert b.state is StepState.DONE


def test_single_task_mode_rejects_several_elements(make_workflow):
    """No modo NOT_NEEDED, mais de um dado por porta escalar leva o Step a FAILED."""
    _require_imports()
    wf, a, b, _ = _chain(make_workflow, module="single")
    _make_ready(b, a)

    _post(a, "out", b, "in", "s1")
    _post(a, "out", b, "in", "s2")
    _post(a, "out", b, "in")

    assert wf.scheduler.submitted == []
    assert b.state is StepState.FAILED


# -----------------------------
# Steps sem entradas, pulados e falhas
# -----------------------------
def test_step_without_inputs_runs_exactly_one_task(make_workflow):
    _require_imports()
    wf, a, _, _ = _chain(make_workflow)
    manager = wf.token_managers.get_token_manager(a)

    a.set_state(StepState.WAITING)
    manager.start()

    contexts = wf.scheduler.contexts
    assert len(contexts) == 1
    assert contexts[0].context_name == f"context{contexts[0].id}"
    assert contexts[0].get_output_data("out").is_default_name
    assert a.state is StepState.READY

    _finish(manager, contexts[0])
    assert a.state is StepState.DONE


def test_skipped_step_emits_end_of_step_without_tasks(make_workflow):
    """
    Verifica que um Step pulado não roda tarefas e libera os dependentes.

    Invariantes:
        - Nenhuma submissão para o Step pulado
        - O fim de Step chega às portas ligadas
        - O dependente conclui sem tarefas
    """
    _require_imports()
    wf = make_workflow()
    a = wf.create_step("a", "source")
    b = wf.create_step("b", "passthrough", skip=True)
    c = wf.create_step("c", "passthrough")
    wf.configure()
    wf.connect(a, "out", b, "in")
    wf.connect(b, "out", c, "in")

    a.set_state(StepState.DONE)
    b.set_state(StepState.WAITING)
    assert b.state is StepState.DONE

    c.set_state(StepState.WAITING)
    assert c.state is StepState.DONE
    assert wf.scheduler.submitted == []


def test_failed_task_fails_step(make_workflow):
    """
    Verifica que a falha de uma tarefa leva o Step a FAILED.

    Invariantes:
        - `error` guarda a mensagem da primeira falha
        - O evento `task_failed` é registrado no RunContext
        - O fim de Step não é emitido
    """
    _require_imports()
    wf, a, b, c = _chain(make_workflow)
    _make_ready(b, a)
    manager = wf.token_managers.get_token_manager(b)

    _post(a, "out", b, "in", "s1")
    _post(a, "out", b, "in")
    _finish(manager, wf.scheduler.contexts[0], success=False)

    assert b.state is StepState.FAILED
    assert manager.has_failed
    assert manager.error == "module crashed"
    assert [e["event"] for e in wf.ctx.events_for("b") if e.get("event") == "task_failed"] == ["task_failed"]

    c.set_state(StepState.WAITING)
    assert c.state is StepState.WAITING


def test_tokens_after_finish_are_ignored(make_workflow):
    _require_imports()
    wf, a, b, _ = _chain(make_workflow)
    _make_ready(b, a)
    manager = wf.token_managers.get_token_manager(b)
    _post(a, "out", b, "in")
    assert b.state is StepState.DONE

    _post(a, "out", b, "in", "late")

    assert manager.received_tokens("in") == 0
    assert wf.scheduler.submitted == []


def test_post_token_rejects_port_of_other_step(make_workflow):
    _require_imports()
    wf, a, b, c = _chain(make_workflow)
    manager = wf.token_managers.get_token_manager(b)
    token = Token.end_of_step_token(a.output_port("out"))

    with pytest.raises(WorkflowRuntimeError):
        manager.post_token(c.input_port("in"), token)


def test_remove_all_outputs_deletes_produced_files(make_workflow):
    """Arquivos de dados enviados pelo Step são removidos por `remove_all_outputs`."""
    _require_imports()
    wf, a, _, _ = _chain(make_workflow)
    port = a.output_port("out")
    path = port.file_path("s1")
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("x", encoding="utf-8")

    a.send_token(Token(port, Data(name="s1", format="txt", files=[path])))
    manager = wf.token_managers.get_token_manager(a)

    assert manager.sent_tokens("out") == 1
    assert manager.remove_all_outputs() == 1
    assert not path.exists()
