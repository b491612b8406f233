# src/atlas_workflow/core/engine/planner.py
"""
Planejador de execução do workflow (DAG).

Este módulo valida a estrutura do grafo de Steps e produz uma ordem
topológica determinística, usada pelo Engine para levar os Steps a
WAITING e para relatórios.

O planner opera exclusivamente em nível estrutural, analisando:
    - identificadores de Steps
    - dependências diretas (mantidas pelo StepStateObserver)
    - formação de ciclos

Decisões arquiteturais:
    - Utiliza ordenação topológica determinística (Kahn modificado)
    - Empates são resolvidos por (prioridade do tipo, número do Step)
    - Erros estruturais são tratados como falhas fatais, antes de
      qualquer tarefa

Invariantes:
    - Nenhum Step aparece antes de suas dependências
    - Todos os Steps aparecem exatamente uma vez
    - O mesmo grafo produz sempre a mesma ordem

Limites explícitos:
    - Não executa Steps
    - Não altera estados
"""

from __future__ import annotations

import heapq
from typing import TYPE_CHECKING, Dict, Iterable, List, Set, Tuple

if TYPE_CHECKING:  # pragma: no cover
    from atlas_workflow.core.pipeline.step import WorkflowStep


class UnknownDependencyError(ValueError):
    """
    Um Step depende de outro Step que não faz parte do conjunto planejado.

    Dependências são sempre explícitas e resolvíveis; o planner não tenta
    inferir ou criar Steps ausentes.
    """


class CycleDetectedError(ValueError):
    """
    O grafo de dependências contém um ciclo.

    Nenhuma ordem válida existe. Em execução, os Steps do ciclo nunca
    chegariam a READY; o planner recusa o grafo antes disso.
    """


def _sort_key(step: "WorkflowStep") -> Tuple[int, int]:
    return (step.type.priority, step.number)


def plan_execution(steps: Iterable["WorkflowStep"]) -> List["WorkflowStep"]:
    """
    Valida e produz a ordem topológica determinística dos Steps.

    Args:
        steps: Steps do workflow.

    Returns:
        List[WorkflowStep]: Steps em ordem de dependência.

    Raises:
        ValueError: id inválido ou duplicado.
        UnknownDependencyError: dependência fora do conjunto.
        CycleDetectedError: ciclo no grafo.
    """
    step_list = list(steps)
    by_number: Dict[int, "WorkflowStep"] = {}
    ids: Set[str] = set()
    for s in step_list:
        sid = getattr(s, "id", None)
        if not isinstance(sid, str) or not sid.strip():
            raise ValueError("step.id must be a non-empty string")
        if sid in ids:
            raise ValueError(f"Duplicate step id: {sid}")
        ids.add(sid)
        by_number[s.number] = s

    incoming_count: Dict[int, int] = {}
    outgoing: Dict[int, List[int]] = {n: [] for n in by_number}
    for n, s in by_number.items():
        required = s.required_steps
        for dep in required:
            if dep.number not in by_number:
                raise UnknownDependencyError(f"Step '{s.id}' depends on unknown step '{dep.id}'")
            outgoing[dep.number].append(n)
        incoming_count[n] = len(required)

    ready: List[Tuple[Tuple[int, int], int]] = [
        (_sort_key(by_number[n]), n) for n, c in incoming_count.items() if c == 0
    ]
    heapq.heapify(ready)
    order: List["WorkflowStep"] = []

    while ready:
        _, n = heapq.heappop(ready)
        order.append(by_number[n])
        for child in outgoing[n]:
            incoming_count[child] -= 1
            if incoming_count[child] == 0:
                heapq.heappush(ready, (_sort_key(by_number[child]), child))

    if len(order) != len(by_number):
        stuck = sorted(by_number[n].id for n, c in incoming_count.items() if c > 0)
        raise CycleDetectedError(f"Cycle detected in step dependency graph: {', '.join(stuck)}")

    return order
