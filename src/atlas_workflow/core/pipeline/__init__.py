# src/atlas_workflow/core/pipeline/__init__.py
"""
Estruturas do grafo do Atlas Workflow.

    - types      → StepType, StepState, ParallelizationMode
    - parameters → parâmetros de Step
    - data       → handles Data / DataList
    - ports      → declarações de portas e portas ligadas de Steps
    - module     → contrato de módulo e capacidades
    - registry   → registro explícito de módulos
    - context    → RunContext da execução
    - step       → WorkflowStep (nó do grafo)
"""
