# src/atlas_workflow/core/engine/__init__.py
"""
Engine do Atlas Workflow.

Componentes, das folhas para o topo:
    - state.StepStateObserver     → estado e dependências diretas de um Step
    - token.Token                 → mensagem imutável entre portas
    - task.TaskContext/TaskResult → unidade de trabalho e seu desfecho
    - runner.TaskRunner           → execução isolada de uma tarefa
    - token_manager.TokenManager  → tokens recebidos → tarefas → tokens emitidos
    - scheduler.TaskScheduler     → pool de chamadas gerenciadoras
    - observers                   → observers externos e parada de emergência
    - planner.plan_execution      → validação e ordem determinística do grafo
    - workflow.Workflow           → agregado dono dos Steps de uma run
    - engine.Engine               → laço de execução e RunResult

Os submódulos são importados diretamente (sem reexportação aqui), pois
`pipeline.step` depende de `engine.state`.
"""
