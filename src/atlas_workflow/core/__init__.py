# src/atlas_workflow/core/__init__.py
"""
Core do Atlas Workflow.

Componentes principais:
    - config       → resolução de configuração e settings de runtime
    - pipeline     → estruturas do grafo (Steps, portas, dados, módulos)
    - engine       → máquina de estados, token managers, tarefas e driver
    - traceability → Manifest e Event Log para auditoria

Princípios fundamentais:
    - Nenhuma decisão silenciosa: todo comportamento é explícito e testado
    - Registries são objetos injetados, nunca singletons globais
    - Concorrência coordenada por locks explícitos por Step
"""
