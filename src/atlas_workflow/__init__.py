# src/atlas_workflow/__init__.py
"""
Atlas Workflow — motor de execução de workflows científicos multi-step.

Este pacote raiz define o namespace público do Atlas Workflow, um motor
orientado a estados de Step e propagação de tokens entre portas tipadas.

Princípios centrais:
    - O workflow é um grafo explícito de Steps ligados por portas
    - Um Step só fica pronto quando todas as suas dependências terminaram
    - Tarefas nunca deixam exceções escaparem: sempre produzem um resultado
    - Falhas interrompem o avanço sem propagar falsos sucessos

Arquitetura em alto nível:
    - core.config       → carregamento, merge, hashing e settings de runtime
    - core.pipeline     → tipos, portas, dados, módulos e Steps do grafo
    - core.engine       → máquina de estados, tokens, tarefas e driver
    - core.traceability → Manifest e Event Log da execução
    - cli               → entrypoints de linha de comando

Limites explícitos:
    - Não define módulos concretos de domínio
    - Não interpreta arquivos de workflow ou de design
    - Não submete jobs a clusters externos

Este módulo existe para estabelecer o namespace do Atlas Workflow.
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
