# src/atlas_workflow/core/config/__init__.py

"""
Camada de configuração do Atlas Workflow.

Este pacote contém as estruturas e utilitários responsáveis por carregar,
mesclar e identificar configurações de execução, além do registro de
settings de runtime do processo.

Responsabilidades do pacote:
    - Carregamento de arquivos de configuração (defaults + overrides locais)
    - Resolução de configuração final via deep-merge determinístico
    - Geração de hash canônico para rastreabilidade
    - Settings de runtime compartilhados com tarefas fora do processo

Invariantes:
    - A configuração final é um dicionário puro (dict)
    - Conflitos estruturais são tratados como erro

Limites explícitos:
    - Não valida semântica de domínio
    - Não executa workflow
"""
