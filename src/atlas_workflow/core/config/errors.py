# src/atlas_workflow/core/config/errors.py
"""
Exceções canônicas da camada de configuração do Atlas Workflow.

Invariantes:
    - Todas as exceções de configuração herdam de `ConfigError`
    - Nenhuma exceção representa erro de execução de tarefa

Limites explícitos:
    - Não realiza fallback ou recovery
"""


class ConfigError(Exception):
    """Exceção base para erros de carregamento e resolução de configuração."""


class DefaultsNotFoundError(ConfigError):
    """
    O arquivo de configuração base (defaults) não existe.

    Sem defaults não existe configuração efetiva válida; o loader nunca
    tenta inferir ou criar defaults automaticamente.
    """


class UnsupportedConfigFormatError(ConfigError):
    """Extensão de arquivo não suportada (aceitos: .yaml, .yml, .json)."""


class InvalidConfigRootTypeError(ConfigError):
    """O conteúdo raiz do arquivo não é um mapa chave-valor."""


class InvalidConfigContentError(ConfigError):
    """O arquivo existe mas não pôde ser interpretado (YAML/JSON inválido)."""


class ConfigTypeConflictError(ConfigError):
    """
    Conflito de tipos durante o deep-merge.

    Exemplo:
        - base:     {"engine": {"fail_fast": true}}
        - override: {"engine": "DEBUG"}
    """
