# src/atlas_workflow/core/logs.py
"""
Configuração de logging do Atlas Workflow.

Dois níveis de log coexistem:
    - o logger do pacote (`atlas_workflow`), com saída em console,
      usado por todos os módulos via `logging.getLogger(__name__)`
    - um logger dedicado por tarefa, com um único FileHandler gravando
      `<prefixo da tarefa>.log` no diretório de tarefas da execução

Invariantes:
    - Loggers de tarefa não propagam para o logger do pacote
    - Um handler de tarefa nunca é compartilhado entre tarefas concorrentes
    - `close_task_logger` sempre remove e fecha os handlers da tarefa
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Union

PACKAGE_LOGGER = "atlas_workflow"
LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s [%(threadName)s] %(message)s"
TASK_LOG_FORMAT = "%(asctime)s %(levelname)-8s %(message)s"


def configure_logging(level: Union[int, str] = logging.INFO) -> logging.Logger:
    """Instala (uma vez) o handler de console no logger do pacote."""
    logger = logging.getLogger(PACKAGE_LOGGER)
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    logger.setLevel(level)

    if not any(getattr(h, "_atlas_console", False) for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._atlas_console = True  # type: ignore[attr-defined]
        logger.addHandler(handler)

    return logger


def create_task_logger(
    name: str,
    path: Path,
    level: Union[int, str] = logging.INFO,
) -> logging.Logger:
    """
    Cria o logger isolado de uma tarefa.

    Args:
        name: nome único da tarefa (usado como sufixo do logger).
        path: arquivo de log da tarefa.
        level: nível mínimo registrado.

    Returns:
        logging.Logger: logger não propagante com um único FileHandler.
    """
    logger = logging.getLogger(f"{PACKAGE_LOGGER}.task.{name}")
    logger.propagate = False
    logger.setLevel(level)
    close_task_logger(logger)

    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(str(path), encoding="utf-8")
    handler.setFormatter(logging.Formatter(TASK_LOG_FORMAT))
    logger.addHandler(handler)
    return logger


def close_task_logger(logger: Optional[logging.Logger]) -> None:
    if logger is None:
        return
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
