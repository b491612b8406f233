# src/atlas_workflow/core/engine/token.py
"""
Tokens: mensagens imutáveis emitidas por portas de saída.

Um token é um token de dado (dado não nulo, sem marca de fim) ou um
token de fim de Step (sem dado, com marca de fim). Cada token recebe um
id único e monotônico do processo; dois tokens construídos com a mesma
origem e o mesmo dado são objetos distintos.

O dado de um token é compartilhado por todos os links da porta de origem.
Um `DataList` é copiado na construção do token, de modo que a tarefa
produtora não altera o que já foi enviado.
"""

from __future__ import annotations

import itertools
import threading
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Optional, Union

from atlas_workflow.core.exceptions import IllegalStateError

if TYPE_CHECKING:  # pragma: no cover
    from atlas_workflow.core.pipeline.data import Data, DataList
    from atlas_workflow.core.pipeline.ports import StepOutputPort

_ids = itertools.count(1)
_ids_lock = threading.Lock()


def _next_id() -> int:
    with _ids_lock:
        return next(_ids)


@dataclass(frozen=True, eq=False)
class Token:
    origin: "StepOutputPort"
    _data: Optional[Union["Data", "DataList"]] = None
    end_of_step: bool = False
    id: int = field(default_factory=_next_id, init=False)

    def __post_init__(self) -> None:
        if self.origin is None:
            raise IllegalStateError("Token origin cannot be None")
        if self.end_of_step and self._data is not None:
            raise IllegalStateError("An end of step token cannot carry data")
        if not self.end_of_step and self._data is None:
            raise IllegalStateError("A data token requires data")
        if self._data is not None and self._data.is_list:
            object.__setattr__(self, "_data", self._data.snapshot())

    @classmethod
    def end_of_step_token(cls, origin: "StepOutputPort") -> "Token":
        return cls(origin, None, True)

    @property
    def is_end_of_step(self) -> bool:
        return self.end_of_step

    @property
    def data(self) -> Union["Data", "DataList"]:
        if self.end_of_step:
            raise IllegalStateError(
                f"End of step token #{self.id} has no data",
                details={"token": self.id, "origin": self.origin.name},
            )
        return self._data

    def __repr__(self) -> str:
        kind = "end_of_step" if self.end_of_step else f"data={getattr(self._data, 'name', None)}"
        return f"Token(#{self.id}, {self.origin!r}, {kind})"
