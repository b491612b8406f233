# src/atlas_workflow/core/pipeline/data.py
"""
Handles de dados que circulam entre Steps.

Um `Data` é um handle opaco: nome, formato, partição, arquivos e
metadados livres. O motor nunca lê o conteúdo dos arquivos; ele apenas
verifica existência, remove saídas de Steps abortados e deriva nomes.

`DataList` agrupa vários `Data` para portas do tipo lista.

Invariantes:
    - `Data` é congelado: em um fan-out o mesmo handle chega a todos os
      Steps a jusante; `metadata` é uma cópia feita na construção e não
      deve ser alterado depois do envio
    - `DataList` é montado pela tarefa produtora; o token leva uma cópia
      (`snapshot()`), e quem a recebe não deve alterá-la
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple


@dataclass(frozen=True)
class Data:
    name: str
    format: str
    part: int = -1
    files: Tuple[Path, ...] = ()
    metadata: Dict[str, Any] = field(default_factory=dict)
    is_default_name: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "files", tuple(Path(f) for f in self.files))
        object.__setattr__(self, "metadata", dict(self.metadata))

    @property
    def is_list(self) -> bool:
        return False

    @property
    def file(self) -> Optional[Path]:
        return self.files[0] if self.files else None

    def file_names(self) -> List[str]:
        return [f.name for f in self.files]

    def existing_files(self) -> List[Path]:
        return [f for f in self.files if f.exists()]

    def iter_data(self) -> Iterator["Data"]:
        yield self


@dataclass
class DataList:
    name: str
    format: str
    elements: List[Data] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)
    is_default_name: bool = False

    @property
    def is_list(self) -> bool:
        return True

    @property
    def files(self) -> List[Path]:
        return [f for d in self.elements for f in d.files]

    def add(self, data: Data) -> None:
        self.elements.append(data)

    def snapshot(self) -> "DataList":
        return DataList(
            name=self.name,
            format=self.format,
            elements=list(self.elements),
            metadata=dict(self.metadata),
            is_default_name=self.is_default_name,
        )

    def file_names(self) -> List[str]:
        return [f.name for f in self.files]

    def existing_files(self) -> List[Path]:
        return [f for f in self.files if f.exists()]

    def iter_data(self) -> Iterator[Data]:
        return iter(list(self.elements))

    def __len__(self) -> int:
        return len(self.elements)
