# src/atlas_workflow/core/pipeline/ports.py
"""
Portas tipadas de Steps e seus links.

Dois níveis coexistem:
    - declarações estáticas (`InputPort`, `OutputPort`), expostas pelos
      módulos e agrupadas em `InputPorts` / `OutputPorts`
    - portas de Step (`StepInputPort`, `StepOutputPort`), criadas na
      configuração do Step e ligadas entre si pelo Workflow

Invariantes:
    - Nomes de porta casam `^[a-z][a-z0-9_]*$` após normalização para minúsculas
    - Nomes são únicos dentro de uma coleção
    - Uma porta de entrada possui no máximo um link; uma porta de saída
      pode ter vários (fan-out)
    - Formato e "list-ness" são fixos após a configuração do Step
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Dict, FrozenSet, Iterable, Iterator, List, Optional, Sequence

from atlas_workflow.core.exceptions import WorkflowConfigurationError

if TYPE_CHECKING:  # pragma: no cover
    from .step import WorkflowStep

PORT_NAME_PATTERN = re.compile(r"^[a-z][a-z0-9_]*$")
NO_COMPRESSION = "none"


def normalize_port_name(name: str) -> str:
    if not isinstance(name, str):
        raise WorkflowConfigurationError(
            "Port name must be a string", details={"name": repr(name)}
        )
    normalized = name.strip().lower()
    if not PORT_NAME_PATTERN.match(normalized):
        raise WorkflowConfigurationError(
            f"Invalid port name: {name!r}",
            details={"name": name, "pattern": PORT_NAME_PATTERN.pattern},
            hint="Use apenas letras minúsculas, dígitos e '_' (começando por letra).",
        )
    return normalized


# ---------------------------------------------------------------------------
# Declarações estáticas
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class InputPort:
    name: str
    format: str
    is_list: bool = False
    compressions: FrozenSet[str] = frozenset({NO_COMPRESSION})
    required_in_working_directory: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "name", normalize_port_name(self.name))
        object.__setattr__(self, "compressions", frozenset(c.lower() for c in self.compressions))


@dataclass(frozen=True)
class OutputPort:
    name: str
    format: str
    is_list: bool = False
    compression: str = NO_COMPRESSION

    def __post_init__(self) -> None:
        object.__setattr__(self, "name", normalize_port_name(self.name))
        object.__setattr__(self, "compression", (self.compression or NO_COMPRESSION).lower())


class _Ports:
    def __init__(self, ports: Iterable = ()):
        self._ports: Dict[str, object] = {}
        for p in ports:
            if p.name in self._ports:
                raise WorkflowConfigurationError(
                    f"Duplicate port name: {p.name}", details={"port": p.name}
                )
            self._ports[p.name] = p

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.strip().lower() in self._ports

    def __iter__(self) -> Iterator:
        return iter(self._ports.values())

    def __len__(self) -> int:
        return len(self._ports)

    def names(self) -> List[str]:
        return list(self._ports)

    def get(self, name: str):
        key = name.strip().lower() if isinstance(name, str) else name
        if key not in self._ports:
            raise WorkflowConfigurationError(
                f"Unknown port: {name}", details={"port": name, "known": self.names()}
            )
        return self._ports[key]


class InputPorts(_Ports):
    pass


class OutputPorts(_Ports):
    pass


NO_INPUT_PORTS = InputPorts()
NO_OUTPUT_PORTS = OutputPorts()


# ---------------------------------------------------------------------------
# Portas de Step (com links)
# ---------------------------------------------------------------------------

@dataclass(eq=False)
class StepInputPort:
    step: "WorkflowStep"
    port: InputPort
    link: Optional["StepOutputPort"] = None

    @property
    def name(self) -> str:
        return self.port.name

    @property
    def format(self) -> str:
        return self.port.format

    @property
    def is_list(self) -> bool:
        return self.port.is_list

    def set_link(self, output_port: "StepOutputPort") -> None:
        if self.link is not None:
            raise WorkflowConfigurationError(
                f"Input port {self.step.id}.{self.name} is already linked",
                details={"step": self.step.id, "port": self.name,
                         "linked_to": f"{self.link.step.id}.{self.link.name}"},
            )
        if output_port.format != self.format:
            raise WorkflowConfigurationError(
                f"Format mismatch: {output_port.step.id}.{output_port.name} "
                f"({output_port.format}) -> {self.step.id}.{self.name} ({self.format})",
                details={"output_format": output_port.format, "input_format": self.format},
            )
        if output_port.compression not in self.port.compressions:
            raise WorkflowConfigurationError(
                f"Compression {output_port.compression!r} not accepted by {self.step.id}.{self.name}",
                details={"accepted": sorted(self.port.compressions)},
            )
        self.link = output_port

    def __repr__(self) -> str:
        return f"StepInputPort({self.step.id}.{self.name})"


@dataclass(eq=False)
class StepOutputPort:
    step: "WorkflowStep"
    port: OutputPort
    links: List[StepInputPort] = field(default_factory=list)

    @property
    def name(self) -> str:
        return self.port.name

    @property
    def format(self) -> str:
        return self.port.format

    @property
    def is_list(self) -> bool:
        return self.port.is_list

    @property
    def compression(self) -> str:
        return self.port.compression

    def add_link(self, input_port: StepInputPort) -> None:
        input_port.set_link(self)
        self.links.append(input_port)

    def file_name(self, data_name: str) -> str:
        suffix = "" if self.compression == NO_COMPRESSION else f".{self.compression}"
        return f"{self.name}_{self.step.id}_{data_name}.{self.format}{suffix}"

    def file_path(self, data_name: str) -> Path:
        return self.step.output_directory / self.file_name(data_name)

    def existing_output_files(self) -> List[Path]:
        """
        Arquivos do diretório de saída com o padrão de nome desta porta.

        `out_a_x_s1.txt` casa tanto (`a`, `x_s1`) quanto (`a_x`, `s1`):
        arquivos reivindicados por uma porta homônima de um Step `a_...`
        do mesmo workflow ficam de fora.
        """
        directory = self.step.output_directory
        if not directory.is_dir():
            return []

        prefix = f"{self.name}_{self.step.id}_"
        extension = self.file_name("")[len(prefix):]
        workflow = self.step.workflow
        shadowing = [
            f"{self.name}_{other.id}_"
            for other in (workflow.steps if workflow is not None else [])
            if other is not self.step
            and other.id.startswith(f"{self.step.id}_")
            and self.name in other.output_ports
        ]
        return sorted(
            p for p in directory.glob(f"{prefix}*{extension}")
            if not any(p.name.startswith(s) for s in shadowing)
        )

    def is_all_links_to_skipped_steps(self) -> bool:
        """Verdadeiro quando nenhum consumidor desta porta será executado."""
        return all(link.step.skip for link in self.links)

    def __repr__(self) -> str:
        return f"StepOutputPort({self.step.id}.{self.name})"


def bind_input_ports(step: "WorkflowStep", ports: Sequence[InputPort]) -> Dict[str, StepInputPort]:
    return {p.name: StepInputPort(step=step, port=p) for p in ports}


def bind_output_ports(step: "WorkflowStep", ports: Sequence[OutputPort]) -> Dict[str, StepOutputPort]:
    return {p.name: StepOutputPort(step=step, port=p) for p in ports}
