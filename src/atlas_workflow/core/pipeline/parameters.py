# src/atlas_workflow/core/pipeline/parameters.py
"""
Parâmetros de Step.

Um parâmetro é um par nome → valor textual. O nome é normalizado
(strip + minúsculas) para que `Threshold` e `threshold` sejam o mesmo
parâmetro; o valor é mantido como string e convertido sob demanda.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, List, Mapping, Tuple, Union

from atlas_workflow.core.exceptions import StepConfigurationError

_TRUE = {"true", "yes", "y", "1", "on"}
_FALSE = {"false", "no", "n", "0", "off"}


@dataclass(frozen=True)
class Parameter:
    name: str
    value: str

    def __post_init__(self) -> None:
        if not isinstance(self.name, str) or not self.name.strip():
            raise StepConfigurationError(
                "Parameter name must be a non-empty string",
                details={"name": repr(self.name)},
            )
        object.__setattr__(self, "name", self.name.strip().lower())
        object.__setattr__(self, "value", "" if self.value is None else str(self.value))

    @property
    def string_value(self) -> str:
        return self.value

    @property
    def int_value(self) -> int:
        try:
            return int(self.value.strip())
        except ValueError as e:
            raise self._invalid("integer") from e

    @property
    def float_value(self) -> float:
        try:
            return float(self.value.strip())
        except ValueError as e:
            raise self._invalid("float") from e

    @property
    def bool_value(self) -> bool:
        v = self.value.strip().lower()
        if v in _TRUE:
            return True
        if v in _FALSE:
            return False
        raise self._invalid("boolean")

    def _invalid(self, expected: str) -> StepConfigurationError:
        return StepConfigurationError(
            f"Invalid {expected} value for parameter '{self.name}': {self.value!r}",
            details={"parameter": self.name, "value": self.value, "expected": expected},
        )


ParametersInput = Union[Mapping[str, Any], Iterable[Parameter], Iterable[Tuple[str, Any]], None]


def build_parameters(raw: ParametersInput) -> List[Parameter]:
    """
    Normaliza parâmetros preservando a ordem de declaração.

    Raises:
        StepConfigurationError: se dois nomes colidirem após a normalização.
    """
    if raw is None:
        return []

    items: Iterable[Any] = raw.items() if isinstance(raw, Mapping) else raw

    result: List[Parameter] = []
    seen = set()
    for item in items:
        p = item if isinstance(item, Parameter) else Parameter(item[0], item[1])
        if p.name in seen:
            raise StepConfigurationError(
                f"Duplicate parameter: {p.name}",
                details={"parameter": p.name},
            )
        seen.add(p.name)
        result.append(p)
    return result
