# tests/core/config/test_config_loader.py
"""
Testes do carregador de configuração (load_config).

Os testes asseguram que:
- o arquivo defaults é obrigatório
- o arquivo local é opcional
- YAML e JSON são aceitos; outros formatos são rejeitados
- estruturas inválidas são detectadas precocemente
- o `defaults.yaml` do pacote define a seção `engine`

Decisões arquiteturais:
    - Defaults representam a base canônica do motor
    - Configuração local atua apenas como override explícito

Invariantes:
    - A configuração final é sempre um dicionário
    - Nenhuma configuração parcial é retornada em caso de erro
"""

import json
from pathlib import Path

import pytest

try:
    from atlas_workflow.core.config.errors import (
        DefaultsNotFoundError,
        InvalidConfigContentError,
        InvalidConfigRootTypeError,
        UnsupportedConfigFormatError,
    )
    from atlas_workflow.core.config.loader import load_config, load_default_config
except Exception as e:  # noqa: BLE001
    DefaultsNotFoundError = None
    InvalidConfigContentError = None
    InvalidConfigRootTypeError = None
    UnsupportedConfigFormatError = None
    load_config = None
    load_default_config = None
    _IMPORT_ERR = e
else:
    _IMPORT_ERR = None


DEFAULTS_YAML = """\
engine:
  fail_fast: true
  poll_interval_seconds: 0.5
  max_workers: 4
  log_level: INFO
steps:
  a:
    enabled: true
  b:
    enabled: true
"""

LOCAL_YAML = """\
engine:
  log_level: DEBUG
  max_workers: 2
steps:
  b:
    enabled: false
"""


def _require_imports():
    """
    Garante que o loader de configuração e suas exceções tipadas estejam disponíveis.

    Decisões arquiteturais:
        - Falha antecipada e explícita quando contratos do loader estão ausentes
        - Não tenta fallback nem implementação alternativa
    """
    if _IMPORT_ERR is not None:
        pytest.fail(
            "Missing loader/errors modules. Implement:\n"
            "- src/atlas_workflow/core/config/loader.py (load_config)\n"
            "- src/atlas_workflow/core/config/errors.py (typed exceptions)\n"
            f"Import error: {_IMPORT_ERR}"
        )


@pytest.fixture
def defaults_file(tmp_path: Path) -> Path:
    path = tmp_path / "defaults.yaml"
    path.write_text(DEFAULTS_YAML, encoding="utf-8")
    return path


def test_missing_defaults_raises(tmp_path: Path):
    _require_imports()
    with pytest.raises(DefaultsNotFoundError):
        load_config(defaults_path=str(tmp_path / "defaults.yaml"), local_path=None)


def test_missing_local_is_ok(tmp_path: Path, defaults_file: Path):
    """
    Verifica que a ausência do arquivo local não é tratada como erro.

    Invariantes:
        - Valores definidos no defaults são preservados integralmente
    """
    _require_imports()
    out = load_config(defaults_path=defaults_file, local_path=tmp_path / "local.yaml")

    assert out["engine"]["fail_fast"] is True
    assert out["engine"]["log_level"] == "INFO"
    assert out["steps"]["b"]["enabled"] is True


def test_load_defaults_and_local(tmp_path: Path, defaults_file: Path):
    """
    Verifica o merge defaults + local.

    Invariantes:
        - Overrides locais têm precedência sobre defaults
        - Chaves não sobrescritas permanecem inalteradas
    """
    _require_imports()
    local = tmp_path / "local.yaml"
    local.write_text(LOCAL_YAML, encoding="utf-8")

    out = load_config(defaults_path=defaults_file, local_path=local)

    assert out["engine"]["log_level"] == "DEBUG"
    assert out["engine"]["max_workers"] == 2
    assert out["engine"]["fail_fast"] is True
    assert out["steps"]["a"]["enabled"] is True
    assert out["steps"]["b"]["enabled"] is False


def test_json_local_override(tmp_path: Path, defaults_file: Path):
    _require_imports()
    local = tmp_path / "local.json"
    local.write_text(json.dumps({"engine": {"fail_fast": False}}), encoding="utf-8")

    out = load_config(defaults_path=defaults_file, local_path=local)

    assert out["engine"]["fail_fast"] is False


def test_empty_file_is_an_empty_mapping(tmp_path: Path):
    _require_imports()
    defaults = tmp_path / "defaults.yml"
    defaults.write_text("", encoding="utf-8")

    assert load_config(defaults_path=defaults) == {}


def test_invalid_root_type_raises(tmp_path: Path):
    _require_imports()
    defaults = tmp_path / "defaults.yaml"
    defaults.write_text("- just\n- a\n- list\n", encoding="utf-8")

    with pytest.raises(InvalidConfigRootTypeError):
        load_config(defaults_path=defaults)


def test_invalid_content_raises(tmp_path: Path):
    _require_imports()
    defaults = tmp_path / "defaults.json"
    defaults.write_text("{not json", encoding="utf-8")

    with pytest.raises(InvalidConfigContentError):
        load_config(defaults_path=defaults)


def test_unsupported_extension_raises(tmp_path: Path):
    _require_imports()
    defaults = tmp_path / "defaults.toml"
    defaults.write_text("engine = { fail_fast = true }\n", encoding="utf-8")

    with pytest.raises(UnsupportedConfigFormatError):
        load_config(defaults_path=defaults)


def test_packaged_defaults_define_engine_section(tmp_path: Path):
    """
    Verifica o `defaults.yaml` distribuído com o pacote.

    Invariantes:
        - Todas as chaves lidas pelo Engine e pelo scheduler existem
        - `steps` começa vazio
    """
    _require_imports()
    out = load_default_config(tmp_path / "missing-local.yaml")

    assert set(out["engine"]) >= {
        "fail_fast",
        "poll_interval_seconds",
        "max_workers",
        "log_level",
        "task_join_poll_seconds",
    }
    assert out["steps"] == {}
