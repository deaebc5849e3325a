
import pytest

from app import build_gateway
from simbridge.config import BridgeConfig
from simbridge.gateway import InMemoryGateway


def test_defaults_match_polling_budgets():
    cfg = BridgeConfig()
    assert cfg.node_ready_attempts == 20
    assert cfg.schedule_attempts == 30
    assert cfg.node_ready_delay_s == 1.0
    assert cfg.extender_url == "http://localhost:8081"


def test_env_overrides_yaml(tmp_path):
    config_file = tmp_path / "bridge.yaml"
    config_file.write_text(
        "extender_url: http://scorer:9000\n"
        "gateway: memory\n"
        "schedule_attempts: 5\n",
        encoding="utf-8",
    )
    cfg = BridgeConfig.from_env({
        "SIMBRIDGE_CONFIG": str(config_file),
        "SIMBRIDGE_SCHEDULE_ATTEMPTS": "7",
        "SIMBRIDGE_SCHEDULE_DELAY_S": "0.25",
        "UNRELATED": "x",
    })
    assert cfg.extender_url == "http://scorer:9000"
    assert cfg.gateway == "memory"
    assert cfg.schedule_attempts == 7
    assert cfg.schedule_delay_s == 0.25
    assert cfg.to_dict()["namespace"] == "default"


@pytest.mark.parametrize("environ", [
    {"SIMBRIDGE_GATEWAY": "nomad"},
    {"SIMBRIDGE_NODE_READY_ATTEMPTS": "0"},
    {"SIMBRIDGE_SCHEDULE_DELAY_S": "-1"},
    {"SIMBRIDGE_PLACEMENT_ATTEMPTS": "many"},
])
def test_invalid_values_rejected(environ):
    with pytest.raises(ValueError):
        BridgeConfig.from_env(environ)


def test_config_file_must_be_mapping(tmp_path):
    config_file = tmp_path / "bridge.yaml"
    config_file.write_text("- just\n- a list\n", encoding="utf-8")
    with pytest.raises(ValueError):
        BridgeConfig.from_env({"SIMBRIDGE_CONFIG": str(config_file)})


def test_build_gateway_by_kind():
    assert build_gateway(BridgeConfig(gateway="none")) is None
    gateway = build_gateway(BridgeConfig(gateway="Memory", namespace="sim"))
    assert isinstance(gateway, InMemoryGateway)
    assert gateway.namespace == "sim"
