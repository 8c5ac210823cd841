"""Tests for instance configuration loading."""

from __future__ import annotations

from pathlib import Path

import pytest

from pic_sdk.config import (
    DEFAULT_PROCESSING_TIMEOUT_MS,
    CreateInstanceOptions,
    FromPathSubnetState,
    NewSubnetState,
    SubnetConfig,
    load_instance_options,
    parse_instance_options,
    server_url_from_env,
)
from pic_sdk.errors import ConfigError


class TestServerUrl:
    def test_from_env(self) -> None:
        assert server_url_from_env({"PIC_URL": "http://127.0.0.1:9000/"}) == (
            "http://127.0.0.1:9000"
        )

    def test_missing(self) -> None:
        with pytest.raises(ConfigError, match="PIC_URL"):
            server_url_from_env({})

    def test_reads_process_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PIC_URL", "http://localhost:1234")
        assert server_url_from_env() == "http://localhost:1234"


class TestInstanceOptions:
    def test_defaults(self) -> None:
        options = CreateInstanceOptions()
        assert options.processing_timeout_ms == DEFAULT_PROCESSING_TIMEOUT_MS
        assert options.processing_timeout == 30.0

    def test_parse(self) -> None:
        options = parse_instance_options(
            {
                "processing_timeout_ms": 5000,
                "nns": "new",
                "application": [
                    {"state": "new"},
                    {
                        "state": {"from_path": "/var/lib/pic/app"},
                        "enable_deterministic_time_slicing": False,
                    },
                ],
            }
        )

        assert options.processing_timeout == 5.0
        assert options.nns == SubnetConfig()
        assert options.sns is None
        assert options.application == (
            SubnetConfig(state=NewSubnetState()),
            SubnetConfig(
                state=FromPathSubnetState("/var/lib/pic/app"),
                enable_deterministic_time_slicing=False,
            ),
        )

    def test_invalid_state(self) -> None:
        with pytest.raises(ConfigError, match="subnet state"):
            parse_instance_options({"nns": {"state": "old"}})

    def test_list_required(self) -> None:
        with pytest.raises(ConfigError, match="application"):
            parse_instance_options({"application": "new"})


class TestLoadYaml:
    def test_load(self, tmp_path: Path) -> None:
        path = tmp_path / "pic.yaml"
        path.write_text(
            "processing_timeout_ms: 10000\n"
            "nonmainnet_features: true\n"
            "ii: {state: new}\n"
            "system:\n"
            "  - state: new\n"
            "    enable_benchmarking_instruction_limits: true\n"
        )

        options = load_instance_options(path)

        assert options.processing_timeout_ms == 10000
        assert options.nonmainnet_features is True
        assert options.ii == SubnetConfig()
        assert options.system == (SubnetConfig(enable_benchmarking_instruction_limits=True),)

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="not found"):
            load_instance_options(tmp_path / "absent.yaml")

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.yaml"
        path.write_text("application: [unclosed\n")
        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_instance_options(path)

    def test_not_a_mapping(self, tmp_path: Path) -> None:
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigError, match="mapping"):
            load_instance_options(path)

    def test_empty_file(self, tmp_path: Path) -> None:
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_instance_options(path) == CreateInstanceOptions()
