"""Instance and canister configuration.

Subnet configuration is passed through to the server unchanged; this module
only gives it a typed shape and a YAML representation. Configuration is
treated as data, not code.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

import yaml

from .errors import ConfigError
from .principal import Principal

_LOGGER = logging.getLogger(__name__)

PIC_URL_ENV = "PIC_URL"

DEFAULT_PROCESSING_TIMEOUT_MS = 30_000
DEFAULT_CANISTER_CYCLES = 1_000_000_000_000_000_000


class SubnetStateType(Enum):
    """Where a subnet's initial state comes from."""

    NEW = "new"
    FROM_PATH = "fromPath"


@dataclass(frozen=True)
class NewSubnetState:
    type: SubnetStateType = SubnetStateType.NEW


@dataclass(frozen=True)
class FromPathSubnetState:
    path: str
    type: SubnetStateType = SubnetStateType.FROM_PATH


SubnetState = NewSubnetState | FromPathSubnetState


@dataclass(frozen=True)
class SubnetConfig:
    """Configuration of a single subnet.

    Attributes:
        state: Fresh state, or a state directory to restore from.
        enable_deterministic_time_slicing: Maps to the ``dts_flag``.
        enable_benchmarking_instruction_limits: Maps to ``instruction_config``.
    """

    state: SubnetState = field(default_factory=NewSubnetState)
    enable_deterministic_time_slicing: bool = True
    enable_benchmarking_instruction_limits: bool = False


@dataclass(frozen=True)
class CreateInstanceOptions:
    """Subnet topology and client settings of a new instance.

    At least one subnet must be configured. Passing no options at all to
    instance creation requests a single new application subnet instead.
    """

    nns: SubnetConfig | None = None
    sns: SubnetConfig | None = None
    ii: SubnetConfig | None = None
    fiduciary: SubnetConfig | None = None
    bitcoin: SubnetConfig | None = None
    system: tuple[SubnetConfig, ...] = ()
    application: tuple[SubnetConfig, ...] = ()
    verified_application: tuple[SubnetConfig, ...] = ()
    processing_timeout_ms: int = DEFAULT_PROCESSING_TIMEOUT_MS
    nonmainnet_features: bool = False

    @property
    def processing_timeout(self) -> float:
        """Processing timeout in seconds."""
        return self.processing_timeout_ms / 1000


@dataclass(frozen=True)
class CreateCanisterOptions:
    """Settings of a canister created through the management canister."""

    controllers: tuple[Principal, ...] | None = None
    cycles: int = DEFAULT_CANISTER_CYCLES
    compute_allocation: int | None = None
    memory_allocation: int | None = None
    freezing_threshold: int | None = None
    reserved_cycles_limit: int | None = None
    target_canister_id: Principal | None = None
    target_subnet_id: Principal | None = None
    sender: Principal = Principal.anonymous()


@dataclass(frozen=True)
class InstallCodeOptions:
    """Init argument and sender of an install, reinstall or upgrade."""

    arg: bytes = b""
    sender: Principal = Principal.anonymous()


def server_url_from_env(env: Mapping[str, str] | None = None) -> str:
    """Return the server URL published by the process supervisor.

    Raises:
        ConfigError: If ``PIC_URL`` is not set.
    """
    env = os.environ if env is None else env
    url = env.get(PIC_URL_ENV)
    if not url:
        raise ConfigError(f"{PIC_URL_ENV} is not set; start the PocketIC server first")
    return url.rstrip("/")


def _load_yaml(path: Path) -> dict[str, Any]:
    """Load YAML file contents."""
    if not path.exists():
        raise ConfigError(f"File not found: {path}")
    with open(path) as f:
        try:
            return yaml.safe_load(f) or {}
        except yaml.YAMLError as err:
            raise ConfigError(f"Invalid YAML in {path}: {err}") from err


def _parse_subnet(data: Any) -> SubnetConfig:
    if data is None or data == "new":
        return SubnetConfig()
    if not isinstance(data, Mapping):
        raise ConfigError(f"Invalid subnet configuration: {data!r}")

    state_data = data.get("state", "new")
    if state_data == "new":
        state: SubnetState = NewSubnetState()
    elif isinstance(state_data, Mapping) and "from_path" in state_data:
        state = FromPathSubnetState(path=str(state_data["from_path"]))
    else:
        raise ConfigError(f"Invalid subnet state: {state_data!r}")

    return SubnetConfig(
        state=state,
        enable_deterministic_time_slicing=bool(
            data.get("enable_deterministic_time_slicing", True)
        ),
        enable_benchmarking_instruction_limits=bool(
            data.get("enable_benchmarking_instruction_limits", False)
        ),
    )


def _parse_subnet_list(data: Any, key: str) -> tuple[SubnetConfig, ...]:
    if data is None:
        return ()
    if not isinstance(data, list):
        raise ConfigError(f"{key} must be a list of subnets")
    return tuple(_parse_subnet(item) for item in data)


def parse_instance_options(data: Mapping[str, Any]) -> CreateInstanceOptions:
    """Build instance options from a mapping (e.g. parsed YAML)."""
    single = {
        key: _parse_subnet(data[key]) if key in data else None
        for key in ("nns", "sns", "ii", "fiduciary", "bitcoin")
    }
    return CreateInstanceOptions(
        **single,
        system=_parse_subnet_list(data.get("system"), "system"),
        application=_parse_subnet_list(data.get("application"), "application"),
        verified_application=_parse_subnet_list(
            data.get("verified_application"), "verified_application"
        ),
        processing_timeout_ms=int(
            data.get("processing_timeout_ms", DEFAULT_PROCESSING_TIMEOUT_MS)
        ),
        nonmainnet_features=bool(data.get("nonmainnet_features", False)),
    )


def load_instance_options(path: Path) -> CreateInstanceOptions:
    """Load instance options from a YAML file.

    Example:
        processing_timeout_ms: 10000
        nns: {state: new}
        application:
          - state: new
          - state: {from_path: /var/lib/pic/app}
            enable_deterministic_time_slicing: false

    Raises:
        ConfigError: If the file is missing or malformed.
    """
    data = _load_yaml(path)
    if not isinstance(data, Mapping):
        raise ConfigError(f"Instance configuration must be a mapping: {path}")
    options = parse_instance_options(data)
    _LOGGER.debug("Loaded instance options from %s", path)
    return options
