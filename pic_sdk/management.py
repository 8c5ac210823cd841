"""Descriptor table of the management canister (``aaaaa-aa``)."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from . import candid
from .actor import query, service, update
from .config import CreateCanisterOptions
from .principal import Principal
from .protocol import optional

MANAGEMENT_CANISTER_ID = Principal.management_canister()

CanisterSettings = candid.Record(
    {
        "controllers": candid.Opt(candid.Vec(candid.PrincipalId)),
        "compute_allocation": candid.Opt(candid.Nat),
        "memory_allocation": candid.Opt(candid.Nat),
        "freezing_threshold": candid.Opt(candid.Nat),
        "reserved_cycles_limit": candid.Opt(candid.Nat),
    }
)

CanisterIdRecord = candid.Record({"canister_id": candid.PrincipalId})

ProvisionalCreateCanisterArgs = candid.Record(
    {
        "amount": candid.Opt(candid.Nat),
        "settings": candid.Opt(CanisterSettings),
        "specified_id": candid.Opt(candid.PrincipalId),
        "sender_canister_version": candid.Opt(candid.Nat64),
    }
)

CanisterInstallMode = candid.Variant(
    {
        "install": candid.Null,
        "reinstall": candid.Null,
        "upgrade": candid.Opt(
            candid.Record({"skip_pre_upgrade": candid.Opt(candid.Bool)})
        ),
    }
)

InstallCodeArgs = candid.Record(
    {
        "mode": CanisterInstallMode,
        "canister_id": candid.PrincipalId,
        "wasm_module": candid.Blob,
        "arg": candid.Blob,
        "sender_canister_version": candid.Opt(candid.Nat64),
    }
)

CanisterLogRecordType = candid.Record(
    {
        "idx": candid.Nat64,
        "timestamp_nanos": candid.Nat64,
        "content": candid.Blob,
    }
)

FetchCanisterLogsResult = candid.Record(
    {"canister_log_records": candid.Vec(CanisterLogRecordType)}
)

MANAGEMENT_SERVICE = service(
    update(
        "provisional_create_canister_with_cycles",
        [ProvisionalCreateCanisterArgs],
        [CanisterIdRecord],
    ),
    update("install_code", [InstallCodeArgs]),
    update("start_canister", [CanisterIdRecord]),
    update("stop_canister", [CanisterIdRecord]),
    query("fetch_canister_logs", [CanisterIdRecord], [FetchCanisterLogsResult]),
)


class InstallMode(Enum):
    INSTALL = "install"
    REINSTALL = "reinstall"
    UPGRADE = "upgrade"


@dataclass(frozen=True)
class CanisterLogRecord:
    """One raw log line written by a canister."""

    idx: int
    timestamp_nanos: int
    content: bytes


def create_canister_args(options: CreateCanisterOptions) -> dict[str, Any]:
    controllers = None if options.controllers is None else list(options.controllers)
    return {
        "amount": [options.cycles],
        "settings": [
            {
                "controllers": optional(controllers),
                "compute_allocation": optional(options.compute_allocation),
                "memory_allocation": optional(options.memory_allocation),
                "freezing_threshold": optional(options.freezing_threshold),
                "reserved_cycles_limit": optional(options.reserved_cycles_limit),
            }
        ],
        "specified_id": optional(options.target_canister_id),
        "sender_canister_version": [],
    }


def install_code_args(
    canister_id: Principal,
    wasm_module: bytes,
    arg: bytes,
    mode: InstallMode,
    *,
    skip_pre_upgrade: bool = False,
) -> dict[str, Any]:
    if mode is InstallMode.UPGRADE:
        encoded_mode: dict[str, Any] = {
            "upgrade": [{"skip_pre_upgrade": [skip_pre_upgrade]}]
        }
    else:
        encoded_mode = {mode.value: None}
    return {
        "mode": encoded_mode,
        "canister_id": canister_id,
        "wasm_module": bytes(wasm_module),
        "arg": bytes(arg),
        "sender_canister_version": [],
    }


def decode_canister_logs(result: Mapping[str, Any]) -> list[CanisterLogRecord]:
    return [
        CanisterLogRecord(
            idx=record["idx"],
            timestamp_nanos=record["timestamp_nanos"],
            content=record["content"],
        )
        for record in result["canister_log_records"]
    ]
