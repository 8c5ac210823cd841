"""High level entry point for driving a PocketIC instance from tests.

Usage:
    pic = await PocketIc.create()
    fixture = await pic.setup_canister(COUNTER_SERVICE, "counter.wasm")
    assert await fixture.actor.increment() == 1
    await pic.tear_down()
"""

from __future__ import annotations

import asyncio
import logging
import os
import time
from pathlib import Path
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

import aiohttp

from .actor import Actor, MethodDescriptor, create_actor
from .client import PicClient
from .config import (
    CreateCanisterOptions,
    CreateInstanceOptions,
    InstallCodeOptions,
    server_url_from_env,
)
from .management import (
    MANAGEMENT_CANISTER_ID,
    MANAGEMENT_SERVICE,
    CanisterLogRecord,
    InstallMode,
    create_canister_args,
    decode_canister_logs,
    install_code_args,
)
from .principal import Principal
from .protocol import (
    CanisterEffectivePrincipal,
    EffectivePrincipal,
    InstanceTopology,
    MockPendingHttpsOutcallRequest,
    PendingHttpsOutcall,
    SubnetEffectivePrincipal,
    SubnetKind,
    SubnetTopology,
)

_LOGGER = logging.getLogger(__name__)

Wasm = bytes | str | os.PathLike[str]


@dataclass(frozen=True)
class CanisterFixture:
    """A freshly installed canister and an actor bound to it."""

    actor: Actor
    canister_id: Principal


async def _read_wasm(wasm: Wasm) -> bytes:
    if isinstance(wasm, (bytes, bytearray, memoryview)):
        return bytes(wasm)
    return await asyncio.to_thread(Path(wasm).read_bytes)


class PocketIc:
    """Canister lifecycle, time and state helpers over one instance."""

    def __init__(self, client: PicClient) -> None:
        self._client = client
        self._management = create_actor(MANAGEMENT_SERVICE, MANAGEMENT_CANISTER_ID, client)

    @classmethod
    async def create(
        cls,
        url: str | None = None,
        options: CreateInstanceOptions | None = None,
        *,
        session: aiohttp.ClientSession | None = None,
    ) -> PocketIc:
        """Create a new instance.

        Args:
            url: Server URL; read from ``PIC_URL`` when omitted.
            options: Subnet topology and processing timeout.
            session: Shared aiohttp session.
        """
        if url is None:
            url = server_url_from_env()
        client = await PicClient.create(url, options, session=session)
        return cls(client)

    @property
    def client(self) -> PicClient:
        return self._client

    async def tear_down(self) -> None:
        """Delete the instance. Any later call raises ``InstanceDeletedError``."""
        await self._client.delete_instance()

    # -------------------------------------------------------------------------
    # Canisters
    # -------------------------------------------------------------------------

    def create_actor(
        self, service: Mapping[str, MethodDescriptor], canister_id: Principal
    ) -> Actor:
        return create_actor(service, canister_id, self._client)

    def create_deferred_actor(
        self, service: Mapping[str, MethodDescriptor], canister_id: Principal
    ) -> Actor:
        """Actor whose methods submit immediately and return an awaitable result."""
        return create_actor(service, canister_id, self._client, deferred=True)

    async def setup_canister(
        self,
        service: Mapping[str, MethodDescriptor],
        wasm: Wasm,
        create_options: CreateCanisterOptions | None = None,
        install_options: InstallCodeOptions | None = None,
    ) -> CanisterFixture:
        """Create a canister, install ``wasm`` into it and build its actor."""
        canister_id = await self.create_canister(create_options)
        await self.install_code(canister_id, wasm, install_options)
        return CanisterFixture(self.create_actor(service, canister_id), canister_id)

    async def create_canister(
        self, options: CreateCanisterOptions | None = None
    ) -> Principal:
        """Create an empty canister funded with ``options.cycles``.

        It is placed at ``options.target_canister_id`` if given, else on
        ``options.target_subnet_id``, else next to the default effective
        canister id of the instance.
        """
        options = options or CreateCanisterOptions()
        effective_principal = await self._create_effective_principal(options)

        self._management.set_principal(options.sender)
        result = await self._management.call(
            "provisional_create_canister_with_cycles",
            create_canister_args(options),
            effective_principal=effective_principal,
        )
        canister_id = result["canister_id"]
        _LOGGER.info("Created canister %s", canister_id)
        return canister_id

    async def _create_effective_principal(
        self, options: CreateCanisterOptions
    ) -> EffectivePrincipal:
        if options.target_canister_id is not None:
            return CanisterEffectivePrincipal(options.target_canister_id)
        if options.target_subnet_id is not None:
            return SubnetEffectivePrincipal(options.target_subnet_id)
        return CanisterEffectivePrincipal(await self.get_default_effective_canister_id())

    async def install_code(
        self,
        canister_id: Principal,
        wasm: Wasm,
        options: InstallCodeOptions | None = None,
    ) -> None:
        """Install ``wasm`` into an empty canister."""
        await self._install(canister_id, wasm, options, InstallMode.INSTALL)

    async def reinstall_code(
        self,
        canister_id: Principal,
        wasm: Wasm,
        options: InstallCodeOptions | None = None,
    ) -> None:
        """Replace the code and wipe both heap and stable memory."""
        await self._install(canister_id, wasm, options, InstallMode.REINSTALL)

    async def upgrade_canister(
        self,
        canister_id: Principal,
        wasm: Wasm,
        options: InstallCodeOptions | None = None,
        *,
        skip_pre_upgrade: bool = False,
    ) -> None:
        """Replace the code, keeping stable memory."""
        await self._install(
            canister_id, wasm, options, InstallMode.UPGRADE, skip_pre_upgrade=skip_pre_upgrade
        )

    async def _install(
        self,
        canister_id: Principal,
        wasm: Wasm,
        options: InstallCodeOptions | None,
        mode: InstallMode,
        *,
        skip_pre_upgrade: bool = False,
    ) -> None:
        options = options or InstallCodeOptions()
        self._management.set_principal(options.sender)
        await self._management.call(
            "install_code",
            install_code_args(
                canister_id,
                await _read_wasm(wasm),
                options.arg,
                mode,
                skip_pre_upgrade=skip_pre_upgrade,
            ),
            effective_principal=CanisterEffectivePrincipal(canister_id),
        )
        _LOGGER.debug("%s code on %s", mode.value.capitalize(), canister_id)

    async def start_canister(
        self, canister_id: Principal, sender: Principal = Principal.anonymous()
    ) -> None:
        await self._canister_call("start_canister", canister_id, sender)

    async def stop_canister(
        self, canister_id: Principal, sender: Principal = Principal.anonymous()
    ) -> None:
        await self._canister_call("stop_canister", canister_id, sender)

    async def fetch_canister_logs(
        self, canister_id: Principal, sender: Principal = Principal.anonymous()
    ) -> list[CanisterLogRecord]:
        """Return the raw log records of a canister."""
        result = await self._canister_call("fetch_canister_logs", canister_id, sender)
        return decode_canister_logs(result)

    async def _canister_call(
        self, method: str, canister_id: Principal, sender: Principal
    ) -> Any:
        self._management.set_principal(sender)
        return await self._management.call(
            method,
            {"canister_id": canister_id},
            effective_principal=CanisterEffectivePrincipal(canister_id),
        )

    # -------------------------------------------------------------------------
    # Time
    # -------------------------------------------------------------------------

    async def tick(self, times: int = 1) -> None:
        for _ in range(times):
            await self._client.tick()

    async def get_time(self) -> int:
        """Milliseconds since the Unix epoch."""
        return await self._client.get_time()

    async def set_time(self, millis_since_epoch: int) -> None:
        """Set the time; it becomes visible after the next tick."""
        await self._client.set_time(millis_since_epoch)

    async def set_certified_time(self, millis_since_epoch: int) -> None:
        await self._client.set_certified_time(millis_since_epoch)

    async def reset_time(self) -> None:
        """Set the instance time to the wall clock."""
        await self.set_time(int(time.time() * 1000))

    async def advance_time(self, duration_ms: int) -> None:
        current = await self.get_time()
        await self.set_time(current + duration_ms)

    # -------------------------------------------------------------------------
    # Canister state
    # -------------------------------------------------------------------------

    async def get_cycles_balance(self, canister_id: Principal) -> int:
        return await self._client.get_cycles_balance(canister_id)

    async def add_cycles(self, canister_id: Principal, amount: int) -> int:
        """Top up a canister; returns the new balance."""
        return await self._client.add_cycles(canister_id, amount)

    async def set_stable_memory(self, canister_id: Principal, data: bytes) -> None:
        """Upload ``data`` to the blob store and make it the stable memory."""
        blob_id = await self._client.upload_blob(data)
        await self._client.set_stable_memory(canister_id, blob_id)

    async def get_stable_memory(self, canister_id: Principal) -> bytes:
        return await self._client.get_stable_memory(canister_id)

    async def get_controllers(self, canister_id: Principal) -> list[Principal]:
        return await self._client.get_controllers(canister_id)

    async def get_canister_subnet_id(self, canister_id: Principal) -> Principal | None:
        return await self._client.get_subnet_id(canister_id)

    async def check_canister_exists(self, canister_id: Principal) -> bool:
        """True when a subnet of the instance hosts ``canister_id``."""
        return await self.get_canister_subnet_id(canister_id) is not None

    # -------------------------------------------------------------------------
    # Topology
    # -------------------------------------------------------------------------

    async def get_topology(self) -> InstanceTopology:
        return await self._client.get_topology()

    async def get_default_effective_canister_id(self) -> Principal:
        return (await self.get_topology()).default_effective_canister_id

    async def get_application_subnets(self) -> list[SubnetTopology]:
        return (await self.get_topology()).subnets_of_kind(SubnetKind.APPLICATION)

    async def get_pub_key(self, subnet_id: Principal) -> bytes:
        return await self._client.get_pub_key(subnet_id)

    async def fetch_root_key(self) -> bytes | None:
        """Return the public key of the NNS subnet, or None without one.

        This is the key agents verify certificates against.
        """
        nns = (await self.get_topology()).subnets_of_kind(SubnetKind.NNS)
        if not nns:
            return None
        return await self.get_pub_key(nns[0].id)

    # -------------------------------------------------------------------------
    # HTTPS outcalls
    # -------------------------------------------------------------------------

    async def get_pending_https_outcalls(self) -> list[PendingHttpsOutcall]:
        return await self._client.get_pending_https_outcalls()

    async def mock_pending_https_outcall(
        self, req: MockPendingHttpsOutcallRequest
    ) -> None:
        """Answer a pending outcall on behalf of the remote server."""
        await self._client.mock_pending_https_outcall(req)
