"""End-to-end flows through the facade against an in-memory server."""

from __future__ import annotations

import asyncio
from unittest.mock import patch

import pytest

from pic_sdk import (
    CanisterCallRejectedError,
    CreateCanisterOptions,
    HttpsOutcallSuccessResponse,
    InstanceDeletedError,
    MockPendingHttpsOutcallRequest,
    PocketIc,
    Principal,
    ServerResponseError,
    query,
    service,
    update,
)
from pic_sdk.candid import Nat, Text

from .conftest import BASE_URL
from .fake_pocket_ic import (
    COUNTER_WASM,
    DEFAULT_EFFECTIVE_CANISTER_ID,
    FIXED_VALUE,
    NNS_TOPOLOGY,
    PRICE_URL,
    ROOT_KEY,
    SUBNET,
    FakePocketIcServer,
)

COUNTER = service(
    update("get", [], [Nat]),
    query("get_query", [], [Nat]),
    update("fetch_price", [], [Text]),
)


@pytest.fixture
def server() -> FakePocketIcServer:
    return FakePocketIcServer()


@pytest.fixture
async def pic(server: FakePocketIcServer) -> PocketIc:
    return await PocketIc.create(BASE_URL, session=server.session())


class TestCanisterLifecycle:
    async def test_create_install_call(
        self, pic: PocketIc, server: FakePocketIcServer
    ) -> None:
        """A freshly installed canister answers an update call with its fixed value."""
        canister_id = await pic.create_canister()
        await pic.install_code(canister_id, COUNTER_WASM)
        actor = pic.create_actor(COUNTER, canister_id)

        assert await actor.get() == FIXED_VALUE
        assert server.canisters[canister_id].wasm == COUNTER_WASM
        assert ("GET", "/read_graph/state/1") in server.requests

    async def test_setup_canister(self, pic: PocketIc, server: FakePocketIcServer) -> None:
        fixture = await pic.setup_canister(COUNTER, COUNTER_WASM)

        assert await fixture.actor.get() == FIXED_VALUE
        assert fixture.actor.canister_id == fixture.canister_id
        assert await pic.get_controllers(fixture.canister_id) == [Principal.anonymous()]
        assert await pic.get_canister_subnet_id(fixture.canister_id) == SUBNET

    async def test_create_with_options(
        self, pic: PocketIc, server: FakePocketIcServer
    ) -> None:
        """Settings and a specified id reach the management canister."""
        controller = Principal(b"\x01\x02\x03")
        target = Principal.from_hex("00000000000000070101")

        canister_id = await pic.create_canister(
            CreateCanisterOptions(
                controllers=(controller,),
                cycles=5_000,
                target_canister_id=target,
            )
        )

        assert canister_id == target
        assert server.canisters[target].controllers == [controller]
        assert await pic.get_cycles_balance(target) == 5_000
        assert await pic.add_cycles(target, 1_000) == 6_000

    async def test_default_effective_canister_id(self, pic: PocketIc) -> None:
        assert await pic.get_default_effective_canister_id() == DEFAULT_EFFECTIVE_CANISTER_ID
        subnets = await pic.get_application_subnets()
        assert [s.id for s in subnets] == [SUBNET]

    async def test_reinstall_and_upgrade(
        self, pic: PocketIc, server: FakePocketIcServer
    ) -> None:
        canister_id = await pic.create_canister()
        await pic.install_code(canister_id, COUNTER_WASM)

        with pytest.raises(CanisterCallRejectedError, match="already has a wasm module"):
            await pic.install_code(canister_id, COUNTER_WASM)

        await pic.reinstall_code(canister_id, COUNTER_WASM + b"v2")
        assert server.canisters[canister_id].wasm == COUNTER_WASM + b"v2"
        await pic.upgrade_canister(canister_id, COUNTER_WASM, skip_pre_upgrade=True)
        assert server.canisters[canister_id].wasm == COUNTER_WASM

    async def test_wasm_from_path(self, pic: PocketIc, tmp_path, server) -> None:
        """Wasm files are read off the event loop."""
        wasm_path = tmp_path / "counter.wasm"
        wasm_path.write_bytes(COUNTER_WASM)

        with patch(
            "pic_sdk.pocket_ic.asyncio.to_thread", wraps=asyncio.to_thread
        ) as to_thread:
            fixture = await pic.setup_canister(COUNTER, str(wasm_path))

        to_thread.assert_called_once()
        assert server.canisters[fixture.canister_id].wasm == COUNTER_WASM

    async def test_start_stop_and_logs(self, pic: PocketIc) -> None:
        fixture = await pic.setup_canister(COUNTER, COUNTER_WASM)
        await pic.stop_canister(fixture.canister_id)
        await pic.start_canister(fixture.canister_id)
        await fixture.actor.get()

        logs = await pic.fetch_canister_logs(fixture.canister_id)

        assert [(r.idx, r.content) for r in logs] == [(0, b"get called")]

    async def test_stable_memory(self, pic: PocketIc, server: FakePocketIcServer) -> None:
        """Stable memory is uploaded to the blob store then referenced."""
        canister_id = await pic.create_canister()

        await pic.set_stable_memory(canister_id, b"\x00\xffstate")

        assert ("POST", "/blobstore") in server.requests
        assert await pic.get_stable_memory(canister_id) == b"\x00\xffstate"


class TestInstanceQueries:
    async def test_check_canister_exists(self, pic: PocketIc) -> None:
        canister_id = await pic.create_canister()

        assert await pic.check_canister_exists(canister_id)
        assert not await pic.check_canister_exists(
            Principal.from_hex("0000000000000FFF0101")
        )

    async def test_fetch_root_key(self) -> None:
        """The root key is the public key of the NNS subnet."""
        server = FakePocketIcServer(NNS_TOPOLOGY)
        pic = await PocketIc.create(BASE_URL, session=server.session())

        assert await pic.fetch_root_key() == ROOT_KEY
        assert ("POST", "/instances/0/read/pub_key") in server.requests

    async def test_no_root_key_without_nns(
        self, pic: PocketIc, server: FakePocketIcServer
    ) -> None:
        assert await pic.fetch_root_key() is None
        assert not any(path.endswith("/pub_key") for _, path in server.requests)


class TestRejections:
    async def test_uninstalled_canister(self, pic: PocketIc) -> None:
        """Calling an empty canister surfaces the structured rejection."""
        canister_id = await pic.create_canister()
        actor = pic.create_actor(COUNTER, canister_id)

        with pytest.raises(CanisterCallRejectedError) as exc_info:
            await actor.get()

        assert exc_info.value.reject_code == 5
        assert "no wasm module" in exc_info.value.reject_message

    async def test_unknown_canister_query(self, pic: PocketIc) -> None:
        actor = pic.create_actor(COUNTER, Principal.from_hex("0000000000000FFF0101"))

        with pytest.raises(CanisterCallRejectedError) as exc_info:
            await actor.get_query()

        assert exc_info.value.reject_code == 3
        assert exc_info.value.reject_message


class TestTime:
    async def test_set_time_needs_tick(self, pic: PocketIc) -> None:
        start = await pic.get_time()

        await pic.set_time(start + 5_000)
        assert await pic.get_time() == start
        await pic.tick()
        assert await pic.get_time() == start + 5_000

    async def test_certified_time_is_immediate(self, pic: PocketIc) -> None:
        await pic.set_certified_time(1_700_000_000_000)
        assert await pic.get_time() == 1_700_000_000_000

    async def test_advance_time(self, pic: PocketIc) -> None:
        start = await pic.get_time()

        await pic.advance_time(60_000)
        await pic.tick(2)

        assert await pic.get_time() == start + 60_000


class TestTeardown:
    async def test_teardown_guard(self, pic: PocketIc, server: FakePocketIcServer) -> None:
        """After teardown nothing reaches the server."""
        await pic.tear_down()
        assert server.deleted
        seen = len(server.requests)

        with pytest.raises(InstanceDeletedError):
            await pic.tick()
        with pytest.raises(InstanceDeletedError):
            await pic.create_canister()
        with pytest.raises(InstanceDeletedError):
            await pic.get_time()

        assert len(server.requests) == seen


class TestDeferredOutcall:
    async def test_deferred_call_with_mocked_outcall(
        self, pic: PocketIc, server: FakePocketIcServer
    ) -> None:
        """An in-flight call completes with the mocked outcall response."""
        canister_id = await pic.create_canister()
        await pic.install_code(canister_id, COUNTER_WASM)
        actor = pic.create_deferred_actor(COUNTER, canister_id)

        result = await actor.fetch_price()

        outcalls = []
        for _ in range(5):
            await pic.tick()
            outcalls = await pic.get_pending_https_outcalls()
            if outcalls:
                break
        assert [o.url for o in outcalls] == [PRICE_URL]

        outcall = outcalls[0]
        await pic.mock_pending_https_outcall(
            MockPendingHttpsOutcallRequest(
                subnet_id=outcall.subnet_id,
                request_id=outcall.request_id,
                response=HttpsOutcallSuccessResponse(200, body=b"17.5"),
            )
        )

        assert await result() == "17.5"
        assert await pic.get_pending_https_outcalls() == []

    async def test_mock_unknown_outcall(self, pic: PocketIc) -> None:
        with pytest.raises(ServerResponseError, match="No pending outcall"):
            await pic.mock_pending_https_outcall(
                MockPendingHttpsOutcallRequest(
                    subnet_id=SUBNET,
                    request_id=99,
                    response=HttpsOutcallSuccessResponse(200),
                )
            )
