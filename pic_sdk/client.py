"""Session client owning one PocketIC instance.

Each operation encodes its request, performs one exchange through
:class:`~pic_sdk.http.PicHttpClient` and decodes the response. Update calls
are two-phase: submitting admits the message to the simulated network and
awaiting it ticks the network until an ingress status is available.
"""

from __future__ import annotations

import logging
from typing import Any

import aiohttp

from .config import CreateInstanceOptions
from .errors import AwaitRoundsExhaustedError, InstanceDeletedError
from .http import PicHttpClient
from .principal import Principal
from .protocol import (
    AddCyclesRequest,
    CanisterCallRequest,
    CanisterCallResponse,
    CanisterRequest,
    GetPubKeyRequest,
    IngressStatusRequest,
    InstanceTopology,
    MockPendingHttpsOutcallRequest,
    PendingCall,
    PendingHttpsOutcall,
    SetStableMemoryRequest,
    SetTimeRequest,
    decode_byte_array,
    decode_canister_call_response,
    decode_controllers_response,
    decode_create_instance_response,
    decode_cycles_response,
    decode_get_time_response,
    decode_ingress_status_response,
    decode_pending_https_outcalls,
    decode_stable_memory_response,
    decode_subnet_id_response,
    decode_submit_call_response,
    decode_topology,
    decode_upload_blob_response,
    encode_add_cycles_request,
    encode_canister_call_request,
    encode_canister_request,
    encode_create_instance_request,
    encode_get_pub_key_request,
    encode_ingress_status_request,
    encode_mock_pending_https_outcall_request,
    encode_set_stable_memory_request,
    encode_set_time_request,
)

_LOGGER = logging.getLogger(__name__)

AWAIT_INGRESS_STATUS_ROUNDS = 100


class PicClient:
    """Typed operations against one PocketIC instance.

    A client has a single logical owner. It does not serialize concurrent
    calls; the server answers overlapping operations with a busy error.

    Usage:
        client = await PicClient.create("http://127.0.0.1:8080")
        await client.tick()
        millis = await client.get_time()
        await client.delete_instance()
    """

    def __init__(
        self,
        http: PicHttpClient,
        instance_path: str,
        *,
        owned_session: aiohttp.ClientSession | None = None,
        await_rounds: int = AWAIT_INGRESS_STATUS_ROUNDS,
    ) -> None:
        self._http = http
        self._instance_path = instance_path
        self._owned_session = owned_session
        self._await_rounds = await_rounds
        self._is_deleted = False
        self._topology: InstanceTopology | None = None

    @classmethod
    async def create(
        cls,
        url: str,
        options: CreateInstanceOptions | None = None,
        *,
        session: aiohttp.ClientSession | None = None,
    ) -> PicClient:
        """Create a new instance on the server at ``url``.

        Args:
            url: Base URL published by the server process.
            options: Subnet topology and processing timeout. A single
                application subnet is requested when omitted.
            session: Shared aiohttp session. A private one is created (and
                closed on teardown) when omitted.

        Raises:
            TopologyValidationError: If the options configure no subnet.
            InstanceCreationError: If the server refuses to create the instance.
        """
        body = encode_create_instance_request(options)
        timeout = (options or CreateInstanceOptions()).processing_timeout

        owned_session = None
        if session is None:
            session = owned_session = aiohttp.ClientSession()

        http = PicHttpClient(session, url, processing_timeout=timeout)
        try:
            created = decode_create_instance_response(
                await http.json_post("/instances", body)
            )
        except BaseException:
            if owned_session is not None:
                await owned_session.close()
            raise

        _LOGGER.info("Created PocketIC instance %d at %s", created.instance_id, url)
        return cls(
            http, f"/instances/{created.instance_id}", owned_session=owned_session
        )

    @property
    def instance_path(self) -> str:
        return self._instance_path

    @property
    def is_deleted(self) -> bool:
        return self._is_deleted

    async def delete_instance(self) -> None:
        """Tear down the instance; every later operation fails locally."""
        self._assert_instance_not_deleted()

        await self._http.delete(self._instance_path)
        self._is_deleted = True
        _LOGGER.info("Deleted PocketIC instance %s", self._instance_path)
        await self.close()

    async def close(self) -> None:
        """Close the private HTTP session, if this client owns one."""
        if self._owned_session is not None:
            await self._owned_session.close()
            self._owned_session = None

    # -------------------------------------------------------------------------
    # Time
    # -------------------------------------------------------------------------

    async def tick(self) -> None:
        """Advance the instance by one round."""
        self._assert_instance_not_deleted()
        await self._post("/update/tick", {})

    async def get_time(self) -> int:
        """Return the instance time in milliseconds since the epoch."""
        self._assert_instance_not_deleted()
        res = await self._get("/read/get_time")
        return decode_get_time_response(res).millis_since_epoch

    async def set_time(self, millis_since_epoch: int) -> None:
        """Set the instance time; visible after the next tick."""
        self._assert_instance_not_deleted()
        await self._post(
            "/update/set_time", encode_set_time_request(SetTimeRequest(millis_since_epoch))
        )

    async def set_certified_time(self, millis_since_epoch: int) -> None:
        """Set the instance time, immediately visible to queries and reads."""
        self._assert_instance_not_deleted()
        await self._post(
            "/update/set_certified_time",
            encode_set_time_request(SetTimeRequest(millis_since_epoch)),
        )

    # -------------------------------------------------------------------------
    # Canister state
    # -------------------------------------------------------------------------

    async def get_cycles_balance(self, canister_id: Principal) -> int:
        self._assert_instance_not_deleted()
        res = await self._post(
            "/read/get_cycles", encode_canister_request(CanisterRequest(canister_id))
        )
        return decode_cycles_response(res)

    async def add_cycles(self, canister_id: Principal, amount: int) -> int:
        """Top up a canister and return its new balance."""
        self._assert_instance_not_deleted()
        res = await self._post(
            "/update/add_cycles",
            encode_add_cycles_request(AddCyclesRequest(canister_id, amount)),
        )
        return decode_cycles_response(res)

    async def upload_blob(self, blob: bytes) -> bytes:
        """Store a blob on the server and return its id."""
        self._assert_instance_not_deleted()
        return decode_upload_blob_response(await self._http.upload_blob(blob))

    async def set_stable_memory(self, canister_id: Principal, blob_id: bytes) -> None:
        """Replace a canister's stable memory with a previously uploaded blob."""
        self._assert_instance_not_deleted()
        await self._post(
            "/update/set_stable_memory",
            encode_set_stable_memory_request(SetStableMemoryRequest(canister_id, blob_id)),
        )

    async def get_stable_memory(self, canister_id: Principal) -> bytes:
        self._assert_instance_not_deleted()
        res = await self._post(
            "/read/get_stable_memory",
            encode_canister_request(CanisterRequest(canister_id)),
        )
        return decode_stable_memory_response(res)

    async def get_subnet_id(self, canister_id: Principal) -> Principal | None:
        """Return the subnet hosting ``canister_id``, or None if it does not exist."""
        self._assert_instance_not_deleted()
        res = await self._post(
            "/read/get_subnet", encode_canister_request(CanisterRequest(canister_id))
        )
        return decode_subnet_id_response(res)

    async def get_controllers(self, canister_id: Principal) -> list[Principal]:
        self._assert_instance_not_deleted()
        res = await self._post(
            "/read/get_controllers",
            encode_canister_request(CanisterRequest(canister_id)),
        )
        return decode_controllers_response(res)

    async def get_pub_key(self, subnet_id: Principal) -> bytes:
        """Return the threshold public key of a subnet."""
        self._assert_instance_not_deleted()
        res = await self._post(
            "/read/pub_key", encode_get_pub_key_request(GetPubKeyRequest(subnet_id))
        )
        return decode_byte_array(res)

    async def get_topology(self) -> InstanceTopology:
        """Return the instance topology, fetched once per instance."""
        self._assert_instance_not_deleted()
        if self._topology is None:
            self._topology = decode_topology(await self._get("/_/topology"))
        return self._topology

    # -------------------------------------------------------------------------
    # HTTPS outcalls
    # -------------------------------------------------------------------------

    async def get_pending_https_outcalls(self) -> list[PendingHttpsOutcall]:
        self._assert_instance_not_deleted()
        return decode_pending_https_outcalls(await self._get("/read/get_canister_http"))

    async def mock_pending_https_outcall(
        self, req: MockPendingHttpsOutcallRequest
    ) -> None:
        self._assert_instance_not_deleted()
        await self._post(
            "/update/mock_canister_http", encode_mock_pending_https_outcall_request(req)
        )

    # -------------------------------------------------------------------------
    # Canister calls
    # -------------------------------------------------------------------------

    async def query_call(self, req: CanisterCallRequest) -> CanisterCallResponse:
        """Perform a query call in a single round trip.

        Raises:
            CanisterCallRejectedError: If the call was rejected.
        """
        self._assert_instance_not_deleted()
        res = await self._post("/read/query", encode_canister_call_request(req))
        return decode_canister_call_response(res)

    async def submit_call(self, req: CanisterCallRequest) -> PendingCall:
        """Admit an update call without waiting for its execution."""
        self._assert_instance_not_deleted()
        res = await self._post(
            "/update/submit_ingress_message", encode_canister_call_request(req)
        )
        pending = decode_submit_call_response(res)
        _LOGGER.debug(
            "Submitted %s to %s (message %s)",
            req.method,
            req.canister_id,
            pending.message_id.hex(),
        )
        return pending

    async def ingress_status(
        self, req: IngressStatusRequest
    ) -> CanisterCallResponse | None:
        """Return the result of a submitted call, or None while it is pending."""
        self._assert_instance_not_deleted()
        res = await self._post("/read/ingress_status", encode_ingress_status_request(req))
        return decode_ingress_status_response(res)

    async def await_call(self, pending: PendingCall) -> CanisterCallResponse:
        """Tick the instance until a submitted call completes.

        Raises:
            CanisterCallRejectedError: If the call was rejected.
            AwaitRoundsExhaustedError: If no terminal status appeared within
                the round limit.
        """
        self._assert_instance_not_deleted()
        # the caller is not checked: the pending handle came from submit_call
        status_request = IngressStatusRequest(pending=pending)

        for round_number in range(self._await_rounds):
            await self.tick()
            result = await self.ingress_status(status_request)
            if result is not None:
                _LOGGER.debug(
                    "Message %s completed after %d rounds",
                    pending.message_id.hex(),
                    round_number + 1,
                )
                return result

        raise AwaitRoundsExhaustedError(self._await_rounds)

    async def update_call(self, req: CanisterCallRequest) -> CanisterCallResponse:
        """Submit an update call and await its result."""
        self._assert_instance_not_deleted()
        pending = await self.submit_call(req)
        return await self.await_call(pending)

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    async def _post(self, endpoint: str, body: Any = None) -> Any:
        return await self._http.json_post(f"{self._instance_path}{endpoint}", body)

    async def _get(self, endpoint: str) -> Any:
        return await self._http.json_get(f"{self._instance_path}{endpoint}")

    def _assert_instance_not_deleted(self) -> None:
        if self._is_deleted:
            raise InstanceDeletedError()
