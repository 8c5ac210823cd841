"""Wire codec for PocketIC server requests and responses.

Every request and response exchanged with the server has a semantic dataclass
and a pair of pure ``encode_*``/``decode_*`` functions converting between it
and the JSON-compatible transport shape. No I/O happens here.

Field encodings are fixed per field:
- identifiers inside bodies are base64 of the raw principal bytes
- subnet ids used as topology keys are canonical principal text
- payloads, stable memory and outcall bodies are base64
- blob ids returned by the blob store are hex text
- message ids and public keys are JSON arrays of byte values
"""

from __future__ import annotations

import base64
import binascii
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, TypeVar

from .config import (
    CreateInstanceOptions,
    FromPathSubnetState,
    NewSubnetState,
    SubnetConfig,
)
from .errors import (
    CanisterCallRejectedError,
    DecodeError,
    EncodeError,
    InstanceCreationError,
    TopologyValidationError,
)
from .principal import Principal

T = TypeVar("T")

NANOS_PER_MILLI = 1_000_000


# -----------------------------------------------------------------------------
# Field helpers
# -----------------------------------------------------------------------------


def base64_encode(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def base64_decode(text: str) -> bytes:
    """Decode strict base64, rejecting anything that is not canonical."""
    if not isinstance(text, str):
        raise DecodeError(f"Expected base64 text, got {type(text).__name__}")
    try:
        return base64.b64decode(text, validate=True)
    except binascii.Error as err:
        raise DecodeError(f"Invalid base64 value: {text!r}") from err


def base64_encode_principal(principal: Principal) -> str:
    return base64_encode(principal.raw)


def base64_decode_principal(text: str) -> Principal:
    return Principal(base64_decode(text))


def hex_decode(text: str) -> bytes:
    try:
        return bytes.fromhex(text.strip())
    except ValueError as err:
        raise DecodeError(f"Invalid hex value: {text!r}") from err


def encode_byte_array(data: bytes) -> list[int]:
    return list(data)


def decode_byte_array(values: Any) -> bytes:
    if not isinstance(values, list):
        raise DecodeError(f"Expected a byte array, got {type(values).__name__}")
    try:
        return bytes(values)
    except (TypeError, ValueError) as err:
        raise DecodeError("Byte array contains values outside 0..255") from err


def optional(value: T | None) -> list[T]:
    """Wrap a value in the zero-or-one-element optional convention."""
    return [] if value is None else [value]


def _field(obj: Any, key: str) -> Any:
    """Return a required JSON field, failing with a decode error."""
    if not isinstance(obj, Mapping):
        raise DecodeError(f"Expected an object with {key!r}, got {type(obj).__name__}")
    try:
        return obj[key]
    except KeyError as err:
        raise DecodeError(f"Missing field {key!r}") from err


def _single_tag(obj: Any, allowed: Sequence[str]) -> tuple[str, Any]:
    """Return the tag and payload of a single-key tagged union object."""
    if not isinstance(obj, Mapping) or len(obj) != 1:
        raise DecodeError(f"Expected one of {list(allowed)}, got {obj!r}")
    tag, payload = next(iter(obj.items()))
    if tag not in allowed:
        raise DecodeError(f"Unknown tag {tag!r}, expected one of {list(allowed)}")
    return tag, payload


# -----------------------------------------------------------------------------
# Effective principal
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class SubnetEffectivePrincipal:
    """Route an operation to a subnet."""

    subnet_id: Principal


@dataclass(frozen=True)
class CanisterEffectivePrincipal:
    """Route an operation to the subnet hosting a canister id."""

    canister_id: Principal


EffectivePrincipal = SubnetEffectivePrincipal | CanisterEffectivePrincipal


def encode_effective_principal(
    effective_principal: EffectivePrincipal | None,
) -> str | dict[str, str]:
    if effective_principal is None:
        return "None"
    if isinstance(effective_principal, SubnetEffectivePrincipal):
        return {"SubnetId": base64_encode_principal(effective_principal.subnet_id)}
    if isinstance(effective_principal, CanisterEffectivePrincipal):
        return {"CanisterId": base64_encode_principal(effective_principal.canister_id)}
    raise EncodeError(f"Unknown effective principal: {effective_principal!r}")


def decode_effective_principal(encoded: Any) -> EffectivePrincipal | None:
    if encoded == "None":
        return None
    tag, payload = _single_tag(encoded, ("SubnetId", "CanisterId"))
    if tag == "SubnetId":
        return SubnetEffectivePrincipal(base64_decode_principal(payload))
    return CanisterEffectivePrincipal(base64_decode_principal(payload))


# -----------------------------------------------------------------------------
# Canister calls
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class CanisterCallRequest:
    """Envelope of a single query or update call."""

    sender: Principal
    canister_id: Principal
    method: str
    payload: bytes
    effective_principal: EffectivePrincipal | None = None


def encode_canister_call_request(req: CanisterCallRequest) -> dict[str, Any]:
    return {
        "sender": base64_encode_principal(req.sender),
        "canister_id": base64_encode_principal(req.canister_id),
        "method": req.method,
        "payload": base64_encode(req.payload),
        "effective_principal": encode_effective_principal(req.effective_principal),
    }


def decode_canister_call_request(encoded: Mapping[str, Any]) -> CanisterCallRequest:
    return CanisterCallRequest(
        sender=base64_decode_principal(_field(encoded, "sender")),
        canister_id=base64_decode_principal(_field(encoded, "canister_id")),
        method=_field(encoded, "method"),
        payload=base64_decode(_field(encoded, "payload")),
        effective_principal=decode_effective_principal(
            encoded.get("effective_principal", "None")
        ),
    )


@dataclass(frozen=True)
class CanisterCallResponse:
    """Successful reply of a query or update call."""

    body: bytes


@dataclass(frozen=True)
class CanisterCallReject:
    """Structured rejection of a query or update call."""

    reject_code: int
    reject_message: str
    error_code: int
    certified: bool

    def to_error(self) -> CanisterCallRejectedError:
        return CanisterCallRejectedError(
            reject_code=self.reject_code,
            reject_message=self.reject_message,
            error_code=self.error_code,
            certified=self.certified,
        )


def encode_call_result(result: Any | CanisterCallReject) -> dict[str, Any]:
    """Wrap an already encoded Ok payload, or a rejection, in the result union."""
    if isinstance(result, CanisterCallReject):
        return {
            "Err": {
                "reject_code": result.reject_code,
                "reject_message": result.reject_message,
                "error_code": result.error_code,
                "certified": result.certified,
            }
        }
    return {"Ok": result}


def decode_call_result(encoded: Any) -> Any:
    """Return the Ok payload of a result union.

    Raises:
        CanisterCallRejectedError: If the result is the ``Err`` variant.
        DecodeError: If the object is not a result union.
    """
    tag, payload = _single_tag(encoded, ("Ok", "Err"))
    if tag == "Err":
        raise CanisterCallReject(
            reject_code=_field(payload, "reject_code"),
            reject_message=_field(payload, "reject_message"),
            error_code=_field(payload, "error_code"),
            certified=_field(payload, "certified"),
        ).to_error()
    return payload


def encode_canister_call_response(
    res: CanisterCallResponse | CanisterCallReject,
) -> dict[str, Any]:
    if isinstance(res, CanisterCallReject):
        return encode_call_result(res)
    return encode_call_result(base64_encode(res.body))


def decode_canister_call_response(encoded: Any) -> CanisterCallResponse:
    return CanisterCallResponse(body=base64_decode(decode_call_result(encoded)))


@dataclass(frozen=True)
class PendingCall:
    """Handle of a submitted update call, presented unchanged to await it."""

    effective_principal: EffectivePrincipal | None
    message_id: bytes


def encode_pending_call(pending: PendingCall) -> dict[str, Any]:
    return {
        "effective_principal": encode_effective_principal(pending.effective_principal),
        "message_id": encode_byte_array(pending.message_id),
    }


def decode_pending_call(encoded: Any) -> PendingCall:
    return PendingCall(
        effective_principal=decode_effective_principal(
            _field(encoded, "effective_principal")
        ),
        message_id=decode_byte_array(_field(encoded, "message_id")),
    )


def encode_submit_call_response(res: PendingCall | CanisterCallReject) -> dict[str, Any]:
    if isinstance(res, CanisterCallReject):
        return encode_call_result(res)
    return encode_call_result(encode_pending_call(res))


def decode_submit_call_response(encoded: Any) -> PendingCall:
    return decode_pending_call(decode_call_result(encoded))


@dataclass(frozen=True)
class IngressStatusRequest:
    pending: PendingCall
    caller: Principal | None = None


def encode_ingress_status_request(req: IngressStatusRequest) -> dict[str, Any]:
    encoded: dict[str, Any] = {"raw_message_id": encode_pending_call(req.pending)}
    if req.caller is not None:
        encoded["raw_caller"] = base64_encode_principal(req.caller)
    return encoded


def decode_ingress_status_request(encoded: Mapping[str, Any]) -> IngressStatusRequest:
    raw_caller = encoded.get("raw_caller")
    return IngressStatusRequest(
        pending=decode_pending_call(_field(encoded, "raw_message_id")),
        caller=None if raw_caller is None else base64_decode_principal(raw_caller),
    )


def decode_ingress_status_response(encoded: Any) -> CanisterCallResponse | None:
    """Decode an ingress status; ``None`` while the call is still pending."""
    if encoded is None:
        return None
    if isinstance(encoded, Mapping) and ("Ok" in encoded or "Err" in encoded):
        return decode_canister_call_response(encoded)
    raise DecodeError(f"Unexpected ingress status response: {encoded!r}")


# -----------------------------------------------------------------------------
# Time
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class SetTimeRequest:
    millis_since_epoch: int


@dataclass(frozen=True)
class GetTimeResponse:
    millis_since_epoch: int


def encode_set_time_request(req: SetTimeRequest) -> dict[str, int]:
    return {"nanos_since_epoch": req.millis_since_epoch * NANOS_PER_MILLI}


def decode_set_time_request(encoded: Mapping[str, Any]) -> SetTimeRequest:
    return SetTimeRequest(_nanos_to_millis(_field(encoded, "nanos_since_epoch")))


def encode_get_time_response(res: GetTimeResponse) -> dict[str, int]:
    return {"nanos_since_epoch": res.millis_since_epoch * NANOS_PER_MILLI}


def decode_get_time_response(encoded: Mapping[str, Any]) -> GetTimeResponse:
    return GetTimeResponse(_nanos_to_millis(_field(encoded, "nanos_since_epoch")))


def _nanos_to_millis(nanos: Any) -> int:
    if isinstance(nanos, bool) or not isinstance(nanos, int):
        raise DecodeError(f"Expected integer nanoseconds, got {nanos!r}")
    # floor: never manufacture sub-millisecond precision
    return nanos // NANOS_PER_MILLI


# -----------------------------------------------------------------------------
# Canister scoped reads and updates
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class CanisterRequest:
    """Request carrying only a canister id (cycles, stable memory, subnet...)."""

    canister_id: Principal


def encode_canister_request(req: CanisterRequest) -> dict[str, str]:
    return {"canister_id": base64_encode_principal(req.canister_id)}


def decode_canister_request(encoded: Mapping[str, Any]) -> CanisterRequest:
    return CanisterRequest(base64_decode_principal(_field(encoded, "canister_id")))


@dataclass(frozen=True)
class AddCyclesRequest:
    canister_id: Principal
    amount: int


def encode_add_cycles_request(req: AddCyclesRequest) -> dict[str, Any]:
    return {
        "canister_id": base64_encode_principal(req.canister_id),
        "amount": req.amount,
    }


def decode_add_cycles_request(encoded: Mapping[str, Any]) -> AddCyclesRequest:
    return AddCyclesRequest(
        canister_id=base64_decode_principal(_field(encoded, "canister_id")),
        amount=_field(encoded, "amount"),
    )


def decode_cycles_response(encoded: Mapping[str, Any]) -> int:
    return _field(encoded, "cycles")


@dataclass(frozen=True)
class SetStableMemoryRequest:
    canister_id: Principal
    blob_id: bytes


def encode_set_stable_memory_request(req: SetStableMemoryRequest) -> dict[str, str]:
    return {
        "canister_id": base64_encode_principal(req.canister_id),
        "blob_id": base64_encode(req.blob_id),
    }


def decode_set_stable_memory_request(
    encoded: Mapping[str, Any],
) -> SetStableMemoryRequest:
    return SetStableMemoryRequest(
        canister_id=base64_decode_principal(_field(encoded, "canister_id")),
        blob_id=base64_decode(_field(encoded, "blob_id")),
    )


def encode_stable_memory_response(blob: bytes) -> dict[str, str]:
    return {"blob": base64_encode(blob)}


def decode_stable_memory_response(encoded: Mapping[str, Any]) -> bytes:
    return base64_decode(_field(encoded, "blob"))


def decode_upload_blob_response(body: str) -> bytes:
    """Decode the hex blob id returned by the blob store."""
    return hex_decode(body)


def encode_subnet_id_response(subnet_id: Principal | None) -> dict[str, str]:
    if subnet_id is None:
        return {}
    return {"subnet_id": base64_encode_principal(subnet_id)}


def decode_subnet_id_response(encoded: Mapping[str, Any] | None) -> Principal | None:
    if not encoded or "subnet_id" not in encoded:
        return None
    return base64_decode_principal(encoded["subnet_id"])


def encode_controllers_response(controllers: Sequence[Principal]) -> list[dict[str, str]]:
    return [{"principal_id": base64_encode_principal(p)} for p in controllers]


def decode_controllers_response(encoded: Any) -> list[Principal]:
    if not isinstance(encoded, list):
        raise DecodeError(f"Expected a controller list, got {encoded!r}")
    return [base64_decode_principal(_field(item, "principal_id")) for item in encoded]


@dataclass(frozen=True)
class GetPubKeyRequest:
    subnet_id: Principal


def encode_get_pub_key_request(req: GetPubKeyRequest) -> dict[str, str]:
    return {"subnet_id": base64_encode_principal(req.subnet_id)}


def decode_get_pub_key_request(encoded: Mapping[str, Any]) -> GetPubKeyRequest:
    return GetPubKeyRequest(base64_decode_principal(_field(encoded, "subnet_id")))


# -----------------------------------------------------------------------------
# Topology
# -----------------------------------------------------------------------------


class SubnetKind(Enum):
    """Kind of a subnet in the instance topology."""

    APPLICATION = "Application"
    BITCOIN = "Bitcoin"
    FIDUCIARY = "Fiduciary"
    INTERNET_IDENTITY = "II"
    NNS = "NNS"
    SNS = "SNS"
    SYSTEM = "System"
    VERIFIED_APPLICATION = "VerifiedApplication"


@dataclass(frozen=True)
class CanisterRange:
    start: Principal
    end: Principal

    def contains(self, canister_id: Principal) -> bool:
        return self.start <= canister_id <= self.end


@dataclass(frozen=True)
class SubnetTopology:
    id: Principal
    kind: SubnetKind
    size: int
    canister_ranges: tuple[CanisterRange, ...] = ()


@dataclass(frozen=True)
class InstanceTopology:
    """Read-only snapshot of the subnets of an instance."""

    subnets: Mapping[str, SubnetTopology]
    default_effective_canister_id: Principal

    def subnets_of_kind(self, kind: SubnetKind) -> list[SubnetTopology]:
        return [subnet for subnet in self.subnets.values() if subnet.kind is kind]

    def subnet_for_canister(self, canister_id: Principal) -> SubnetTopology | None:
        for subnet in self.subnets.values():
            if any(r.contains(canister_id) for r in subnet.canister_ranges):
                return subnet
        return None


def decode_subnet_kind(kind: Any) -> SubnetKind:
    try:
        return SubnetKind(kind)
    except ValueError as err:
        raise DecodeError(f"Unknown subnet kind: {kind!r}") from err


def encode_topology(topology: InstanceTopology) -> dict[str, Any]:
    return {
        "subnet_configs": {
            key: {
                "subnet_kind": subnet.kind.value,
                "size": subnet.size,
                "canister_ranges": [
                    {
                        "start": {"canister_id": base64_encode_principal(r.start)},
                        "end": {"canister_id": base64_encode_principal(r.end)},
                    }
                    for r in subnet.canister_ranges
                ],
            }
            for key, subnet in topology.subnets.items()
        },
        "default_effective_canister_id": {
            "canister_id": base64_encode_principal(topology.default_effective_canister_id)
        },
    }


def decode_topology(encoded: Mapping[str, Any]) -> InstanceTopology:
    """Decode the topology returned by ``/_/topology`` or instance creation."""
    subnets = {}
    for key, subnet in _field(encoded, "subnet_configs").items():
        subnets[key] = SubnetTopology(
            id=Principal.from_text(key),
            kind=decode_subnet_kind(_field(subnet, "subnet_kind")),
            size=_field(subnet, "size"),
            canister_ranges=tuple(
                CanisterRange(
                    start=base64_decode_principal(
                        _field(_field(r, "start"), "canister_id")
                    ),
                    end=base64_decode_principal(_field(_field(r, "end"), "canister_id")),
                )
                for r in _field(subnet, "canister_ranges")
            ),
        )
    return InstanceTopology(
        subnets=subnets,
        default_effective_canister_id=base64_decode_principal(
            _field(_field(encoded, "default_effective_canister_id"), "canister_id")
        ),
    )


@dataclass(frozen=True)
class CreatedInstance:
    instance_id: int
    topology: InstanceTopology


def decode_create_instance_response(encoded: Any) -> CreatedInstance:
    """Decode the instance creation response.

    Raises:
        InstanceCreationError: If the server answered with the ``Error`` variant.
    """
    tag, payload = _single_tag(encoded, ("Created", "Error"))
    if tag == "Error":
        raise InstanceCreationError(_field(payload, "message"))
    return CreatedInstance(
        instance_id=_field(payload, "instance_id"),
        topology=decode_topology(_field(payload, "topology")),
    )


# -----------------------------------------------------------------------------
# HTTPS outcalls
# -----------------------------------------------------------------------------


class CanisterHttpMethod(Enum):
    GET = "GET"
    POST = "POST"
    HEAD = "HEAD"


CanisterHttpHeader = tuple[str, str]


def _encode_headers(headers: Sequence[CanisterHttpHeader]) -> list[dict[str, str]]:
    return [{"name": name, "value": value} for name, value in headers]


def _decode_headers(encoded: Any) -> tuple[CanisterHttpHeader, ...]:
    return tuple((_field(h, "name"), _field(h, "value")) for h in encoded)


@dataclass(frozen=True)
class PendingHttpsOutcall:
    """Outbound request a canister made that awaits a mocked answer."""

    subnet_id: Principal
    request_id: int
    http_method: CanisterHttpMethod
    url: str
    headers: tuple[CanisterHttpHeader, ...] = ()
    body: bytes = b""
    max_response_bytes: int | None = None


def encode_pending_https_outcall(outcall: PendingHttpsOutcall) -> dict[str, Any]:
    encoded: dict[str, Any] = {
        "subnet_id": {"subnet_id": base64_encode_principal(outcall.subnet_id)},
        "request_id": outcall.request_id,
        "http_method": outcall.http_method.value,
        "url": outcall.url,
        "headers": _encode_headers(outcall.headers),
        "body": base64_encode(outcall.body),
    }
    if outcall.max_response_bytes is not None:
        encoded["max_response_bytes"] = outcall.max_response_bytes
    return encoded


def decode_pending_https_outcall(encoded: Mapping[str, Any]) -> PendingHttpsOutcall:
    method = _field(encoded, "http_method")
    try:
        http_method = CanisterHttpMethod(method)
    except ValueError as err:
        raise DecodeError(f"Unknown canister HTTP method: {method!r}") from err

    return PendingHttpsOutcall(
        subnet_id=base64_decode_principal(_field(_field(encoded, "subnet_id"), "subnet_id")),
        request_id=_field(encoded, "request_id"),
        http_method=http_method,
        url=_field(encoded, "url"),
        headers=_decode_headers(_field(encoded, "headers")),
        body=base64_decode(_field(encoded, "body")),
        max_response_bytes=encoded.get("max_response_bytes"),
    )


def decode_pending_https_outcalls(encoded: Any) -> list[PendingHttpsOutcall]:
    if not isinstance(encoded, list):
        raise DecodeError(f"Expected a list of outcalls, got {encoded!r}")
    return [decode_pending_https_outcall(item) for item in encoded]


@dataclass(frozen=True)
class HttpsOutcallSuccessResponse:
    status_code: int
    headers: tuple[CanisterHttpHeader, ...] = ()
    body: bytes = b""


@dataclass(frozen=True)
class HttpsOutcallRejectResponse:
    status_code: int
    message: str


HttpsOutcallResponseMock = HttpsOutcallSuccessResponse | HttpsOutcallRejectResponse


@dataclass(frozen=True)
class MockPendingHttpsOutcallRequest:
    subnet_id: Principal
    request_id: int
    response: HttpsOutcallResponseMock
    additional_responses: tuple[HttpsOutcallResponseMock, ...] = field(default=())


def encode_https_outcall_response(res: HttpsOutcallResponseMock) -> dict[str, Any]:
    if isinstance(res, HttpsOutcallSuccessResponse):
        return {
            "CanisterHttpReply": {
                "status": res.status_code,
                "headers": _encode_headers(res.headers),
                "body": base64_encode(res.body),
            }
        }
    if isinstance(res, HttpsOutcallRejectResponse):
        return {
            "CanisterHttpReject": {
                "reject_code": res.status_code,
                "message": res.message,
            }
        }
    raise EncodeError(f"Unknown outcall response type: {res!r}")


def decode_https_outcall_response(encoded: Any) -> HttpsOutcallResponseMock:
    tag, payload = _single_tag(encoded, ("CanisterHttpReply", "CanisterHttpReject"))
    if tag == "CanisterHttpReply":
        return HttpsOutcallSuccessResponse(
            status_code=_field(payload, "status"),
            headers=_decode_headers(_field(payload, "headers")),
            body=base64_decode(_field(payload, "body")),
        )
    return HttpsOutcallRejectResponse(
        status_code=_field(payload, "reject_code"),
        message=_field(payload, "message"),
    )


def encode_mock_pending_https_outcall_request(
    req: MockPendingHttpsOutcallRequest,
) -> dict[str, Any]:
    return {
        "subnet_id": {"subnet_id": base64_encode_principal(req.subnet_id)},
        "request_id": req.request_id,
        "response": encode_https_outcall_response(req.response),
        "additional_responses": [
            encode_https_outcall_response(r) for r in req.additional_responses
        ],
    }


def decode_mock_pending_https_outcall_request(
    encoded: Mapping[str, Any],
) -> MockPendingHttpsOutcallRequest:
    return MockPendingHttpsOutcallRequest(
        subnet_id=base64_decode_principal(_field(_field(encoded, "subnet_id"), "subnet_id")),
        request_id=_field(encoded, "request_id"),
        response=decode_https_outcall_response(_field(encoded, "response")),
        additional_responses=tuple(
            decode_https_outcall_response(r)
            for r in encoded.get("additional_responses", [])
        ),
    )


# -----------------------------------------------------------------------------
# Instance creation
# -----------------------------------------------------------------------------


def encode_subnet_config(config: SubnetConfig) -> dict[str, Any]:
    if isinstance(config.state, NewSubnetState):
        state_config: str | dict[str, str] = "New"
    elif isinstance(config.state, FromPathSubnetState):
        state_config = {"FromPath": config.state.path}
    else:
        raise EncodeError(f"Unknown subnet state type: {config.state!r}")

    return {
        "dts_flag": "Enabled" if config.enable_deterministic_time_slicing else "Disabled",
        "instruction_config": (
            "Benchmarking" if config.enable_benchmarking_instruction_limits else "Production"
        ),
        "state_config": state_config,
    }


def decode_subnet_config(encoded: Mapping[str, Any]) -> SubnetConfig:
    dts_flag = _field(encoded, "dts_flag")
    instruction_config = _field(encoded, "instruction_config")
    if dts_flag not in ("Enabled", "Disabled"):
        raise DecodeError(f"Unknown dts_flag: {dts_flag!r}")
    if instruction_config not in ("Production", "Benchmarking"):
        raise DecodeError(f"Unknown instruction_config: {instruction_config!r}")

    state_config = _field(encoded, "state_config")
    if state_config == "New":
        state: NewSubnetState | FromPathSubnetState = NewSubnetState()
    else:
        _, path = _single_tag(state_config, ("FromPath",))
        state = FromPathSubnetState(path=path)

    return SubnetConfig(
        state=state,
        enable_deterministic_time_slicing=dts_flag == "Enabled",
        enable_benchmarking_instruction_limits=instruction_config == "Benchmarking",
    )


def encode_create_instance_request(
    options: CreateInstanceOptions | None = None,
) -> dict[str, Any]:
    """Encode the subnet configuration set of a new instance.

    Raises:
        TopologyValidationError: If no subnet at all is configured.
    """
    if options is None:
        options = CreateInstanceOptions(application=(SubnetConfig(),))

    def single(config: SubnetConfig | None) -> dict[str, Any] | None:
        return None if config is None else encode_subnet_config(config)

    subnet_config_set = {
        "nns": single(options.nns),
        "sns": single(options.sns),
        "ii": single(options.ii),
        "fiduciary": single(options.fiduciary),
        "bitcoin": single(options.bitcoin),
        "system": [encode_subnet_config(c) for c in options.system],
        "application": [encode_subnet_config(c) for c in options.application],
        "verified_application": [
            encode_subnet_config(c) for c in options.verified_application
        ],
    }

    has_single = any(
        subnet_config_set[key] is not None
        for key in ("nns", "sns", "ii", "fiduciary", "bitcoin")
    )
    has_many = any(
        subnet_config_set[key]
        for key in ("system", "application", "verified_application")
    )
    if not has_single and not has_many:
        raise TopologyValidationError()

    return {
        "subnet_config_set": subnet_config_set,
        "nonmainnet_features": options.nonmainnet_features,
    }


def decode_create_instance_request(encoded: Mapping[str, Any]) -> CreateInstanceOptions:
    """Inverse of :func:`encode_create_instance_request` (client settings excluded)."""
    subnets = _field(encoded, "subnet_config_set")

    def single(key: str) -> SubnetConfig | None:
        value = subnets.get(key)
        return None if value is None else decode_subnet_config(value)

    def many(key: str) -> tuple[SubnetConfig, ...]:
        return tuple(decode_subnet_config(c) for c in subnets.get(key) or [])

    return CreateInstanceOptions(
        nns=single("nns"),
        sns=single("sns"),
        ii=single("ii"),
        fiduciary=single("fiduciary"),
        bitcoin=single("bitcoin"),
        system=many("system"),
        application=many("application"),
        verified_application=many("verified_application"),
        nonmainnet_features=bool(encoded.get("nonmainnet_features", False)),
    )
