"""Asyncio client for the PocketIC canister testing server."""

__version__ = "0.1.0"

from .actor import (
    Actor,
    CallKind,
    DeferredActor,
    Identity,
    MethodDescriptor,
    create_actor,
    create_actor_class,
    query,
    service,
    update,
)
from .client import AWAIT_INGRESS_STATUS_ROUNDS, PicClient
from .config import (
    CreateCanisterOptions,
    CreateInstanceOptions,
    FromPathSubnetState,
    InstallCodeOptions,
    NewSubnetState,
    SubnetConfig,
    load_instance_options,
    server_url_from_env,
)
from .errors import (
    AwaitRoundsExhaustedError,
    CanisterCallRejectedError,
    ConfigError,
    DecodeError,
    EncodeError,
    InstanceCreationError,
    InstanceDeletedError,
    PicClientError,
    PicError,
    PrincipalError,
    ServerBusyError,
    ServerConnectionError,
    ServerRequestTimeoutError,
    ServerResponseError,
    TopologyValidationError,
    UnknownStateError,
)
from .http import PicHttpClient
from .management import CanisterLogRecord
from .pocket_ic import CanisterFixture, PocketIc
from .principal import Principal
from .protocol import (
    CanisterCallRequest,
    CanisterCallResponse,
    CanisterEffectivePrincipal,
    CanisterHttpMethod,
    HttpsOutcallRejectResponse,
    HttpsOutcallSuccessResponse,
    InstanceTopology,
    MockPendingHttpsOutcallRequest,
    PendingCall,
    PendingHttpsOutcall,
    SubnetEffectivePrincipal,
    SubnetKind,
    SubnetTopology,
)

__all__ = [
    "AWAIT_INGRESS_STATUS_ROUNDS",
    "Actor",
    "AwaitRoundsExhaustedError",
    "CallKind",
    "CanisterCallRejectedError",
    "CanisterCallRequest",
    "CanisterCallResponse",
    "CanisterEffectivePrincipal",
    "CanisterFixture",
    "CanisterHttpMethod",
    "CanisterLogRecord",
    "ConfigError",
    "CreateCanisterOptions",
    "CreateInstanceOptions",
    "DecodeError",
    "DeferredActor",
    "EncodeError",
    "FromPathSubnetState",
    "HttpsOutcallRejectResponse",
    "HttpsOutcallSuccessResponse",
    "Identity",
    "InstallCodeOptions",
    "InstanceCreationError",
    "InstanceDeletedError",
    "InstanceTopology",
    "MethodDescriptor",
    "MockPendingHttpsOutcallRequest",
    "NewSubnetState",
    "PendingCall",
    "PendingHttpsOutcall",
    "PicClient",
    "PicClientError",
    "PicError",
    "PicHttpClient",
    "PocketIc",
    "Principal",
    "PrincipalError",
    "ServerBusyError",
    "ServerConnectionError",
    "ServerRequestTimeoutError",
    "ServerResponseError",
    "SubnetConfig",
    "SubnetEffectivePrincipal",
    "SubnetKind",
    "SubnetTopology",
    "TopologyValidationError",
    "UnknownStateError",
    "__version__",
    "create_actor",
    "create_actor_class",
    "load_instance_options",
    "query",
    "server_url_from_env",
    "service",
    "update",
]
