"""Callable canister proxies built from a method descriptor table.

A service is described once as a mapping of method name to
:class:`MethodDescriptor`. :func:`create_actor_class` turns that table into an
:class:`Actor` subclass with one coroutine method per entry, so calls read as
``await actor.greet("world")`` without any attribute lookup at call time.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, ClassVar, Protocol

from . import candid
from .principal import Principal
from .protocol import CanisterCallRequest, CanisterEffectivePrincipal, EffectivePrincipal

if TYPE_CHECKING:
    from .client import PicClient

_LOGGER = logging.getLogger(__name__)

DeferredResult = Callable[[], Awaitable[Any]]


class CallKind(Enum):
    QUERY = "query"
    UPDATE = "update"


class Identity(Protocol):
    """Anything that can name the sender of a call."""

    def get_principal(self) -> Principal: ...


@dataclass(frozen=True)
class MethodDescriptor:
    """Argument types, result types and call kind of one canister method."""

    name: str
    arg_types: tuple[candid.CandidType, ...] = ()
    result_types: tuple[candid.CandidType, ...] = ()
    kind: CallKind = CallKind.UPDATE

    def encode_args(self, args: Sequence[Any]) -> bytes:
        return candid.encode(self.arg_types, args)

    def decode_result(self, body: bytes) -> Any:
        """Decode a reply: no value, a single value, or a tuple of values."""
        values = candid.decode(self.result_types, body)
        if not values:
            return None
        if len(values) == 1:
            return values[0]
        return tuple(values)


def query(
    name: str,
    args: Sequence[candid.CandidType] = (),
    results: Sequence[candid.CandidType] = (),
) -> MethodDescriptor:
    return MethodDescriptor(name, tuple(args), tuple(results), CallKind.QUERY)


def update(
    name: str,
    args: Sequence[candid.CandidType] = (),
    results: Sequence[candid.CandidType] = (),
) -> MethodDescriptor:
    return MethodDescriptor(name, tuple(args), tuple(results), CallKind.UPDATE)


def service(*methods: MethodDescriptor) -> dict[str, MethodDescriptor]:
    """Build a descriptor table keyed by method name."""
    table: dict[str, MethodDescriptor] = {}
    for method in methods:
        if method.name in table:
            raise ValueError(f"Duplicate method {method.name!r}")
        table[method.name] = method
    return table


class Actor:
    """Proxy for one canister.

    Calls are sent as the anonymous principal until :meth:`set_principal` or
    :meth:`set_identity` changes the sender for every later call.
    """

    service: ClassVar[Mapping[str, MethodDescriptor]] = {}

    def __init__(self, canister_id: Principal, client: PicClient) -> None:
        self._canister_id = canister_id
        self._client = client
        self._sender = Principal.anonymous()

    @property
    def canister_id(self) -> Principal:
        return self._canister_id

    @property
    def sender(self) -> Principal:
        return self._sender

    def set_principal(self, principal: Principal) -> None:
        self._sender = principal

    def set_identity(self, identity: Identity | Principal) -> None:
        if isinstance(identity, Principal):
            self._sender = identity
        else:
            self._sender = identity.get_principal()

    async def call(
        self,
        method: str,
        *args: Any,
        effective_principal: EffectivePrincipal | None = None,
    ) -> Any:
        """Call ``method`` by name.

        ``effective_principal`` overrides the routing hint, which defaults to
        the canister itself.
        """
        return await self._invoke(self._descriptor(method), args, effective_principal)

    def _descriptor(self, method: str) -> MethodDescriptor:
        try:
            return self.service[method]
        except KeyError:
            raise AttributeError(
                f"{type(self).__name__} has no method {method!r}"
            ) from None

    def _request(
        self,
        descriptor: MethodDescriptor,
        args: Sequence[Any],
        effective_principal: EffectivePrincipal | None,
    ) -> CanisterCallRequest:
        return CanisterCallRequest(
            sender=self._sender,
            canister_id=self._canister_id,
            method=descriptor.name,
            payload=descriptor.encode_args(args),
            effective_principal=effective_principal
            or CanisterEffectivePrincipal(self._canister_id),
        )

    async def _invoke(
        self,
        descriptor: MethodDescriptor,
        args: Sequence[Any],
        effective_principal: EffectivePrincipal | None,
    ) -> Any:
        req = self._request(descriptor, args, effective_principal)
        _LOGGER.debug(
            "%s call %s on %s", descriptor.kind.value, descriptor.name, self._canister_id
        )
        if descriptor.kind is CallKind.QUERY:
            res = await self._client.query_call(req)
        else:
            res = await self._client.update_call(req)
        return descriptor.decode_result(res.body)


class DeferredActor(Actor):
    """Proxy whose update calls are submitted now and awaited later.

    Each method returns a zero-argument coroutine function; calling it ticks
    the instance until the submitted call completes and yields the decoded
    result. Queries run immediately and the returned function only hands back
    their result.
    """

    async def _invoke(
        self,
        descriptor: MethodDescriptor,
        args: Sequence[Any],
        effective_principal: EffectivePrincipal | None,
    ) -> DeferredResult:
        req = self._request(descriptor, args, effective_principal)
        client = self._client

        if descriptor.kind is CallKind.QUERY:
            value = descriptor.decode_result((await client.query_call(req)).body)

            async def query_result() -> Any:
                return value

            return query_result

        pending = await client.submit_call(req)

        async def await_result() -> Any:
            res = await client.await_call(pending)
            return descriptor.decode_result(res.body)

        return await_result


def _bind_method(descriptor: MethodDescriptor) -> Callable[..., Awaitable[Any]]:
    async def method(self: Actor, *args: Any) -> Any:
        return await self._invoke(descriptor, args, None)

    method.__name__ = descriptor.name
    method.__doc__ = f"{descriptor.kind.value.capitalize()} method ``{descriptor.name}``."
    return method


def create_actor_class(
    service_table: Mapping[str, MethodDescriptor], *, deferred: bool = False
) -> type[Actor]:
    """Build an actor class with one coroutine method per descriptor.

    Raises:
        ValueError: If a method name collides with an attribute of the actor.
    """
    base: type[Actor] = DeferredActor if deferred else Actor
    namespace: dict[str, Any] = {"service": dict(service_table)}
    for name, descriptor in service_table.items():
        if not name.isidentifier() or hasattr(base, name):
            raise ValueError(f"Method name {name!r} cannot be bound on an actor")
        namespace[name] = _bind_method(descriptor)
    return type(base.__name__, (base,), namespace)


def create_actor(
    service_table: Mapping[str, MethodDescriptor],
    canister_id: Principal,
    client: PicClient,
    *,
    deferred: bool = False,
) -> Actor:
    """Build an actor class for ``service_table`` and bind it to a canister."""
    return create_actor_class(service_table, deferred=deferred)(canister_id, client)
