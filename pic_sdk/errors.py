"""Error types for PocketIC server interactions."""

from __future__ import annotations


class PicError(Exception):
    """Base error for every failure surfaced by the PocketIC SDK."""


class PicClientError(PicError):
    """Base error for transport level failures."""


class ServerRequestTimeoutError(PicClientError):
    """Timeout while waiting for a definitive server response."""

    def __init__(self, message: str = "A request to the PocketIC server timed out.") -> None:
        super().__init__(message)


class ServerConnectionError(PicClientError):
    """Network connection to the server failed."""


class ServerBusyError(PicClientError):
    """The instance is already processing another operation (HTTP 409)."""

    def __init__(self, status: int, state_label: str | None, op_id: str | None) -> None:
        super().__init__("Server busy")
        self.status = status
        self.state_label = state_label
        self.op_id = op_id


class ServerResponseError(PicClientError):
    """HTTP error response from the server."""

    def __init__(self, status: int, message: str) -> None:
        super().__init__(f"Server error with code {status}: {message}")
        self.status = status
        self.server_message = message


class UnknownStateError(PicClientError):
    """The server returned processing metadata under an unexpected status."""

    def __init__(self, status: int) -> None:
        super().__init__(f"Server returned an unknown state (status {status})")
        self.status = status


class InstanceDeletedError(PicError):
    """Operation attempted on an instance that has been torn down."""

    def __init__(self) -> None:
        super().__init__(
            "This PocketIC instance has been torn down. Please create a new "
            "instance before interacting further with PocketIC."
        )


class InstanceCreationError(PicError):
    """The server refused to create an instance."""


class AwaitRoundsExhaustedError(PicError):
    """An update call did not reach a terminal status within the round limit."""

    def __init__(self, rounds: int) -> None:
        super().__init__(
            f"PocketIC did not complete the update call within {rounds} rounds"
        )
        self.rounds = rounds


class CanisterCallRejectedError(PicError):
    """A query or update call was rejected by the simulated network."""

    def __init__(
        self,
        reject_code: int,
        reject_message: str,
        error_code: int,
        certified: bool,
    ) -> None:
        super().__init__(
            f"Canister call failed: {reject_message}. Reject code: {reject_code}. "
            f"Error code: {error_code}. Certified: {certified}"
        )
        self.reject_code = reject_code
        self.reject_message = reject_message
        self.error_code = error_code
        self.certified = certified


class EncodeError(PicError, ValueError):
    """A value could not be encoded for the wire."""


class DecodeError(PicError, ValueError):
    """A payload did not match the expected wire shape."""


class PrincipalError(DecodeError):
    """A principal identifier could not be parsed."""


class TopologyValidationError(PicError, ValueError):
    """The requested subnet configuration is invalid."""

    def __init__(self) -> None:
        super().__init__(
            "The provided subnet configuration is invalid. At least one subnet "
            "must be configured."
        )


class ConfigError(PicError):
    """Instance configuration could not be loaded."""
