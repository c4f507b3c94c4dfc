"""Error types raised by the session engine and the filter engine."""


class NetconfError(Exception):
    """Base class for every error this package raises on purpose."""


class ValidationError(NetconfError):
    """Connection parameters are malformed (bad address)."""


class NetconfConnectionError(NetconfError, ConnectionError):
    """Dialing, authenticating or opening the channel failed."""


class ProtocolError(NetconfError):
    """The peer refused the netconf subsystem or the session was misused."""


class SessionStateError(ProtocolError):
    """Operation is not allowed in the session's current state."""


class SessionBusyError(ProtocolError):
    """Another request is still outstanding on the same session."""


class FramingFault(NetconfError):
    """Reading or writing a framed message failed for a reason other than end-of-stream."""


class FilterParseError(NetconfError):
    """The filter expression could not be parsed."""


class UnsupportedPredicateError(FilterParseError):
    """The filter predicate parsed but has no evaluation rule."""
