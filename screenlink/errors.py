class SignalingError(Exception):
    """Base class for relay-side signaling failures."""


class RoutingError(SignalingError):
    """A message could not be routed to its target within the named room."""
