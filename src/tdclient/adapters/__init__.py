from tdclient.adapters.httpx_transport import HttpxTransport
from tdclient.adapters.transport import MalformedBodyFailure, Transport, TransportFailure

__all__ = ["HttpxTransport", "MalformedBodyFailure", "Transport", "TransportFailure"]
