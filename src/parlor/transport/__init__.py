"""Transports: the network side of a session."""

from parlor.transport.base import EventSink, Transport, TransportFactory
from parlor.transport.irc import IRCClient, PydleTransport, create_transport

__all__ = ["EventSink", "IRCClient", "PydleTransport", "Transport", "TransportFactory", "create_transport"]
