"""Peer message encoding, stream framing, routing and sync helpers, and a JSON-RPC client for a kernel network."""

__version__ = "0.1.0"