"""
hsmsim — emulated Hardware Security Module network endpoint.

Accepts raw TCP connections, reads 6-digit length-prefixed requests, and
answers the asymmetric-signature command (1103) with a fixed placeholder
signature. Nothing here performs real cryptography or stores keys.

Pipeline per request:
    framing.read_frame -> commands.parse -> executor.execute -> responses.encode

Configuration comes from config.ProtocolConfig (wire widths, accepted
mechanisms) and config.ServerSettings (listener, limits, fault rate; HSMSIM_*
environment variables).
"""
__all__ = ["client", "commands", "config", "digests", "errors", "executor", "framing", "responses", "run_server", "server"]
