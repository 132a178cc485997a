"""
digests.py — digest helpers for building sign requests.

The emulator never signs anything, but a client still has to put a real
digest in the 40-byte hash field. SHA-1 rendered as uppercase hex is exactly
40 ASCII bytes, which is what the accepted mechanism code (10 = SHA-1) says
the field holds.
"""

from cryptography.hazmat.primitives import hashes

# Hash mechanism codes as they appear on the wire.
HASH_ALGORITHMS = {
    "10": hashes.SHA1,
}


def digest(data: bytes, mechanism: str = "10") -> bytes:
    """Raw digest of data for a wire hash-mechanism code."""
    try:
        algorithm = HASH_ALGORITHMS[mechanism]
    except KeyError:
        raise ValueError(f"Unsupported hash mechanism {mechanism!r}. Valid: {sorted(HASH_ALGORITHMS)}") from None
    h = hashes.Hash(algorithm())
    h.update(data)
    return h.finalize()


def sha1_hex(data: bytes) -> bytes:
    """SHA-1 of data as 40 uppercase ASCII hex bytes."""
    return digest(data, "10").hex().upper().encode("ascii")
