"""
executor.py — validate a parsed Command and produce the outcome.

This is a simulation boundary: no key is looked up and nothing is signed.
A request that matches the single accepted mechanism combination gets a
fixed placeholder signature; anything else is "not allowed".
"""

from dataclasses import dataclass
from typing import Union

from .commands import Command
from .config import PRODUCTION, ProtocolConfig
from .errors import ErrorKind


@dataclass(frozen=True)
class Success:
    header_code: bytes
    command_id: bytes
    signature: bytes


@dataclass(frozen=True)
class Failure:
    kind: ErrorKind
    header_code: bytes
    command_id: bytes


Result = Union[Success, Failure]


def failure_for(kind: ErrorKind, config: ProtocolConfig = PRODUCTION) -> Failure:
    """
    Failure for a request we could not parse far enough to echo.

    The configured header and the signature command id stand in for the
    request's own values.
    """
    return Failure(kind=kind, header_code=config.header_bytes, command_id=config.command_id_bytes)


def is_allowed(cmd: Command, config: ProtocolConfig = PRODUCTION) -> bool:
    """True if every policy-controlled field matches the accepted combination."""
    policy = config.policy
    return (
        cmd.hash_mechanism == policy.hash_mechanism.encode("ascii")
        and cmd.sign_mechanism == policy.sign_mechanism.encode("ascii")
        and cmd.padding_scheme == policy.padding_scheme.encode("ascii")
        and cmd.declared_hash_length == config.declared_hash_length
    )


def execute(cmd: Command, config: ProtocolConfig = PRODUCTION) -> Result:
    """Run a command. Pure: same input, same Result."""
    if not is_allowed(cmd, config):
        # Same state code whichever field was off; the device gives no detail either.
        return Failure(ErrorKind.NOT_ALLOWED, cmd.header_code, cmd.command_id)
    return Success(
        header_code=cmd.header_code,
        command_id=cmd.command_id,
        signature=config.placeholder_signature,
    )
