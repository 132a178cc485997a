"""
run_server.py — single entry point for the emulator.

Modes:
- server: listen on host:port and answer sign requests forever
- sign:   one-shot client that sends a single 1103 request and prints the reply

Quick examples:
  Server:   python -m hsmsim.run_server --mode server --port 4040 --fault-rate 0.1
  Sign:     python -m hsmsim.run_server --mode sign --connect 127.0.0.1:4040 \
                --key PRIVATE_KEY hello world
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .client import build_sign_request, send_request
from .config import PROFILES, ProtocolConfig, ServerSettings
from .digests import sha1_hex
from .errors import ConfigError
from .server import HSMServer

logger = logging.getLogger(__name__)


# -------------------------
# Mode runners
# -------------------------

async def run_server(settings: ServerSettings, config: ProtocolConfig) -> None:
    """Spin up the emulator and serve forever."""
    server = HSMServer(settings, config)
    await server.start()


async def run_sign(args: argparse.Namespace, config: ProtocolConfig) -> int:
    """Send one sign request built from the CLI args; returns a process exit code."""
    if args.path:
        data = Path(args.path).read_bytes()
    else:
        data = " ".join(args.message).encode("utf-8")

    cmd = build_sign_request(
        args.key,
        sha1_hex(data),
        config,
        header_code=args.header,
        hash_mechanism=args.hash_mechanism,
    )
    host, port = args.connect.rsplit(":", 1)
    response = await send_request(host, int(port), cmd.to_bytes())

    if response.ok:
        print(f"OK {response.header_code.decode()} {response.command_id.decode()} "
              f"signature={len(response.signature)} bytes")
        return 0
    kind = response.error.name if response.error else "UNKNOWN_STATE"
    print(f"ERROR {response.header_code.decode()} {response.command_id.decode()} "
          f"state={response.state.decode()} ({kind})")
    return 1


# -------------------------
# Argument parsing
# -------------------------

def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse mode and options. Unset server options fall back to HSMSIM_* env vars."""
    p = argparse.ArgumentParser(prog="hsmsim", description="HSM network endpoint emulator")
    p.add_argument("--mode", choices=["server", "sign"], default="server")
    p.add_argument("--profile", choices=sorted(PROFILES), help="wire profile (default: HSMSIM_PROFILE or production)")
    p.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])

    srv = p.add_argument_group("server")
    srv.add_argument("--host")
    srv.add_argument("--port", type=int)
    srv.add_argument("--fault-rate", type=float, help="probability of answering 'service unavailable'")
    srv.add_argument("--idle-timeout", type=float, help="seconds before an idle connection is closed (0 disables)")
    srv.add_argument("--max-frame", type=int, help="largest accepted request body in bytes")

    cli = p.add_argument_group("sign")
    cli.add_argument("--connect", default="127.0.0.1:4040", help="host:port of a running emulator")
    cli.add_argument("--key", default="PRIVATE_KEY", help="key reference to sign with")
    cli.add_argument("--header", help="override the header tag")
    cli.add_argument("--hash-mechanism", help="override the hash mechanism code")
    cli.add_argument("--path", help="sign the contents of this file instead of the message")
    cli.add_argument("message", nargs="*")

    return p.parse_args(argv)


def settings_from_args(args: argparse.Namespace) -> ServerSettings:
    """Environment first, then explicit flags on top."""
    base = ServerSettings.from_env()
    return ServerSettings(
        host=args.host or base.host,
        port=args.port if args.port is not None else base.port,
        max_frame_size=args.max_frame if args.max_frame is not None else base.max_frame_size,
        idle_timeout=(
            base.idle_timeout if args.idle_timeout is None
            else (args.idle_timeout or None)
        ),
        fault_rate=args.fault_rate if args.fault_rate is not None else base.fault_rate,
    )


# -------------------------
# Main entrypoint
# -------------------------

def main(argv: Optional[List[str]] = None) -> None:
    """Dispatch into the chosen mode; keep top-level code very small."""
    args = parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        config = ProtocolConfig.for_profile(args.profile)
        if args.mode == "server":
            settings = settings_from_args(args)
            asyncio.run(run_server(settings, config))
        else:
            sys.exit(asyncio.run(run_sign(args, config)))
    except ConfigError as exc:
        raise SystemExit(f"Configuration error: {exc}")
    except (ValueError, OSError, asyncio.TimeoutError) as exc:
        raise SystemExit(f"Error: {exc}")
    except KeyboardInterrupt:
        logger.info("Shutting down")


if __name__ == "__main__":
    main()
