"""Tests for the request pipeline and the TCP server."""

import asyncio
import socket
import threading

import pytest

from hsmsim import executor
from hsmsim.client import build_sign_request, send_request
from hsmsim.config import DEVELOPMENT, ProtocolConfig, ServerSettings
from hsmsim.errors import ErrorKind
from hsmsim.framing import frame
from hsmsim.responses import FixedFaults, NoFaults
from hsmsim.run_server import main
from hsmsim.server import HSMServer

HASH = b"A" * 40
VALID = b"CCE1103PRIVATE_KEY100101000040" + HASH
SUCCESS_RESPONSE = b"000277CCE110300000000000256" + b"A" * 256


def _server(**kwargs) -> HSMServer:
    settings = ServerSettings(host="127.0.0.1", port=0, idle_timeout=kwargs.pop("idle_timeout", 5.0))
    return HSMServer(settings, fault_policy=kwargs.pop("fault_policy", NoFaults()), **kwargs)


# -------------------------
# process_frame: one request in, one response out
# -------------------------

def test_scenario_success():
    """A policy-matching 1103 request gets the placeholder signature."""
    assert _server().process_frame(VALID) == SUCCESS_RESPONSE


def test_scenario_unknown_command():
    """Command 1104 is answered with the wrong-command code."""
    body = b"CCE1104PRIVATE_KEY100101000040" + HASH
    assert _server().process_frame(body) == b"000015CCE11030000E000"


def test_scenario_wrong_header():
    """A foreign header tag is a message format error."""
    body = b"XXX1103PRIVATE_KEY100101000040" + HASH
    assert _server().process_frame(body) == b"000015CCE110300000001"


def test_scenario_not_allowed():
    """An off-policy hash mechanism is 'not allowed'."""
    body = b"CCE1103PRIVATE_KEY140101000040" + HASH
    assert _server().process_frame(body) == b"000015CCE110300018400"


def test_scenario_not_allowed_other_header():
    """With a DCE-configured server the DCE header is echoed back."""
    server = _server(config=ProtocolConfig(header_code="DCE"))
    body = b"DCE1103PRIVATE_KEY140101000040" + HASH
    assert server.process_frame(body) == b"000015DCE110300018400"


def test_wrong_width_is_unknown_command():
    """A recognised id with the wrong body width is still 'unknown command'."""
    assert _server().process_frame(VALID[:-1]) == b"000015CCE11030000E000"


def test_development_profile_response():
    """Development responses carry a 40-byte signature."""
    server = _server(config=DEVELOPMENT)
    assert server.process_frame(VALID) == b"000061CCE110300000000000040" + HASH


def test_fault_injection_on_success_only():
    """Forced faults replace success but leave errors alone."""
    server = _server(fault_policy=FixedFaults(True))
    assert server.process_frame(VALID) == b"000015CCE110300000002"
    assert server.process_frame(b"XXX") == b"000015CCE110300000001"


def test_unexpected_error_becomes_internal_error(monkeypatch):
    """Anything unexpected during execution is answered with the exception code."""
    def boom(cmd, config):
        raise RuntimeError("boom")

    monkeypatch.setattr(executor, "execute", boom)
    assert _server().process_frame(VALID) == b"000015CCE11030001C800"


def test_fault_rate_from_settings():
    """Without an explicit policy the settings' fault rate is used."""
    server = HSMServer(ServerSettings(fault_rate=1.0))
    assert server.process_frame(VALID) == b"000015CCE110300000002"


# -------------------------
# Over a real socket
# -------------------------

async def _with_server(server, coro_fn):
    await server.listen()
    try:
        return await coro_fn(server.port)
    finally:
        server._server.close()
        await server._server.wait_closed()


async def _read_response(reader):
    header = await reader.readexactly(6)
    return header + await reader.readexactly(int(header))


def test_sequential_requests_on_one_connection():
    """Several requests on one connection are answered in order."""
    async def scenario(port):
        reader, writer = await asyncio.open_connection("127.0.0.1", port)
        replies = []
        for body in (VALID, b"CCE1104" + VALID[7:], VALID):
            writer.write(frame(body))
            await writer.drain()
            replies.append(await _read_response(reader))
        writer.close()
        await writer.wait_closed()
        return replies

    replies = asyncio.run(_with_server(_server(), scenario))
    assert replies == [SUCCESS_RESPONSE, b"000015CCE11030000E000", SUCCESS_RESPONSE]


def test_bad_length_header_answers_and_closes():
    """A non-numeric length header gets 'invalid message', then the connection closes."""
    async def scenario(port):
        reader, writer = await asyncio.open_connection("127.0.0.1", port)
        writer.write(b"INVALI")
        await writer.drain()
        data = await reader.read()
        writer.close()
        await writer.wait_closed()
        return data

    assert asyncio.run(_with_server(_server(), scenario)) == b"000015CCE110300000001"


def test_oversized_frame_rejected():
    """Frames above the ceiling are refused before the body is read."""
    async def scenario(port):
        reader, writer = await asyncio.open_connection("127.0.0.1", port)
        writer.write(b"999999")
        await writer.drain()
        data = await reader.read()
        writer.close()
        await writer.wait_closed()
        return data

    assert asyncio.run(_with_server(_server(), scenario)) == b"000015CCE110300000001"


def test_idle_connection_closed():
    """An idle connection is dropped without a response."""
    async def scenario(port):
        reader, writer = await asyncio.open_connection("127.0.0.1", port)
        data = await asyncio.wait_for(reader.read(), 5)
        writer.close()
        await writer.wait_closed()
        return data

    assert asyncio.run(_with_server(_server(idle_timeout=0.1), scenario)) == b""


def test_broken_connection_does_not_affect_others():
    """A peer that hangs up mid-frame doesn't disturb a concurrent client."""
    async def scenario(port):
        r1, w1 = await asyncio.open_connection("127.0.0.1", port)
        r2, w2 = await asyncio.open_connection("127.0.0.1", port)
        w1.write(b"000100CCE")
        await w1.drain()
        w1.close()
        await w1.wait_closed()

        w2.write(frame(VALID))
        await w2.drain()
        reply = await _read_response(r2)
        w2.close()
        await w2.wait_closed()
        return reply

    assert asyncio.run(_with_server(_server(), scenario)) == SUCCESS_RESPONSE


def test_client_round_trip():
    """The bundled client decodes what the server sends."""
    async def scenario(port):
        ok = await send_request("127.0.0.1", port, build_sign_request("PRIVATE_KEY", HASH).to_bytes())
        bad = await send_request(
            "127.0.0.1", port,
            build_sign_request("PRIVATE_KEY", HASH, hash_mechanism="14").to_bytes(),
        )
        return ok, bad

    ok, bad = asyncio.run(_with_server(_server(), scenario))
    assert ok.ok
    assert ok.signature == b"A" * 256
    assert bad.error is ErrorKind.NOT_ALLOWED
    assert (bad.header_code, bad.command_id) == (b"CCE", b"1103")


# -------------------------
# One-shot CLI against a server on a background loop
# -------------------------

@pytest.fixture
def running_server():
    """Serve on a loop in another thread so main() can call asyncio.run itself."""
    loop = asyncio.new_event_loop()
    server = _server()
    loop.run_until_complete(server.listen())
    thread = threading.Thread(target=loop.run_forever, daemon=True)
    thread.start()
    yield server.port
    loop.call_soon_threadsafe(loop.stop)
    thread.join(5)
    server._server.close()
    loop.run_until_complete(server._server.wait_closed())
    loop.close()


def test_cli_sign_ok(running_server, capsys):
    """A policy-matching sign request prints OK and exits 0."""
    with pytest.raises(SystemExit) as exc_info:
        main(["--mode", "sign", "--connect", f"127.0.0.1:{running_server}", "hello", "world"])
    assert exc_info.value.code == 0
    assert capsys.readouterr().out.strip() == "OK CCE 1103 signature=256 bytes"


def test_cli_sign_not_allowed(running_server, capsys):
    """An off-policy hash mechanism prints the error state and exits 1."""
    with pytest.raises(SystemExit) as exc_info:
        main([
            "--mode", "sign", "--connect", f"127.0.0.1:{running_server}",
            "--hash-mechanism", "14", "hello",
        ])
    assert exc_info.value.code == 1
    assert capsys.readouterr().out.strip() == "ERROR CCE 1103 state=00018400 (NOT_ALLOWED)"


def test_cli_sign_file(running_server, capsys, tmp_path):
    """--path signs the file contents instead of the message."""
    path = tmp_path / "payload.bin"
    path.write_bytes(b"\x00\x01binary payload")
    with pytest.raises(SystemExit) as exc_info:
        main(["--mode", "sign", "--connect", f"127.0.0.1:{running_server}", "--path", str(path)])
    assert exc_info.value.code == 0
    assert capsys.readouterr().out.startswith("OK CCE 1103")


def test_cli_sign_refused_connection():
    """A closed port ends with an error message, not a traceback."""
    with socket.socket() as sock:
        sock.bind(("127.0.0.1", 0))
        port = sock.getsockname()[1]
    with pytest.raises(SystemExit) as exc_info:
        main(["--mode", "sign", "--connect", f"127.0.0.1:{port}", "hello"])
    assert str(exc_info.value.code).startswith("Error:")


def test_cli_bad_configuration(monkeypatch):
    """Bad HSMSIM_* values exit with a configuration error."""
    monkeypatch.setenv("HSMSIM_PORT", "forty")
    with pytest.raises(SystemExit) as exc_info:
        main(["--mode", "server"])
    assert str(exc_info.value.code).startswith("Configuration error:")
