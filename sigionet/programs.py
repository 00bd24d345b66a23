"""The coursework programs, all running on the shared endpoint and readiness loop.

Servers are split in two: a handler factory (what to do with one message
or one accepted client) and a ``run_*`` function that creates the
endpoint and hands both to :func:`sigionet.loop.serve`.
"""
from __future__ import annotations

import socket
from pathlib import Path
from typing import Callable, List, Optional

from . import config as defaults
from .activity import ActivityLog, log_line, open_log, report
from .codec import FloatSamplesCodec, LengthPrefixFraming, TextCodec, get_codec
from .config import ProgramConfig
from .endpoint import Endpoint, SocketSettings, create_local_endpoint, create_remote_endpoint
from .errors import FatalIOError
from .hostinfo import machine_information
from .loop import serve
from .receive import Message, ReceiveProtocol, accept_connection
from .timeservice import TimeService, make_clock

SEPARATOR = "------------------------------"


def _local(config: ProgramConfig, sock_type: int, backlog: Optional[int] = None) -> Endpoint:
    return create_local_endpoint(
        sock_type,
        config.port,
        config.log_path,
        backlog=backlog,
        settings=config.settings,
        clock=make_clock(config.ntp_server),
        lookup_public=config.lookup_public,
    )


def _send_to(endpoint: Endpoint, payload: bytes, address) -> int:
    try:
        return endpoint.sock.sendto(payload, address)
    except OSError as exc:
        log_line(endpoint.log, f"Error sending the message: {exc}", level="ERROR")
        raise FatalIOError(f"could not send the message: {exc}") from exc


def receive_step(endpoint: Endpoint, protocol: ReceiveProtocol) -> Callable:
    return lambda: protocol.receive(endpoint.sock)


def accept_step(endpoint: Endpoint) -> Callable:
    return lambda: accept_connection(endpoint.sock, endpoint.log)


# -- UDP receiver / sender ---------------------------------------------------


def _show_payload(payload: bytes, codec_name: str) -> str:
    codec = get_codec(codec_name)
    if codec_name == FloatSamplesCodec.name:
        return "; ".join(f"{value:f}" for value in codec.decode(payload))
    return f'"{codec.decode(payload)}"'


def describe_message(message: Message, codec_name: str = "text") -> List[str]:
    return [
        f"Message received  : {_show_payload(message.payload, codec_name)}",
        f"Bytes received    : {len(message.payload)}",
        f"Sender IP         : {message.sender_ip}",
        f"Sender port       : {message.sender_port} UDP",
    ]


def receiver_handler(receiver: Endpoint, codec_name: str = "text", received: Optional[List[Message]] = None) -> Callable:
    def handle(message: Message) -> None:
        if received is not None:
            received.append(message)
        report(receiver.log, SEPARATOR)
        log_line(receiver.log, f"Raw payload       : {message.payload!r}")
        for line in describe_message(message, codec_name):
            report(receiver.log, line)
        if message.attempts > 1:
            report(receiver.log, f"Reassembled from  : {message.attempts} receive attempts")
        report(receiver.log, SEPARATOR)

    return handle


def run_receiver(config: ProgramConfig) -> int:
    receiver = _local(config, socket.SOCK_DGRAM)
    try:
        protocol = ReceiveProtocol(config.max_bytes, config.framing, log=receiver.log)
        report(receiver.log, f"Max bytes to read: {config.max_bytes}")
        report(receiver.log, f"Listening on port {receiver.port} UDP...")
        serve(receiver, receive_step(receiver, protocol), receiver_handler(receiver, config.codec), config.single_shot)
    finally:
        report(receiver.log, "\nClosing the receiver and exiting...")
        receiver.close()
    return 0


def greeting_text(endpoint: Endpoint) -> str:
    return f"Hello from {endpoint.hostname or 'an unknown host'} ({endpoint.local_ip or 'unknown IP'})"


def build_payload(config: ProgramConfig, sender: Endpoint) -> bytes:
    if config.codec == FloatSamplesCodec.name:
        codec = FloatSamplesCodec()
        payload = codec.encode(codec.random_samples(config.max_bytes))
    else:
        text = config.message if config.message is not None else greeting_text(sender)
        payload = TextCodec(null_terminated=False).encode(text)
    if config.framing == "length-prefix":
        payload = LengthPrefixFraming().frame(payload)
    return payload


def run_sender(config: ProgramConfig) -> int:
    sender = _local(config, socket.SOCK_DGRAM)
    try:
        remote = create_remote_endpoint(socket.SOCK_DGRAM, config.remote_ip, config.remote_port)
        report(sender.log, f"Sender port       : {sender.port} UDP")
        report(sender.log, f"Receiver IP       : {remote.ip}")
        report(sender.log, f"Receiver port     : {remote.port} UDP")
        payload = build_payload(config, sender)
        sent = _send_to(sender, payload, remote.address)
        if config.framing == "length-prefix":
            payload = payload[LengthPrefixFraming.header_size:]
        report(sender.log, f"Message sent      : {_show_payload(payload, config.codec)}")
        report(sender.log, f"Bytes sent        : {sent}")
        remote.close()
    finally:
        sender.close()
    return 0


# -- TCP greeting server / client --------------------------------------------


def greet_message(server: Endpoint) -> bytes:
    ip = server.public_ip or server.local_ip
    text = f"Your connection to server {server.hostname} at {ip}:{server.port} has been accepted.\n"
    return TextCodec().encode(text)


def greet_handler(server: Endpoint) -> Callable:
    def handle(client: Endpoint) -> None:
        try:
            report(server.log, f"\nHandling the connection of client {client.ip}:{client.port}...")
            try:
                client.sock.sendall(greet_message(server))
            except OSError as exc:
                log_line(server.log, f"Error sending the greeting: {exc}", level="ERROR")
                raise FatalIOError(f"could not send the greeting: {exc}") from exc
            report(server.log, f"Closing the connection of client {client.ip}:{client.port}.")
        finally:
            client.close()

    return handle


def run_greet_server(config: ProgramConfig) -> int:
    server = _local(config, socket.SOCK_STREAM, backlog=config.backlog)
    try:
        report(server.log, f"Running server with PORT={server.port}, BACKLOG={config.backlog}, LOG={config.log_path}.")
        serve(server, accept_step(server), greet_handler(server), config.single_shot)
    finally:
        report(server.log, "\nClosing the server and exiting...")
        server.close()
    return 0


def receive_until_closed(sock: socket.socket, size: int, log: Optional[ActivityLog] = None) -> List[bytes]:
    chunks: List[bytes] = []
    while True:
        try:
            data = sock.recv(size)
        except OSError as exc:
            log_line(log, f"Error receiving the message: {exc}", level="ERROR")
            raise FatalIOError(f"error receiving the message: {exc}") from exc
        if not data:
            return chunks
        chunks.append(data)
        report(log, f"Message received: {TextCodec().decode(data)}\n{len(data)} bytes received.")


def connect(config: ProgramConfig, log: Optional[ActivityLog] = None) -> socket.socket:
    remote = create_remote_endpoint(socket.SOCK_STREAM, config.remote_ip, config.remote_port)
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    config.settings.apply(sock, allow_nonblocking=False)
    try:
        sock.connect(remote.address)
    except OSError as exc:
        sock.close()
        log_line(log, f"Error connecting to {remote.ip}:{remote.port}: {exc}", level="ERROR")
        raise FatalIOError(f"could not connect to {remote.ip}:{remote.port}: {exc}") from exc
    report(log, f"Connected to server {remote.ip} on port {remote.port}")
    return sock


def run_greet_client(config: ProgramConfig) -> int:
    log = open_log(config.log_path, clock=make_clock(config.ntp_server))
    try:
        with connect(config, log) as sock:
            receive_until_closed(sock, defaults.GREET_MESSAGE_SIZE, log)
    finally:
        if log is not None:
            log.close()
    return 0


# -- TCP echo server / client ------------------------------------------------


def _recv_all(conn: socket.socket) -> bytes:
    chunks = bytearray()
    while True:
        data = conn.recv(defaults.ECHO_PAYLOAD)
        if not data:
            return bytes(chunks)
        chunks.extend(data)


def echo_handler(server: Endpoint, settings: Optional[SocketSettings] = None) -> Callable:
    settings = settings or SocketSettings()

    def handle(client: Endpoint) -> None:
        try:
            settings.apply(client.sock, allow_nonblocking=False)
            data = _recv_all(client.sock)
            report(server.log, f"[server] recv bytes={len(data)}")
            if data:
                client.sock.sendall(data)
                report(server.log, f"[server] sent echo to {client.ip}:{client.port}")
        except socket.timeout:
            report(server.log, "[server] recv/send timeout", level="WARNING")
        except ConnectionResetError:
            report(server.log, "[server] client reset connection", level="WARNING")
        except OSError as exc:
            log_line(server.log, f"[server] OS error: {exc}", level="ERROR")
            raise FatalIOError(f"echo exchange failed: {exc}") from exc
        finally:
            client.close()

    return handle


def run_echo_server(config: ProgramConfig) -> int:
    server = _local(config, socket.SOCK_STREAM, backlog=config.backlog)
    try:
        report(server.log, f"[server] bind port {server.port} ({config.settings.describe()})")
        serve(server, accept_step(server), echo_handler(server, config.settings), config.single_shot)
    finally:
        report(server.log, "[server] closing")
        server.close()
    return 0


def echo_once(config: ProgramConfig, message: str, log: Optional[ActivityLog] = None) -> str:
    with connect(config, log) as sock:
        try:
            sock.sendall(message.encode("utf-8"))
            sock.shutdown(socket.SHUT_WR)
            echoed = _recv_all(sock)
        except OSError as exc:
            log_line(log, f"[client] OS error: {exc}", level="ERROR")
            raise FatalIOError(f"echo exchange failed: {exc}") from exc
    return echoed.decode("utf-8", errors="replace")


def run_echo_client(config: ProgramConfig) -> int:
    message = config.message or defaults.ECHO_MESSAGE
    log = open_log(config.log_path, clock=make_clock(config.ntp_server))
    try:
        received_text = echo_once(config, message, log)
        report(log, f"Received: {received_text}")
        if received_text != message:
            report(log, "Data mismatch", level="WARNING")
            return 1
        report(log, "Connection successful, data matches")
    finally:
        if log is not None:
            log.close()
    return 0


# -- UDP uppercase server / client -------------------------------------------


def upper_handler(server: Endpoint) -> Callable:
    codec = TextCodec()

    def handle(message: Message) -> None:
        report(server.log, f"[Server] Packet received from {message.sender_ip}:{message.sender_port}")
        if not message.payload:
            report(server.log, f"[Server] {message.sender_ip}:{message.sender_port} closed its session")
            return
        text = codec.decode(message.payload)
        report(server.log, f"\t[Server] Message received: {text}")
        output = text.upper()
        try:
            server.sock.sendto(codec.encode(output), message.sender)
        except BlockingIOError:
            report(server.log, f"[Server] Send buffer full, reply to {message.sender_ip}:{message.sender_port} dropped", level="WARNING")
            return
        except OSError as exc:
            log_line(server.log, f"Error sending the line to the client: {exc}", level="ERROR")
            raise FatalIOError(f"could not send the line to the client: {exc}") from exc
        report(server.log, f"[Server] Sent: {output}")

    return handle


def run_upper_server(config: ProgramConfig) -> int:
    server = _local(config, socket.SOCK_DGRAM)
    try:
        protocol = ReceiveProtocol(config.max_bytes, config.framing, log=server.log)
        report(server.log, f"Running uppercase server with PORT={server.port}, LOG={config.log_path}")
        serve(server, receive_step(server, protocol), upper_handler(server), config.single_shot)
    finally:
        report(server.log, "\nClosing the server and exiting...")
        server.close()
    return 0


def _exchange(client: Endpoint, remote: Endpoint, payload: bytes, max_bytes: int) -> bytes:
    _send_to(client, payload, remote.address)
    try:
        reply, _ = client.sock.recvfrom(max_bytes)
    except OSError as exc:
        log_line(client.log, f"Error receiving the reply: {exc}", level="ERROR")
        raise FatalIOError(f"could not receive the reply: {exc}") from exc
    return reply


def uppercase_file(client: Endpoint, remote: Endpoint, input_path: Path, max_bytes: int = defaults.MAX_BYTES) -> Path:
    """Send a text file line by line and store the uppercased replies.

    The output file is named after the server's answer to the input file
    name and is written next to the input file.
    """
    codec = TextCodec()
    try:
        source = input_path.open("r", encoding="utf-8")
    except OSError as exc:
        log_line(client.log, f"Error opening the input file {input_path}: {exc}", level="ERROR")
        raise FatalIOError(f"could not open the input file {input_path}: {exc}") from exc

    with source:
        report(client.log, f"Sending file {input_path.name} to the server at {remote.ip}:{remote.port}")
        output_name = codec.decode(_exchange(client, remote, codec.encode(input_path.name), max_bytes))
        report(client.log, f'Received: "{output_name}"')
        output_path = input_path.parent / Path(output_name).name
        with output_path.open("w", encoding="utf-8") as output:
            for line in source:
                report(client.log, f"\nSending: {line.rstrip()}")
                reply = codec.decode(_exchange(client, remote, codec.encode(line), max_bytes))
                report(client.log, f"Received: {reply.rstrip()}")
                output.write(reply)
    # an empty datagram ends the session on the server side
    _send_to(client, b"", remote.address)
    return output_path


def run_upper_client(config: ProgramConfig) -> int:
    client = _local(config, socket.SOCK_DGRAM)
    try:
        remote = create_remote_endpoint(socket.SOCK_DGRAM, config.remote_ip, config.remote_port)
        output_path = uppercase_file(client, remote, Path(config.input_file), config.max_bytes)
        report(client.log, f"Uppercased file written to {output_path}")
        remote.close()
    finally:
        client.close()
    return 0


# -- utilities -----------------------------------------------------------------


def run_info(config: ProgramConfig) -> int:
    machine_information(lookup_public=config.lookup_public)
    if config.ntp_server:
        TimeService(config.ntp_server).display_time_information()
    return 0
