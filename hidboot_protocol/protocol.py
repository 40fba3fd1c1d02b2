# SPDX-License-Identifier: MIT
# Copyright (c) 2026 ADNT Sarl <info@adnt.io>

"""
HID bootloader protocol definitions and serialization.

This module defines the fixed-size command/response frames used to talk
to the bootloader over a USB HID endpoint.

Request frame (9 bytes):
    [0]    endpoint id (protocol version)
    [1]    command id (low nibble) | sequence number (high nibble)
    [2..8] payload, padded to 7 bytes

Response frame (8 bytes):
    [0]    frame type (low nibble) | echoed sequence number (high nibble)
    [1]    status byte (0 = ok)
    [2..7] payload
"""

import math
from dataclasses import dataclass
from enum import IntEnum
from typing import Iterator

REQUEST_FRAME_SIZE = 9
RESPONSE_FRAME_SIZE = 8
PAYLOAD_SIZE = 7

CHUNK_SIZE = PAYLOAD_SIZE
CHUNK_PADDING = 0xFF

RESULT_FRAME_TYPE = 15

ECHO_PATTERN = b"\xff" * PAYLOAD_SIZE
REBOOT_MAGIC = bytes([0x91, 0x82, 0x73, 0x64, 0xAD, 0xEF, 0xBA])

MAX_PROGRAM_LENGTH = 0xFFFF
MAX_PROGRAM_OFFSET = 0xFFFFFFFF


class CommandType(IntEnum):
    """Command ids (low nibble of request byte 1)."""
    INFO = 0
    ERASE_APP = 2
    START_PROGRAMMING = 3
    PROGRAM_DATA = 4
    ECHO = 9
    REBOOT = 10

    def __str__(self) -> str:
        return self.name


# Sequence nibble used by each command. Values are not unique across commands.
SEQUENCE = {
    CommandType.INFO: 0,
    CommandType.ERASE_APP: 0,
    CommandType.START_PROGRAMMING: 9,
    CommandType.PROGRAM_DATA: 1,
    CommandType.ECHO: 9,
    CommandType.REBOOT: 3,
}


class ProtocolVersion(IntEnum):
    """Bootloader protocol version; the value is the endpoint id."""
    V1 = 1
    V2 = 2

    @property
    def commands(self) -> frozenset:
        if self == ProtocolVersion.V2:
            return frozenset((CommandType.INFO, CommandType.ERASE_APP, CommandType.ECHO))
        return frozenset(CommandType)

    def supports(self, command: CommandType) -> bool:
        return command in self.commands

    def __str__(self) -> str:
        return self.name


class FrameType(IntEnum):
    """Response frame type (low nibble of response byte 0)."""
    RESULT = RESULT_FRAME_TYPE


class BootloaderReason(IntEnum):
    """Why the device is sitting in its bootloader."""
    UNKNOWN = -1
    NOT_ENTERING_BOOTLOADER = 0
    BOOT_TOKEN_PRESENT = 1
    BOOT_FAILED_TOO_MANY_TIMES = 2
    NO_PROGRAM_PRESENT = 3
    BUTTON_HELD_DOWN = 4

    @classmethod
    def _missing_(cls, value):
        return cls.UNKNOWN

    def __str__(self) -> str:
        return self.name


class BootloaderError(IntEnum):
    """Status codes reported in response byte 1."""
    UNKNOWN = -1
    NO_ERROR = 0
    UNHANDLED_COMMAND = 1
    ADDRESS_OUT_OF_RANGE = 2
    NO_ADDRESS_SET = 3
    SUBSYSTEM_ERROR = 4
    ADDRESS_NOT_VALID = 5
    SIZE_NOT_VALID = 6
    KEY_NOT_VALID = 7
    FLASH_NOT_ERASED = 8

    @classmethod
    def _missing_(cls, value):
        return cls.UNKNOWN

    @classmethod
    def from_status(cls, status: int) -> "BootloaderError":
        """Decode a status byte; unrecognized codes map to UNKNOWN."""
        return cls(status)

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class Response:
    """A decoded response frame."""
    seq: int
    frame_type: int
    status: int
    payload: bytes
    raw: bytes

    @property
    def is_result(self) -> bool:
        return self.frame_type == FrameType.RESULT

    @property
    def is_ok(self) -> bool:
        return self.status == 0

    @property
    def error(self) -> BootloaderError:
        return BootloaderError.from_status(self.status)


@dataclass(frozen=True)
class BootloaderInfo:
    """Flash geometry and boot state reported by the Info command."""
    response_code: int
    flash_size: int
    bootloader_version: int
    bootloader_reason: BootloaderReason
    app_offset: int


def encode_command(endpoint: int, command: int, seq: int, payload: bytes = b"",
                   padding: int = 0) -> bytes:
    """
    Encode a request frame.

    Args:
        endpoint: Endpoint id (protocol version)
        command: Command id, 0-15
        seq: Sequence number, 0-15
        payload: Up to 7 payload bytes
        padding: Fill byte for the unused payload tail

    Returns:
        9-byte request frame

    Raises:
        ValueError: If a field is out of range
    """
    if not 0 <= command <= 0xF:
        raise ValueError(f"Command id out of range: {command}")
    if not 0 <= seq <= 0xF:
        raise ValueError(f"Sequence number out of range: {seq}")
    if len(payload) > PAYLOAD_SIZE:
        raise ValueError(f"Payload too long: {len(payload)} > {PAYLOAD_SIZE}")

    padded = bytes(payload) + bytes([padding]) * (PAYLOAD_SIZE - len(payload))
    return bytes([endpoint, (command & 0xF) | (seq << 4)]) + padded


def decode_response(data: bytes) -> Response:
    """
    Decode a response frame.

    Args:
        data: Raw bytes received (exactly 8)

    Returns:
        Decoded Response

    Raises:
        ValueError: If the frame has the wrong length
    """
    data = bytes(data)
    if len(data) != RESPONSE_FRAME_SIZE:
        raise ValueError(
            f"Response frame must be {RESPONSE_FRAME_SIZE} bytes, got {len(data)}"
        )
    return Response(
        seq=data[0] >> 4,
        frame_type=data[0] & 0xF,
        status=data[1],
        payload=data[2:],
        raw=data,
    )


def encode_info(endpoint: int) -> bytes:
    """Encode an Info command."""
    return encode_command(endpoint, CommandType.INFO, SEQUENCE[CommandType.INFO])


def encode_erase_app(endpoint: int) -> bytes:
    """Encode an EraseApp command."""
    return encode_command(endpoint, CommandType.ERASE_APP, SEQUENCE[CommandType.ERASE_APP])


def encode_echo(endpoint: int, payload: bytes = ECHO_PATTERN) -> bytes:
    """Encode an Echo command."""
    if len(payload) != PAYLOAD_SIZE:
        raise ValueError(f"Echo payload must be {PAYLOAD_SIZE} bytes, got {len(payload)}")
    return encode_command(endpoint, CommandType.ECHO, SEQUENCE[CommandType.ECHO], payload)


def encode_start_programming(endpoint: int, length: int, offset: int) -> bytes:
    """Encode a StartProgramming command (16-bit length, 32-bit offset, little-endian)."""
    if not 0 <= length <= MAX_PROGRAM_LENGTH:
        raise ValueError(f"Program length out of range: {length}")
    if not 0 <= offset <= MAX_PROGRAM_OFFSET:
        raise ValueError(f"Program offset out of range: {offset}")
    payload = bytes([0]) + length.to_bytes(2, "little") + offset.to_bytes(4, "little")
    return encode_command(
        endpoint, CommandType.START_PROGRAMMING,
        SEQUENCE[CommandType.START_PROGRAMMING], payload,
    )


def encode_program_data(endpoint: int, chunk: bytes) -> bytes:
    """Encode a ProgramData command; short chunks are padded with 0xff."""
    return encode_command(
        endpoint, CommandType.PROGRAM_DATA, SEQUENCE[CommandType.PROGRAM_DATA],
        chunk, padding=CHUNK_PADDING,
    )


def encode_reboot(endpoint: int) -> bytes:
    """Encode a Reboot command."""
    return encode_command(endpoint, CommandType.REBOOT, SEQUENCE[CommandType.REBOOT], REBOOT_MAGIC)


def decode_info(data: bytes) -> BootloaderInfo:
    """
    Decode an Info response frame.

    flash_size is 2 ** ((byte3 << 8) | byte2) and the application starts
    at ((byte7 << 8) | byte6) * flash_size.
    """
    data = bytes(data)
    if len(data) != RESPONSE_FRAME_SIZE:
        raise ValueError(
            f"Info response must be {RESPONSE_FRAME_SIZE} bytes, got {len(data)}"
        )
    flash_size = 2 ** ((data[3] << 8) | data[2])
    return BootloaderInfo(
        response_code=data[1],
        flash_size=flash_size,
        bootloader_version=data[5],
        bootloader_reason=BootloaderReason(data[4]),
        app_offset=((data[7] << 8) | data[6]) * flash_size,
    )


def chunk_count(length: int) -> int:
    """Number of ProgramData frames needed for `length` bytes."""
    return math.ceil(length / CHUNK_SIZE)


def chunk_firmware(firmware: bytes) -> Iterator[bytes]:
    """Split firmware into 7-byte chunks; the last one is padded with 0xff."""
    for offset in range(0, len(firmware), CHUNK_SIZE):
        chunk = firmware[offset:offset + CHUNK_SIZE]
        yield bytes(chunk) + bytes([CHUNK_PADDING]) * (CHUNK_SIZE - len(chunk))


def echo_matches(request: bytes, response: Response) -> bool:
    """
    Check an echo response against the request frame it answers.

    The device returns the request payload shifted by one position:
    response bytes 2..7 carry request bytes 3..8.
    """
    return (
        response.is_ok
        and response.seq == request[1] >> 4
        and response.is_result
        and response.raw[2:RESPONSE_FRAME_SIZE] == request[3:REQUEST_FRAME_SIZE]
    )


def hexdump(data: bytes) -> str:
    """Format bytes as space-separated hex for log output."""
    return " ".join(f"{b:02x}" for b in data)

