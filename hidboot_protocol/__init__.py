# SPDX-License-Identifier: MIT
# Copyright (c) 2026 ADNT Sarl <info@adnt.io>

"""
HID Bootloader Protocol - Python client library.

This package provides a Python interface to flash firmware through a
microcontroller's USB HID bootloader.

Example usage:
    from hidboot_protocol import Bootloader, Transport

    with Bootloader(Transport.open(0x1bcf, 0x05ce)) as bl:
        # Get flash geometry
        info = bl.info()
        print(f"App offset: 0x{info.app_offset:08x}")

        # Erase, upload and reboot
        bl.erase_app()
        bl.program(
            firmware,
            progress_callback=lambda sent, total: print(f"{sent}/{total}")
        )
        bl.reboot()
"""

from .protocol import (
    CommandType,
    FrameType,
    ProtocolVersion,
    BootloaderReason,
    BootloaderError,
    BootloaderInfo,
    Response,
    encode_command,
    encode_info,
    encode_erase_app,
    encode_echo,
    encode_start_programming,
    encode_program_data,
    encode_reboot,
    decode_response,
    decode_info,
    chunk_firmware,
    chunk_count,
)
from .session import (
    Bootloader,
    EraseState,
    ProgramSession,
    ProgramState,
)
from .transport import (
    Transport,
    TransportError,
    TimeoutError,
    ProtocolError,
    DeviceError,
    UploadError,
)

__version__ = "0.1.0"

__all__ = [
    # Protocol types
    "CommandType",
    "FrameType",
    "ProtocolVersion",
    "BootloaderReason",
    "BootloaderError",
    "BootloaderInfo",
    "Response",
    # Protocol encoding
    "encode_command",
    "encode_info",
    "encode_erase_app",
    "encode_echo",
    "encode_start_programming",
    "encode_program_data",
    "encode_reboot",
    "decode_response",
    "decode_info",
    "chunk_firmware",
    "chunk_count",
    # Session
    "Bootloader",
    "EraseState",
    "ProgramSession",
    "ProgramState",
    # Transport
    "Transport",
    "TransportError",
    "TimeoutError",
    "ProtocolError",
    "DeviceError",
    "UploadError",
]
