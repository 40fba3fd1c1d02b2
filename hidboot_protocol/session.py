# SPDX-License-Identifier: MIT
# Copyright (c) 2026 ADNT Sarl <info@adnt.io>

"""
Bootloader session: command handlers and the flashing workflow.

A session owns an open Transport for its whole lifetime and runs one
command at a time, always write-then-read.
"""

import logging
import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Optional

from .protocol import (
    CHUNK_SIZE,
    ECHO_PATTERN,
    MAX_PROGRAM_LENGTH,
    MAX_PROGRAM_OFFSET,
    PAYLOAD_SIZE,
    BootloaderInfo,
    CommandType,
    ProtocolVersion,
    chunk_count,
    chunk_firmware,
    decode_info,
    echo_matches,
    encode_echo,
    encode_erase_app,
    encode_info,
    encode_program_data,
    encode_reboot,
    encode_start_programming,
    hexdump,
)
from .transport import (
    ACK_TIMEOUT_MS,
    ECHO_TIMEOUT_MS,
    ERASE_TIMEOUT_MS,
    INFO_TIMEOUT_MS,
    REBOOT_TIMEOUT_MS,
    ProtocolError,
    Transport,
    UploadError,
    check_status,
)

LOG = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


class EraseState(Enum):
    """Erase state machine."""
    IDLE = "idle"
    ERASING = "erasing"
    DONE = "done"
    FAILED = "failed"

    def __str__(self) -> str:
        return self.name


class ProgramState(Enum):
    """Upload state machine."""
    IDLE = "idle"
    STARTED = "started"
    STREAMING = "streaming"
    DONE = "done"
    FAILED = "failed"

    def __str__(self) -> str:
        return self.name


@dataclass
class ProgramSession:
    """State for a single firmware upload. Discarded when the upload ends."""
    app_offset: int
    total_length: int
    cursor: int = 0
    state: ProgramState = ProgramState.IDLE

    @property
    def chunks(self) -> int:
        return chunk_count(self.total_length)


class Bootloader:
    """
    Client for a device sitting in its HID bootloader.

    Example:
        with Bootloader(Transport.open(vid, pid)) as bl:
            bl.flash(firmware)
    """

    def __init__(self, transport: Transport,
                 version: ProtocolVersion = ProtocolVersion.V1):
        self._transport = transport
        self.version = ProtocolVersion(version)
        self.info_result: Optional[BootloaderInfo] = None
        self.last_upload: Optional[ProgramSession] = None
        self.erase_state = EraseState.IDLE

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def close(self):
        self._transport.close()

    @property
    def endpoint(self) -> int:
        return int(self.version)

    @property
    def app_offset(self) -> Optional[int]:
        """Application flash offset, known once info() has succeeded."""
        if self.info_result is None:
            return None
        return self.info_result.app_offset

    def _require(self, command: CommandType):
        if not self.version.supports(command):
            raise ProtocolError(f"{command} is not supported by protocol {self.version}")

    def check_image(self, firmware: bytes) -> None:
        """
        Check that firmware can be uploaded before anything touches flash.

        Raises:
            ProtocolError: If the protocol version cannot program
            UploadError: If the image is empty or too large
        """
        self._require(CommandType.START_PROGRAMMING)
        self._require(CommandType.PROGRAM_DATA)
        size = len(firmware)
        if size == 0:
            raise UploadError("Firmware image is empty")
        if size > MAX_PROGRAM_LENGTH:
            raise UploadError(f"Firmware too large: {size} > {MAX_PROGRAM_LENGTH} bytes")

    def _check_offset(self) -> int:
        if self.info_result is None:
            raise ProtocolError("Application offset unknown; run info() first")
        offset = self.info_result.app_offset
        if offset > MAX_PROGRAM_OFFSET:
            raise UploadError(f"Application offset 0x{offset:x} does not fit in 32 bits")
        return offset

    def info(self) -> BootloaderInfo:
        """
        Query flash geometry and boot state.

        Drains a stale frame first, then retries once on timeout.

        Raises:
            TimeoutError: If both attempts time out
        """
        self._require(CommandType.INFO)
        self._transport.drain()
        response = self._transport.exchange_with_retry(
            CommandType.INFO, encode_info(self.endpoint), INFO_TIMEOUT_MS
        )
        info = decode_info(response.raw)
        if info.response_code != 0:
            LOG.warning("Info returned response code %d", info.response_code)
        LOG.info(
            "Bootloader v%d, flash %d bytes, app offset 0x%08x, reason %s",
            info.bootloader_version, info.flash_size, info.app_offset,
            info.bootloader_reason,
        )
        self.info_result = info
        return info

    def echo_test(self, payload: Optional[bytes] = None, random: bool = False) -> None:
        """
        Send an Echo command and check the device answers it correctly.

        Args:
            payload: 7 bytes to send (default: seven 0xff)
            random: Send random bytes instead of the default pattern

        Raises:
            TimeoutError: If no response arrives
            ProtocolError: If the response does not match the request
        """
        self._require(CommandType.ECHO)
        if payload is None:
            payload = os.urandom(PAYLOAD_SIZE) if random else ECHO_PATTERN
        request = encode_echo(self.endpoint, payload)
        response = self._transport.exchange(CommandType.ECHO, request, ECHO_TIMEOUT_MS)
        if not echo_matches(request, response):
            raise ProtocolError(
                f"Echo mismatch: sent {hexdump(request)}, got {hexdump(response.raw)}"
            )
        LOG.info("Echo OK")

    def erase_app(self) -> None:
        """
        Erase the application region.

        Raises:
            DeviceError: If the device reports an error at any point
            TimeoutError: If the device stops answering
        """
        self._require(CommandType.ERASE_APP)
        LOG.info("Erasing application")
        self.erase_state = EraseState.ERASING
        try:
            self._transport.read_until_result(
                CommandType.ERASE_APP, encode_erase_app(self.endpoint), ERASE_TIMEOUT_MS
            )
        except Exception:
            self.erase_state = EraseState.FAILED
            raise
        self.erase_state = EraseState.DONE
        LOG.info("Erase complete")

    def start_programming(self, length: int, offset: int) -> None:
        """
        Announce an upload of `length` bytes at flash `offset`.

        Raises:
            DeviceError: If the device rejects the address or size
            TimeoutError: If no response arrives
        """
        self._require(CommandType.START_PROGRAMMING)
        frame = encode_start_programming(self.endpoint, length, offset)
        response = self._transport.exchange(
            CommandType.START_PROGRAMMING, frame, ACK_TIMEOUT_MS
        )
        check_status(CommandType.START_PROGRAMMING, response)

    def program_data(self, chunk: bytes) -> None:
        """
        Send one chunk of at most 7 bytes and wait for its ack.

        Raises:
            DeviceError: If the device rejects the chunk
            TimeoutError: If no ack arrives
        """
        self._require(CommandType.PROGRAM_DATA)
        response = self._transport.exchange(
            CommandType.PROGRAM_DATA, encode_program_data(self.endpoint, chunk),
            ACK_TIMEOUT_MS,
        )
        check_status(CommandType.PROGRAM_DATA, response)

    def program(
        self,
        firmware: bytes,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> ProgramSession:
        """
        Upload firmware to the application offset reported by info().

        Any failure aborts the whole upload; start again from erase_app().

        Args:
            firmware: Firmware binary data
            progress_callback: Optional callback(bytes_sent, total_bytes)

        Returns:
            The finished ProgramSession

        Raises:
            ProtocolError: If info() has not run yet
            UploadError: If the image is empty or too large, or the
                application offset does not fit the StartProgramming frame
        """
        firmware = bytes(firmware)
        self.check_image(firmware)
        app_offset = self._check_offset()
        size = len(firmware)

        upload = ProgramSession(app_offset=app_offset, total_length=size)
        self.last_upload = upload
        try:
            self.start_programming(size, upload.app_offset)
            upload.state = ProgramState.STARTED
            LOG.info("Programming %d bytes at 0x%08x in %d chunks",
                     size, upload.app_offset, upload.chunks)

            upload.state = ProgramState.STREAMING
            for chunk in chunk_firmware(firmware):
                self.program_data(chunk)
                upload.cursor = min(upload.cursor + CHUNK_SIZE, size)
                if progress_callback:
                    progress_callback(upload.cursor, size)
        except Exception:
            upload.state = ProgramState.FAILED
            LOG.error("Upload failed at byte %d of %d", upload.cursor, size)
            raise

        upload.state = ProgramState.DONE
        LOG.info("Programming complete")
        return upload

    def reboot(self) -> None:
        """
        Reboot into the application.

        A missing reply means the device already dropped off the bus.

        Raises:
            DeviceError: If the device refuses to reboot
        """
        self._require(CommandType.REBOOT)
        response = self._transport.exchange_or_disconnect(
            CommandType.REBOOT, encode_reboot(self.endpoint), REBOOT_TIMEOUT_MS
        )
        if response is not None:
            check_status(CommandType.REBOOT, response)
        LOG.info("Reboot sent")

    def flash(
        self,
        firmware: bytes,
        progress_callback: Optional[ProgressCallback] = None,
        echo: bool = False,
        reboot: bool = True,
    ) -> ProgramSession:
        """
        Run the full Info, Erase, Program, Reboot sequence.

        Args:
            firmware: Firmware binary data
            progress_callback: Optional callback(bytes_sent, total_bytes)
            echo: Run the echo self-test before erasing
            reboot: Reboot into the new application when done
        """
        firmware = bytes(firmware)
        self.check_image(firmware)
        self.info()
        self._check_offset()
        if echo:
            self.echo_test()
        self.erase_app()
        upload = self.program(firmware, progress_callback)
        if reboot:
            self.reboot()
        return upload

    def flash_file(
        self,
        path: Path,
        progress_callback: Optional[ProgressCallback] = None,
        echo: bool = False,
        reboot: bool = True,
    ) -> ProgramSession:
        """
        Flash firmware from a file.

        Raises:
            FileNotFoundError: If firmware file not found
        """
        firmware = Path(path).read_bytes()
        return self.flash(firmware, progress_callback, echo=echo, reboot=reboot)
