# SPDX-License-Identifier: MIT
# Copyright (c) 2026 ADNT Sarl <info@adnt.io>

"""
Transport layer for HID bootloader communication.

Wraps an open HID handle with blocking, timeout-bounded frame I/O and
the per-command retry rules the bootloader expects.
"""

import logging
from typing import Optional

import hid

from .protocol import (
    RESPONSE_FRAME_SIZE,
    BootloaderError,
    CommandType,
    Response,
    decode_response,
    hexdump,
)

LOG = logging.getLogger(__name__)

# Read timeouts, in milliseconds
DRAIN_TIMEOUT_MS = 1
INFO_TIMEOUT_MS = 100
ECHO_TIMEOUT_MS = 100
ERASE_TIMEOUT_MS = 100
ACK_TIMEOUT_MS = 100
REBOOT_TIMEOUT_MS = 40


class TransportError(Exception):
    """Base exception for transport errors."""
    pass


class TimeoutError(TransportError):
    """Timeout waiting for response."""
    pass


class ProtocolError(TransportError):
    """Protocol-level error (unexpected response, etc.)."""
    pass


class DeviceError(TransportError):
    """The bootloader answered with a non-zero status byte."""

    def __init__(self, command: CommandType, status: int):
        self.command = command
        self.status = status
        self.error = BootloaderError.from_status(status)
        super().__init__(f"{command} failed: {self.error} (status 0x{status:02x})")


class UploadError(TransportError):
    """Error during firmware upload."""
    pass


def check_status(command: CommandType, response: Response) -> Response:
    """Raise DeviceError unless the response status is zero."""
    if not response.is_ok:
        raise DeviceError(command, response.status)
    return response


class Transport:
    """
    HID transport for the bootloader.

    Takes ownership of an already-open hidapi handle. Can be used as a
    context manager:
        with Transport.open(0x1bcf, 0x05ce) as t:
            t.write_frame(frame)
            response = t.read_frame(100)
    """

    def __init__(self, device):
        self._dev = device

    @classmethod
    def open(cls, vendor_id: int, product_id: int) -> "Transport":
        """
        Open the first HID device matching vendor_id/product_id.

        Raises:
            TransportError: If the device cannot be opened
        """
        device = hid.device()
        try:
            device.open(vendor_id, product_id)
        except (OSError, ValueError) as e:
            raise TransportError(
                f"Unable to open device {vendor_id:04x}:{product_id:04x}: {e}"
            ) from e
        LOG.debug("Opened %04x:%04x", vendor_id, product_id)
        return cls(device)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def close(self):
        """Close the HID handle."""
        if self._dev is not None:
            self._dev.close()
            self._dev = None

    @property
    def product(self) -> Optional[str]:
        """Return the device product string, if it reports one."""
        try:
            return self._dev.get_product_string()
        except (OSError, ValueError):
            return None

    def write_frame(self, frame: bytes) -> int:
        """Write one request frame."""
        LOG.debug("-> %s", hexdump(frame))
        try:
            written = self._dev.write(frame)
        except (OSError, ValueError) as e:
            raise TransportError(f"Write failed: {e}") from e
        if written < 0:
            raise TransportError("Write failed")
        return written

    def read_frame(self, timeout_ms: int) -> Optional[Response]:
        """
        Read one response frame.

        Returns:
            The decoded Response, or None if nothing arrived before the timeout

        Raises:
            TransportError: If the read call itself fails
            ProtocolError: If a short frame arrives
        """
        try:
            data = self._dev.read(RESPONSE_FRAME_SIZE, timeout_ms)
        except (OSError, ValueError) as e:
            raise TransportError(f"Read failed: {e}") from e
        if not data:
            return None
        LOG.debug("<- %s", hexdump(data))
        try:
            return decode_response(bytes(data))
        except ValueError as e:
            raise ProtocolError(str(e)) from e

    def drain(self) -> None:
        """Discard one stale buffered frame, if any."""
        stale = self.read_frame(DRAIN_TIMEOUT_MS)
        if stale is not None:
            LOG.debug("Drained stale frame")

    def exchange(self, command: CommandType, frame: bytes, timeout_ms: int) -> Response:
        """
        Write a frame and wait for a single response.

        Raises:
            TimeoutError: If no response arrives
        """
        self.write_frame(frame)
        response = self.read_frame(timeout_ms)
        if response is None:
            raise TimeoutError(f"Timeout waiting for {command} response")
        return response

    def exchange_with_retry(self, command: CommandType, frame: bytes,
                            timeout_ms: int, attempts: int = 2) -> Response:
        """
        Write a frame and wait for a response, re-sending on timeout.

        Raises:
            TimeoutError: If every attempt times out
        """
        for attempt in range(1, attempts + 1):
            self.write_frame(frame)
            response = self.read_frame(timeout_ms)
            if response is not None:
                if attempt > 1:
                    LOG.warning("%s answered on attempt %d", command, attempt)
                return response
            LOG.debug("%s attempt %d timed out", command, attempt)
        raise TimeoutError(f"Timeout waiting for {command} response after {attempts} attempts")

    def read_until_result(self, command: CommandType, frame: bytes,
                          timeout_ms: int) -> Response:
        """
        Write a frame, then read frames until a Result frame arrives.

        Every frame, intermediate or final, must carry status 0.

        Raises:
            DeviceError: On the first non-zero status
            TimeoutError: If any read times out
        """
        self.write_frame(frame)
        while True:
            response = self.read_frame(timeout_ms)
            if response is None:
                raise TimeoutError(f"Timeout waiting for {command} result")
            check_status(command, response)
            if response.is_result:
                return response
            LOG.debug("%s in progress (frame type %d)", command, response.frame_type)

    def exchange_or_disconnect(self, command: CommandType, frame: bytes,
                               timeout_ms: int) -> Optional[Response]:
        """
        Write a frame and wait for a response that may never come.

        Returns:
            The Response, or None if the device went away before answering
        """
        self.write_frame(frame)
        response = self.read_frame(timeout_ms)
        if response is None:
            LOG.debug("No %s response; device disconnected", command)
        return response
