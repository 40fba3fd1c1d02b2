# SPDX-License-Identifier: MIT
# Copyright (c) 2026 ADNT Sarl <info@adnt.io>

"""Pytest configuration: scripted HID device and hardware options."""

import pytest

from hidboot_protocol.protocol import RESULT_FRAME_TYPE


def make_response(seq: int = 0, frame_type: int = RESULT_FRAME_TYPE, status: int = 0,
                  payload: bytes = b"") -> bytes:
    """Build an 8-byte response frame."""
    body = bytes(payload) + bytes(6 - len(payload))
    return bytes([(seq << 4) | frame_type, status]) + body


class MockHidDevice:
    """
    Scripted stand-in for a hidapi device handle.

    Each entry in `responses` answers one read: bytes are returned as a
    list of ints, None plays a timeout, an exception instance is raised.
    """

    def __init__(self, responses=None):
        self.responses = list(responses or [])
        self.written = []
        self.read_timeouts = []
        self.closed = False

    def write(self, data) -> int:
        self.written.append(bytes(data))
        return len(data)

    def read(self, max_length: int, timeout_ms: int = 0):
        self.read_timeouts.append(timeout_ms)
        if not self.responses:
            return []
        resp = self.responses.pop(0)
        if resp is None:
            return []
        if isinstance(resp, Exception):
            raise resp
        return list(resp[:max_length])

    def get_product_string(self):
        return "Test Bootloader"

    def close(self):
        self.closed = True


@pytest.fixture
def mock_device():
    return MockHidDevice()


def pytest_addoption(parser):
    """Add custom command-line options."""
    parser.addoption(
        "--device",
        action="store",
        default=None,
        help="USB id of a device in bootloader mode (e.g., 1bcf:05ce)",
    )
    parser.addoption(
        "--protocol",
        action="store",
        type=int,
        default=1,
        help="Bootloader protocol version of the device (1 or 2)",
    )
    parser.addoption(
        "--firmware",
        action="store",
        default=None,
        help="Firmware binary to flash during integration tests",
    )


@pytest.fixture(scope="session")
def device_id(request):
    """Vendor/product id from the command line; skips hardware tests when absent."""
    value = request.config.getoption("--device")
    if value is None:
        pytest.skip("No device given (use --device VID:PID)")
    vid, pid = value.split(":")
    return int(vid, 16), int(pid, 16)


@pytest.fixture
def bootloader(request, device_id):
    """Open a session on the physical device."""
    from hidboot_protocol import Bootloader, ProtocolVersion, Transport

    version = ProtocolVersion(request.config.getoption("--protocol"))
    bl = Bootloader(Transport.open(*device_id), version)
    yield bl
    bl.close()
