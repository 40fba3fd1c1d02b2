# SPDX-License-Identifier: MIT
# Copyright (c) 2026 ADNT Sarl <info@adnt.io>

"""Tests for the hidboot_upload command-line tool."""

import pytest
from unittest.mock import patch

import hidboot_upload
from hidboot_protocol import Transport
from hidboot_protocol.protocol import RESULT_FRAME_TYPE, encode_erase_app, encode_info

from conftest import MockHidDevice, make_response

INFO_RESPONSE = bytes([RESULT_FRAME_TYPE, 0, 16, 0, 3, 1, 2, 0])


def run(argv, device):
    with patch("sys.argv", ["hidboot_upload.py"] + argv), \
            patch("hidboot_upload.Transport.open", return_value=Transport(device)) as mock_open:
        hidboot_upload.main()
    return mock_open


class TestCli:
    """Tests for main()."""

    def test_info(self, capsys):
        device = MockHidDevice([None, INFO_RESPONSE])
        mock_open = run(["info"], device)

        mock_open.assert_called_once_with(0x1BCF, 0x05CE)
        out = capsys.readouterr().out
        assert "Flash size:    65536 bytes" in out
        assert "App offset:    0x00020000" in out
        assert device.closed is True

    def test_custom_ids_and_protocol(self):
        device = MockHidDevice([make_response()])
        mock_open = run(["--vid", "0x1234", "--pid", "42", "--protocol", "2", "erase"], device)

        mock_open.assert_called_once_with(0x1234, 42)
        assert device.written == [encode_erase_app(2)]

    def test_flash(self, tmp_path, capsys):
        path = tmp_path / "fw.bin"
        path.write_bytes(b"\x01" * 10)
        device = MockHidDevice([
            None, INFO_RESPONSE,
            make_response(),
            make_response(seq=9),
            make_response(seq=1),
            make_response(seq=1),
            None,
        ])
        run(["flash", str(path)], device)

        out = capsys.readouterr().out
        assert "Firmware flashed successfully!" in out
        assert device.written[0] == encode_info(1)
        assert len(device.written) == 6

    def test_flash_minimal_protocol_refused(self, tmp_path, capsys):
        """Protocol 2 cannot program, so flash stops before the erase."""
        path = tmp_path / "fw.bin"
        path.write_bytes(b"\x01" * 10)
        device = MockHidDevice([None, INFO_RESPONSE, make_response()])
        with pytest.raises(SystemExit) as exc_info:
            run(["--protocol", "2", "flash", str(path)], device)
        assert exc_info.value.code == 1
        assert "not supported" in capsys.readouterr().out
        assert device.written == []

    def test_missing_file(self, tmp_path, capsys):
        device = MockHidDevice([])
        with pytest.raises(SystemExit) as exc_info:
            run(["flash", str(tmp_path / "nope.bin")], device)
        assert exc_info.value.code == 1
        assert "File not found" in capsys.readouterr().out

    def test_device_error_exits(self, capsys):
        device = MockHidDevice([make_response(status=4)])
        with pytest.raises(SystemExit) as exc_info:
            run(["erase"], device)
        assert exc_info.value.code == 1
        assert "SUBSYSTEM_ERROR" in capsys.readouterr().out
        assert device.closed is True

    def test_list(self, capsys):
        devices = [{
            "vendor_id": 0x1BCF, "product_id": 0x05CE,
            "manufacturer_string": "Acme", "product_string": "Bootloader",
            "path": b"/dev/hidraw0",
        }]
        with patch("sys.argv", ["hidboot_upload.py", "list"]), \
                patch("hidboot_upload.hid.enumerate", return_value=devices):
            hidboot_upload.main()
        assert "1bcf:05ce  Acme Bootloader" in capsys.readouterr().out
