#!/usr/bin/env python3
# SPDX-License-Identifier: MIT
# Copyright (c) 2026 ADNT Sarl <info@adnt.io>

"""
Firmware upload tool for HID bootloaders.

Usage:
    python hidboot_upload.py list
    python hidboot_upload.py --vid 0x1bcf --pid 0x05ce info
    python hidboot_upload.py --vid 0x1bcf --pid 0x05ce flash firmware.bin
    python hidboot_upload.py --protocol 2 echo --random

Requirements:
    pip install hidapi
"""

import argparse
import logging
import sys
from pathlib import Path

import hid

from hidboot_protocol import Bootloader, ProtocolVersion, Transport
from hidboot_protocol.transport import TransportError

DEFAULT_VID = 0x1BCF
DEFAULT_PID = 0x05CE


def cmd_list():
    """List HID devices."""
    print("List of devices:")
    for dev in hid.enumerate():
        name = f"{dev.get('manufacturer_string') or ''} {dev.get('product_string') or ''}"
        print(f"  {dev['vendor_id']:04x}:{dev['product_id']:04x}  {name.strip()}")


def cmd_info(bootloader: Bootloader):
    """Print bootloader info."""
    info = bootloader.info()

    print("Bootloader Info:")
    print(f"  Response code: {info.response_code}")
    print(f"  Version:       {info.bootloader_version}")
    print(f"  Reason:        {info.bootloader_reason}")
    print(f"  Flash size:    {info.flash_size} bytes")
    print(f"  App offset:    0x{info.app_offset:08x}")


def cmd_echo(bootloader: Bootloader, random: bool):
    """Run the echo self-test."""
    print("Echo test... ", end="", flush=True)
    bootloader.echo_test(random=random)
    print("OK")


def cmd_erase(bootloader: Bootloader):
    """Erase the application region."""
    print("Erasing... ", end="", flush=True)
    bootloader.erase_app()
    print("OK")


def cmd_flash(bootloader: Bootloader, firmware_path: Path, echo: bool, reboot: bool):
    """Erase, upload and reboot."""
    firmware = firmware_path.read_bytes()
    size = len(firmware)

    print(f"Firmware: {firmware_path} ({size} bytes)")

    def progress(sent: int, total: int):
        pct = sent * 100 // total
        print(f"\rUploading: {pct:3d}% ({sent}/{total} bytes)", end="", flush=True)

    upload = bootloader.flash(firmware, progress_callback=progress, echo=echo, reboot=reboot)
    print("\rUploading: 100% - Complete!          ")
    print(f"Target:   0x{upload.app_offset:08x}")
    if reboot:
        print("Rebooted into application")

    print()
    print("Firmware flashed successfully!")


def cmd_reboot(bootloader: Bootloader):
    """Reboot the device."""
    print("Rebooting device... ", end="", flush=True)
    bootloader.reboot()
    print("OK")


def parse_int(value: str) -> int:
    return int(value, 0)


def main():
    parser = argparse.ArgumentParser(
        description="Firmware upload tool for HID bootloaders"
    )
    parser.add_argument("--vid", type=parse_int, default=DEFAULT_VID,
                        help=f"USB vendor id (default 0x{DEFAULT_VID:04x})")
    parser.add_argument("--pid", type=parse_int, default=DEFAULT_PID,
                        help=f"USB product id (default 0x{DEFAULT_PID:04x})")
    parser.add_argument("--protocol", type=int, default=1, choices=[1, 2],
                        help="Bootloader protocol version (1=full, 2=minimal)")
    parser.add_argument("--verbose", "-v", action="store_true",
                        help="Log every frame")

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("list", help="List HID devices")
    subparsers.add_parser("info", help="Show bootloader info")

    echo_parser = subparsers.add_parser("echo", help="Run the echo self-test")
    echo_parser.add_argument("--random", action="store_true",
                             help="Send random bytes instead of 0xff")

    subparsers.add_parser("erase", help="Erase the application region")

    flash_parser = subparsers.add_parser("flash", help="Erase, upload and reboot")
    flash_parser.add_argument("file", type=Path, help="Firmware binary file")
    flash_parser.add_argument("--echo", action="store_true",
                              help="Run the echo self-test before erasing")
    flash_parser.add_argument("--no-reboot", action="store_true",
                              help="Stay in the bootloader after upload")

    subparsers.add_parser("reboot", help="Reboot the device")

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    if args.command == "list":
        cmd_list()
        return

    if args.command == "flash" and not args.file.exists():
        print(f"Error: File not found: {args.file}")
        sys.exit(1)

    try:
        transport = Transport.open(args.vid, args.pid)
    except TransportError as e:
        print(f"Error: {e}")
        sys.exit(1)

    bootloader = Bootloader(transport, ProtocolVersion(args.protocol))
    if transport.product:
        print(f"Product: {transport.product}")

    try:
        if args.command == "info":
            cmd_info(bootloader)
        elif args.command == "echo":
            cmd_echo(bootloader, args.random)
        elif args.command == "erase":
            cmd_erase(bootloader)
        elif args.command == "flash":
            cmd_flash(bootloader, args.file, args.echo, not args.no_reboot)
        elif args.command == "reboot":
            cmd_reboot(bootloader)
    except TransportError as e:
        print(f"\nError: {e}")
        sys.exit(1)
    finally:
        bootloader.close()


if __name__ == "__main__":
    main()
