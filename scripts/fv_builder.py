#!/usr/bin/env python
# -*- coding: utf-8 -*-

import argparse
import os
import sys

from uefi_fv.compression import lzma_tool_codec
from uefi_fv.errors import FirmwareError
from uefi_fv.generator.uefi import (
    build_section, build_file, build_volume, build_compressed_volume,
    pack_sections)
from uefi_fv.utils import green, guid_bytes, print_error, dump_data
from uefi_fv.structs.uefi_structs import (
    FIRMWARE_VOLUME_GUIDS, EFI_FV_FILETYPE_RAW, EFI_SECTION_RAW,
    EFI_SECTION_USER_INTERFACE, file_type_code)


def read_file(path):
    try:
        with open(path, 'rb') as fh:
            return fh.read()
    except (IOError, OSError) as e:
        print_error("Error: Cannot read file (%s) (%s)." % (path, str(e)))
        sys.exit(1)


def build_payload_file(argument):
    '''Build a firmware file from a GUID:TYPE:PATH argument.

    RAW files hold the payload as-is, every other type wraps the payload in a
    RAW section followed by a user interface section naming the payload.
    '''
    try:
        guid, type_label, path = argument.split(":", 2)
        guid = guid_bytes(guid)
        file_type = file_type_code(type_label)
    except ValueError:
        print_error("Error: expected GUID:TYPE:PATH, got (%s)." % argument)
        sys.exit(1)

    payload = read_file(path)
    if file_type == EFI_FV_FILETYPE_RAW:
        return build_file(guid, file_type, payload)

    name = os.path.splitext(os.path.basename(path))[0]
    sections = [
        build_section(EFI_SECTION_RAW, payload),
        build_section(
            EFI_SECTION_USER_INTERFACE, (name + "\0").encode("utf-16le")),
    ]
    return build_file(guid, file_type, pack_sections(sections))


if __name__ == "__main__":
    parser = argparse.ArgumentParser(
        description="Build a UEFI firmware volume from firmware files.")
    parser.add_argument(
        '-o', "--output", required=True,
        help="Name of the output volume.")
    parser.add_argument(
        '-s', "--size", required=True, type=lambda v: int(v, 0),
        help="Size of the output volume.")
    parser.add_argument(
        '-c', "--compress", default=None, type=lambda v: int(v, 0),
        help="Build an inner volume of this size and store it LZMA "
        "compressed within the output volume.")
    parser.add_argument(
        "--guid", default=FIRMWARE_VOLUME_GUIDS["FFS2"],
        help="File system GUID of the volume(s).")
    parser.add_argument(
        '-a', "--add", default=[], action="append",
        help="Wrap a payload as a firmware file, as GUID:TYPE:PATH.")
    parser.add_argument(
        "--lzma-tool", default=None,
        help="Compress with an external LzmaCompress tool.")
    parser.add_argument(
        "files", nargs='*',
        help="Prebuilt firmware files (.ffs) to pack as-is.")
    args = parser.parse_args()

    firmware_files = [read_file(path) for path in args.files]
    firmware_files += [build_payload_file(argument) for argument in args.add]
    if len(firmware_files) == 0:
        print_error("Error: no firmware files to pack.")
        sys.exit(1)

    codecs = None
    if args.lzma_tool is not None:
        codec = lzma_tool_codec(args.lzma_tool)
        codecs = {codec.guid: codec}

    try:
        if args.compress is not None:
            inner_volume = build_volume(
                args.guid, args.compress, firmware_files)
            volume = build_compressed_volume(
                inner_volume, args.size, args.guid, codecs=codecs)
        else:
            volume = build_volume(args.guid, args.size, firmware_files)
    except (FirmwareError, ValueError) as e:
        print_error("Error: Cannot build volume (%s)." % str(e))
        sys.exit(1)

    dump_data(args.output, volume)
    print("[#] Volume of 0x%x bytes with %d file(s) written to %s." % (
        len(volume), len(firmware_files), green(args.output)))
