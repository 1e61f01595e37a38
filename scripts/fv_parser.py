#!/usr/bin/env python
# -*- coding: utf-8 -*-

import argparse
import os
import sys

from uefi_fv import parse_image
from uefi_fv.compression import lzma_tool_codec
from uefi_fv.flash import DEFAULT_STRIDE
from uefi_fv.utils import red, print_error


def _process_show_extract(parsed_object, args, output):
    if not args.quiet:
        parsed_object.showinfo('')

    if args.verbose:
        for warning in parsed_object.iterate_warnings():
            print("%s %s" % (red("Diagnostic:"), str(warning)))

    if args.extract:
        print("Dumping...")
        parsed_object.dump(output)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(
        description="Parse, and optionally extract, UEFI firmware volumes "
        "within a firmware image.")
    parser.add_argument(
        '-s', "--start", default=0, type=lambda v: int(v, 0),
        help="Offset within the input to start scanning.")
    parser.add_argument(
        '-l', "--length", default=None, type=lambda v: int(v, 0),
        help="Number of bytes to scan from the start offset.")
    parser.add_argument(
        "--stride", default=DEFAULT_STRIDE, type=lambda v: int(v, 0),
        help="Volume signature scanning granularity (default %d)." %
        DEFAULT_STRIDE)
    parser.add_argument(
        "--no-descriptor", default=False, action="store_true",
        help="Do not recognize Intel flash descriptors.")
    parser.add_argument(
        "--lzma-tool", default=None,
        help="Decompress LZMA sections with an external LzmaCompress tool.")
    parser.add_argument(
        '-q', "--quiet", default=False, action="store_true",
        help="Do not show info.")
    parser.add_argument(
        '-v', "--verbose", default=False, action="store_true",
        help="Repeat every diagnostic after the info.")
    parser.add_argument(
        '-o', "--output", default=".",
        help="Dump firmware objects to this folder.")
    parser.add_argument(
        '-e', "--extract", action="store_true",
        help="Extract all volumes/files/sections.")
    parser.add_argument(
        "file", nargs='+',
        help="The file(s) to work on")
    args = parser.parse_args()

    if args.stride <= 0:
        print_error("Error: the stride must be positive.")
        sys.exit(1)
    if args.start < 0 or (args.length is not None and args.length < 0):
        print_error("Error: the start and length must not be negative.")
        sys.exit(1)

    codecs = None
    if args.lzma_tool is not None:
        codec = lzma_tool_codec(args.lzma_tool)
        codecs = {codec.guid: codec}

    for file_name in args.file:
        try:
            with open(file_name, 'rb') as fh:
                input_data = fh.read()
        except (IOError, OSError) as e:
            print_error("Error: Cannot read file (%s) (%s)." % (
                file_name, str(e)))
            continue

        firmware = parse_image(
            input_data, start=args.start, length=args.length,
            stride=args.stride, search_descriptor=not args.no_descriptor,
            codecs=codecs)
        if len(firmware.regions) == 0:
            print_error("Error: no firmware content found in %s." % (
                file_name))
            continue
        output = args.output
        if len(args.file) > 1:
            output = os.path.join(
                output, "%s_output" % os.path.basename(file_name))
        _process_show_extract(firmware, args, output)
