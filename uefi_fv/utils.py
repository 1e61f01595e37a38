# -*- coding: utf-8 -*-

import os
import sys
import struct

from .errors import TruncatedInput


def blue(msg):
    '''Return the input string as console-escaped blue.'''
    return "\033[1;36m%s\033[1;m" % msg


def red(msg):
    '''Return the input string as console-escaped red.'''
    return "\033[31m%s\033[1;m" % msg


def green(msg):
    '''Return the input string as console-escaped green.'''
    return "\033[32m%s\033[1;m" % msg


def purple(msg):
    '''Return the input string as console-escaped purple.'''
    return "\033[1;35m%s\033[1;m" % msg


def print_error(msg):
    '''Write the input string to stderr.'''
    print(msg, file=sys.stderr)


def sguid(data, offset=0):
    '''Binary GUID (mixed-endian layout) as a canonical string.

    Args:
        data (binary): Buffer holding the GUID.
        offset (Optional[int]): Position of the GUID within data.

    Return:
        string: The 8-4-4-4-12 textual form.
    '''
    if data is None or len(data) - offset < 16:
        raise TruncatedInput(
            "GUID requires 16 bytes, %d available" % (
                0 if data is None else max(len(data) - offset, 0)),
            offset=offset)
    a, b, c = struct.unpack_from("<IHH", data, offset)
    d, e = struct.unpack_from(">H6s", data, offset + 8)
    return "%08x-%04x-%04x-%04x-%s" % (
        a, b, c, d, "".join("%02x" % byte for byte in bytearray(e)))


def guid_bytes(s):
    '''Canonical string GUID as its 16-byte binary layout.'''
    parts = s.strip().split("-")
    if [len(part) for part in parts] != [8, 4, 4, 4, 12]:
        raise ValueError("Malformed GUID (%s)." % s)
    return struct.pack(
        "<IHH", int(parts[0], 16), int(parts[1], 16), int(parts[2], 16)
    ) + bytes.fromhex(parts[3] + parts[4])


def bit_set(field, bit):
    '''Check if bit is set (1) in field.'''
    return (field & bit == bit)


def align(value, alignment):
    '''Round value up to the next multiple of alignment.'''
    return (value + alignment - 1) & ~(alignment - 1)


def is_uniform(data):
    '''True if every byte in data equals the first (or data is empty).'''
    return data[:1] * len(data) == data


def unpack_length(data, offset, width, extended_offset, extended_width):
    '''Read a legacy length field, following the extended length field when
    the legacy one holds the all-ones sentinel.

    Args:
        data (binary): Buffer holding the header.
        offset (int): Position of the legacy length field.
        width (int): Byte width of the legacy field.
        extended_offset (int): Position of the extended field.
        extended_width (int): Byte width of the extended field.

    Return:
        pair (int, bool): The size and whether the extended field was used.
    '''
    if len(data) < offset + width:
        raise TruncatedInput(
            "length field requires %d bytes" % width, offset=offset)
    size = int.from_bytes(data[offset:offset + width], "little")
    if size != (1 << (width * 8)) - 1:
        return (size, False)
    if len(data) < extended_offset + extended_width:
        raise TruncatedInput(
            "extended length field requires %d bytes" % extended_width,
            offset=extended_offset)
    size = int.from_bytes(
        data[extended_offset:extended_offset + extended_width], "little")
    return (size, True)


def pack_length(size, width):
    '''Little-endian bytes of size in a field of width bytes.'''
    return size.to_bytes(width, "little")


def dump_data(name, data):
    '''Write binary data to name.

    Args:
        name (string): Path to output file, created if it does not exist.
        data (binary): Content to be written.
    '''
    try:
        if os.path.dirname(name) != '':
            if not os.path.exists(os.path.dirname(name)):
                os.makedirs(os.path.dirname(name))
        with open(name, 'wb') as fh:
            fh.write(data)
        print("Wrote: %s" % (red(name)))
    except (IOError, OSError) as e:
        print_error("Error: could not write (%s), (%s)." % (name, str(e)))
