'''Compression codecs for GUID-defined sections.

A codec is selected by the algorithm GUID stored in the section. Only the
LZMA custom-decompress GUID is registered by default.
'''

import lzma
import os
import struct
import subprocess
import tempfile

from .errors import UnsupportedCompression, CompressionError
from .structs.uefi_structs import FIRMWARE_GUIDED_GUIDS

LZMA_CUSTOM_DECOMPRESS_GUID = FIRMWARE_GUIDED_GUIDS["LZMA_COMPRESSED"]

# props(1) + dictionary size(4) precede the 64-bit uncompressed size.
LZMA_SIZE_OFFSET = 5
LZMA_HEADER_SIZE = 13

# Upper bound on a single decompressed payload.
MAX_DECOMPRESSED_SIZE = 0x10000000


class CompressionCodec(object):
    '''Compress and decompress payloads for one algorithm GUID.'''

    guid = None

    def compress(self, data):
        raise NotImplementedError

    def decompress(self, data):
        raise NotImplementedError


class LzmaCodec(CompressionCodec):
    '''LZMA in the .lzma container used by EDK2's LzmaCompress.

    The header records the real uncompressed size, which firmware
    decompressors rely on.
    '''

    guid = LZMA_CUSTOM_DECOMPRESS_GUID

    def __init__(self, preset=6, max_size=MAX_DECOMPRESSED_SIZE):
        self.preset = preset
        self.max_size = max_size

    def compress(self, data):
        try:
            compressed = lzma.compress(
                data, format=lzma.FORMAT_ALONE, preset=self.preset)
        except lzma.LZMAError as e:
            raise CompressionError("LZMA compression failed (%s)" % str(e))
        return compressed[:LZMA_SIZE_OFFSET] + \
            struct.pack("<Q", len(data)) + compressed[LZMA_HEADER_SIZE:]

    def _decompress(self, data):
        decompressor = lzma.LZMADecompressor(format=lzma.FORMAT_ALONE)
        output = decompressor.decompress(data, max_length=self.max_size + 1)
        if len(output) > self.max_size:
            raise CompressionError(
                "LZMA payload expands past 0x%x bytes" % self.max_size)
        if not decompressor.eof:
            raise lzma.LZMAError(
                "Compressed data ended before the end-of-stream marker")
        return output

    def decompress(self, data):
        try:
            return self._decompress(data)
        except lzma.LZMAError:
            pass
        # liblzma may reject a known size combined with an end marker
        # (https://github.com/python/cpython/issues/92018), retry with the
        # size marked unknown.
        buf = data[:LZMA_SIZE_OFFSET] + b"\xFF" * 8 + data[LZMA_HEADER_SIZE:]
        try:
            return self._decompress(buf)
        except lzma.LZMAError as e:
            raise CompressionError("LZMA decompression failed (%s)" % str(e))


class ExternalCodec(CompressionCodec):
    '''Run an external compressor such as EDK2's LzmaCompress.

    Each command is a list of arguments where "{input}" and "{output}" are
    replaced with temporary file paths.
    '''

    def __init__(self, guid, compress_command, decompress_command):
        self.guid = guid
        self.compress_command = compress_command
        self.decompress_command = decompress_command

    def _run(self, command, data):
        with tempfile.TemporaryDirectory() as workdir:
            input_path = os.path.join(workdir, "input.bin")
            output_path = os.path.join(workdir, "output.bin")
            with open(input_path, "wb") as fh:
                fh.write(data)
            args = [arg.format(input=input_path, output=output_path)
                    for arg in command]
            try:
                subprocess.run(
                    args, stdout=subprocess.PIPE, stderr=subprocess.PIPE,
                    check=True)
            except (OSError, subprocess.CalledProcessError) as e:
                raise CompressionError(
                    "External codec %s failed (%s)" % (args[0], str(e)))
            if not os.path.exists(output_path):
                raise CompressionError(
                    "External codec %s wrote no output" % args[0])
            with open(output_path, "rb") as fh:
                return fh.read()

    def compress(self, data):
        return self._run(self.compress_command, data)

    def decompress(self, data):
        return self._run(self.decompress_command, data)


def lzma_tool_codec(tool):
    '''An ExternalCodec for an EDK2-style LzmaCompress binary.'''
    return ExternalCodec(
        LZMA_CUSTOM_DECOMPRESS_GUID,
        [tool, "-e", "-o", "{output}", "{input}"],
        [tool, "-d", "-o", "{output}", "{input}"])


DEFAULT_CODECS = {
    LZMA_CUSTOM_DECOMPRESS_GUID: LzmaCodec(),
}


def get_codec(guid, codecs=None):
    '''Return the codec registered for the textual algorithm GUID.'''
    codecs = DEFAULT_CODECS if codecs is None else codecs
    if guid not in codecs:
        raise UnsupportedCompression(
            "No codec for GUID-defined section %s" % guid)
    return codecs[guid]


def compress(data, guid=LZMA_CUSTOM_DECOMPRESS_GUID, codecs=None):
    return get_codec(guid, codecs).compress(data)


def decompress(data, guid=LZMA_CUSTOM_DECOMPRESS_GUID, codecs=None):
    return get_codec(guid, codecs).decompress(data)
