# -*- coding: utf-8 -*-
'''Partition a raw flash image into descriptor, volume and unknown regions.
'''

import os
import struct

from .base import FirmwareObject, RawObject
from .errors import FirmwareError
from .uefi import FirmwareVolume
from .utils import blue, dump_data, is_uniform
from .structs.flash_structs import *
from .structs.uefi_structs import FV_SIGNATURE, FV_HEADER_SIZE

# Offsets of the volume length and signature within a volume header.
FV_LENGTH_OFFSET = 0x20
FV_SIGNATURE_OFFSET = 0x28

DEFAULT_STRIDE = 8


class FlashDescriptor(FirmwareObject):
    '''An Intel flash descriptor, recognized by its signature only.'''

    def __init__(self, data, offset=0):
        FirmwareObject.__init__(self)
        self.valid_header = False
        self.offset = offset
        self.path = "descriptor-0x%x" % offset
        if data[FLASH_HEADER_OFFSET:FLASH_HEADER_OFFSET + 4] != FLASH_HEADER:
            return

        self.valid_header = True
        self.data = data[:FLASH_DESCRIPTOR_SIZE]

    @property
    def size(self):
        return len(self.data)

    def process(self):
        return self.valid_header

    def showinfo(self, ts='', index=None):
        print("%s%s offset= 0x%x size= 0x%x (%d bytes)" % (
            ts, blue("Flash Descriptor:"), self.offset,
            len(self.data), len(self.data)))

    def dump(self, parent='', index=None):
        dump_data(
            os.path.join(parent, "descriptor-0x%x.fd" % self.offset),
            self.data)


class Region(object):
    '''A contiguous byte range of the input.

    kind is one of "descriptor", "volume" or "unknown"; object holds the
    FlashDescriptor, FirmwareVolume or RawObject covering the range.
    '''

    DESCRIPTOR = "descriptor"
    VOLUME = "volume"
    UNKNOWN = "unknown"

    def __init__(self, kind, offset, data, _object):
        self.kind = kind
        self.offset = offset
        self.data = data
        self.object = _object

    @property
    def size(self):
        return len(self.data)

    def __repr__(self):
        return "Region(%s, offset=0x%x, size=0x%x)" % (
            self.kind, self.offset, self.size)


class RegionScanner(object):
    '''Scan an image for flash descriptor and firmware volume signatures.

    Candidate offsets are visited every stride bytes from start. A descriptor
    signature yields a fixed-size descriptor region, a volume signature with
    a length that fits yields a volume region; the scan resumes past either.
    Bytes in between form unknown regions, which are dropped when uniform.
    '''

    def __init__(self, data, start=0, length=None, stride=DEFAULT_STRIDE,
                 search_descriptor=True, codecs=None):
        '''Create a RegionScanner.

        Args:
            data (binary): The entire input file contents.
            start (Optional[int]): First offset to scan.
            length (Optional[int]): Number of bytes to scan from start.
            stride (Optional[int]): Candidate alignment, relative to start.
            search_descriptor (Optional[bool]): Detect flash descriptors.
            codecs (Optional[dict]): Compression codecs keyed by GUID.
        '''
        if stride <= 0:
            raise ValueError("Scan stride must be positive.")
        if start < 0 or (length is not None and length < 0):
            raise ValueError("Scan start and length must not be negative.")
        self.data = data
        self.start = min(start, len(data))
        self.end = len(data)
        if length is not None:
            self.end = min(self.end, self.start + length)
        self.stride = stride
        self.search_descriptor = search_descriptor
        self.codecs = codecs
        self.regions = []

    def _find_aligned(self, signature, position, offset):
        '''First stride-aligned candidate >= offset with signature at
        candidate + position.'''
        index = self.data.find(signature, offset + position, self.end)
        while index >= 0:
            candidate = index - position
            if (candidate - self.start) % self.stride == 0:
                return candidate
            index = self.data.find(signature, index + 1, self.end)
        return None

    def _next_candidate(self, offset):
        candidates = []
        if self.search_descriptor:
            candidates.append(self._find_aligned(
                FLASH_HEADER, FLASH_HEADER_OFFSET, offset))
        candidates.append(self._find_aligned(
            FV_SIGNATURE, FV_SIGNATURE_OFFSET, offset))
        candidates = [c for c in candidates if c is not None]
        if len(candidates) == 0:
            return None
        return min(candidates)

    def _match_descriptor(self, offset):
        if not self.search_descriptor:
            return None
        end = min(offset + FLASH_DESCRIPTOR_SIZE, self.end)
        descriptor = FlashDescriptor(self.data[offset:end], offset)
        if not descriptor.process():
            return None
        return Region(Region.DESCRIPTOR, offset, descriptor.data, descriptor)

    def _match_volume(self, offset):
        signature_offset = offset + FV_SIGNATURE_OFFSET
        if self.data[signature_offset:signature_offset + 4] != FV_SIGNATURE:
            return None
        size = struct.unpack_from(
            "<Q", self.data, offset + FV_LENGTH_OFFSET)[0]
        if size < FV_HEADER_SIZE or offset + size > self.end:
            return None
        try:
            volume = FirmwareVolume(
                self.data[offset:offset + size], offset, name="0x%x" % offset,
                codecs=self.codecs)
        except FirmwareError:
            return None
        volume.process()
        return Region(Region.VOLUME, offset, volume.data, volume)

    def _flush(self, pending, offset):
        if pending is None or offset <= pending:
            return
        data = self.data[pending:offset]
        if is_uniform(data):
            return
        self.regions.append(Region(
            Region.UNKNOWN, pending, data,
            RawObject(data, pending, "unknown-0x%x" % pending)))

    def scan(self):
        '''Partition the scanned range into an ordered list of Regions.'''
        self.regions = []
        offset = self.start
        # None while seeking, else the start of the open unknown region.
        pending = None

        while offset < self.end:
            candidate = self._next_candidate(offset)
            if candidate is None:
                if pending is None:
                    pending = offset
                break
            if candidate > offset and pending is None:
                pending = offset

            region = self._match_descriptor(candidate)
            if region is None:
                region = self._match_volume(candidate)
            if region is None:
                # Signature without a usable header, keep accumulating.
                if pending is None:
                    pending = candidate
                offset = candidate + self.stride
                continue

            self._flush(pending, candidate)
            pending = None
            self.regions.append(region)
            offset = candidate + region.size

        self._flush(pending, self.end)
        return self.regions
