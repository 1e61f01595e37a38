# -*- coding: utf-8 -*-
'''Build firmware volumes, files and sections.

The build_* functions pack one structure from its components. The generator
classes regenerate the bytes of a parsed object tree, recompressing any
payload that was decompressed while parsing.
'''

import struct
import uuid

from ..compression import compress, LZMA_CUSTOM_DECOMPRESS_GUID
from ..errors import InvalidLength, VolumeTooSmall
from ..uefi import (
    FirmwareVolume, FirmwareFile, FirmwareFileSystemSection,
    GuidDefinedSection, CompressedSection)
from ..utils import align, guid_bytes, pack_length, sguid
from ..structs.uefi_structs import *


class GeneratorException(Exception):

    def __init__(self, _object):
        message = "Cannot generate from unsupported type (%s)." % type(_object)
        Exception.__init__(self, message)


def oguid(guid):
    '''Accept a GUID as its 16-byte layout or its canonical string.'''
    if isinstance(guid, (bytes, bytearray)):
        if len(guid) != 16:
            raise ValueError("Binary GUID must be 16 bytes.")
        return bytes(guid)
    return guid_bytes(guid)


def checksum8(data):
    '''Byte that brings the 8-bit sum of data to zero.'''
    return (0x100 - (sum(bytearray(data)) & 0xff)) & 0xff


def checksum16(data):
    '''Word that brings the 16-bit sum of the words in data to zero.'''
    words = struct.unpack("<%dH" % (len(data) // 2), data[:len(data) & ~1])
    return (0x10000 - (sum(words) & 0xffff)) & 0xffff


def build_section(section_type, payload):
    '''Pack a section header and payload.

    The legacy 3-byte size is used unless the section reaches 0xFFFFFF bytes,
    then the size field holds the sentinel and a 4-byte size follows the
    type. No alignment padding is appended.
    '''
    size = SECTION_HEADER_SIZE + len(payload)
    if size < MAX_LEGACY_SIZE:
        return pack_length(size, 3) + struct.pack("<B", section_type) + \
            payload

    size = SECTION_HEADER2_SIZE + len(payload)
    if size > 0xffffffff:
        raise InvalidLength("section of 0x%x bytes cannot be encoded" % size)
    return pack_length(MAX_LEGACY_SIZE, 3) + \
        struct.pack("<BI", section_type, size) + payload


def build_guided_section(guid, payload,
                         attributes=EFI_GUIDED_SECTION_PROCESSING_REQUIRED,
                         preamble=b""):
    '''Pack a GUID-defined section around an (already encoded) payload.'''
    body_size = GUIDED_SECTION_HEADER_SIZE + len(preamble) + len(payload)
    header_size = SECTION_HEADER_SIZE
    if SECTION_HEADER_SIZE + body_size >= MAX_LEGACY_SIZE:
        header_size = SECTION_HEADER2_SIZE

    data_offset = header_size + GUIDED_SECTION_HEADER_SIZE + len(preamble)
    body = oguid(guid) + struct.pack("<HH", data_offset, attributes) + \
        preamble + payload
    return build_section(EFI_SECTION_GUID_DEFINED, body)


def build_compressed_section(section_data, guid=LZMA_CUSTOM_DECOMPRESS_GUID,
                             codecs=None):
    '''Compress a packed section list into a GUID-defined section.'''
    return build_guided_section(guid, compress(section_data, guid, codecs))


def pack_sections(sections):
    '''Concatenate built sections, each starting on a 4-byte boundary.'''
    data = b""
    for section in sections:
        data += b"\x00" * (align(len(data), SECTION_ALIGNMENT) - len(data))
        data += section
    return data


def build_file(guid, file_type, content, attributes=0,
               generate_checksum=True):
    '''Pack a firmware file header and content.

    Files reaching 0xFFFFFF bytes use the extended header, the legacy size
    then holds the sentinel and FFS_ATTRIB_LARGE_FILE is set.

    Args:
        guid (binary|string): The file name GUID.
        file_type (int): EFI_FV_FILETYPE code.
        content (binary): Packed sections, or raw content for RAW files.
        attributes (Optional[int]): EFI_FFS_FILE_ATTRIBUTES.
        generate_checksum (Optional[bool]): Fill in the integrity check.

    Return:
        binary: The file, without trailing alignment.
    '''
    size = FFS_HEADER_SIZE + len(content)
    extended = size >= MAX_LEGACY_SIZE
    if extended:
        size = FFS_HEADER2_SIZE + len(content)
        attributes |= FFS_ATTRIB_LARGE_FILE

    header = struct.pack(
        "<16sHBB3sB", oguid(guid), 0, file_type, attributes,
        pack_length(MAX_LEGACY_SIZE if extended else size, 3), 0)
    if extended:
        header += struct.pack("<Q", size)

    checksum = 0
    if generate_checksum:
        file_checksum = FFS_FIXED_CHECKSUM
        if attributes & FFS_ATTRIB_CHECKSUM:
            file_checksum = checksum8(content)
        checksum = checksum8(header) | (file_checksum << 8)

    # State bits are cleared from the erased (0xFF) value.
    state = ~(EFI_FILE_HEADER_CONSTRUCTION | EFI_FILE_HEADER_VALID |
              EFI_FILE_DATA_VALID) & 0xff
    header = header[:0x10] + struct.pack("<H", checksum) + \
        header[0x12:0x17] + struct.pack("<B", state) + header[0x18:]
    return header + content


def pack_files(files):
    '''Concatenate built files, each starting on an 8-byte boundary.'''
    data = b""
    for firmware_file in files:
        data += FV_ERASE_BYTE * (align(len(data), FFS_ALIGNMENT) - len(data))
        data += firmware_file
    return data


def build_volume(guid, total_size, files, attributes=FV_DEFAULT_ATTRIBUTES,
                 generate_checksum=True):
    '''Pack built files into a firmware volume of exactly total_size bytes.

    Args:
        guid (binary|string): The file system GUID, e.g. FFS2.
        total_size (int): The final volume length.
        files (list): Built firmware files (binary).
        attributes (Optional[int]): EFI_FVB_ATTRIBUTES_2 mask.
        generate_checksum (Optional[bool]): Fill in the header checksum.

    Return:
        binary: The volume, free space filled with 0xFF.
    '''
    body = pack_files(files)
    if FV_HEADER_LENGTH + len(body) > total_size:
        raise VolumeTooSmall(
            "volume content of 0x%x bytes exceeds volume size 0x%x" % (
                FV_HEADER_LENGTH + len(body), total_size))

    if total_size % FV_BLOCK_SIZE == 0:
        blocks = (total_size // FV_BLOCK_SIZE, FV_BLOCK_SIZE)
    else:
        blocks = (1, total_size)

    header = struct.pack(
        "<16s16sQ4sIHHHBB",
        b"\x00" * 16, oguid(guid), total_size, FV_SIGNATURE, attributes,
        FV_HEADER_LENGTH, 0, 0, 0, FV_REVISION)
    # Block map followed by its (0, 0) terminator.
    header += struct.pack("<IIII", blocks[0], blocks[1], 0, 0)

    if generate_checksum:
        header = header[:0x32] + struct.pack("<H", checksum16(header)) + \
            header[0x34:]

    return header + body + \
        FV_ERASE_BYTE * (total_size - len(header) - len(body))


def build_compressed_volume(inner_volume, total_size,
                            guid=FIRMWARE_VOLUME_GUIDS["FFS2"],
                            file_guid=None, codecs=None):
    '''Wrap a built volume as an LZMA-compressed section of an outer volume.

    The inner volume becomes a firmware-volume-image section, compressed into
    a GUID-defined section, within a FIRMWARE_VOLUME_IMAGE file.
    '''
    if file_guid is None:
        file_guid = uuid.uuid4().bytes_le
    section = build_section(EFI_SECTION_FIRMWARE_VOLUME_IMAGE, inner_volume)
    firmware_file = build_file(
        file_guid, EFI_FV_FILETYPE_FIRMWARE_VOLUME_IMAGE,
        build_compressed_section(section, codecs=codecs))
    return build_volume(guid, total_size, [firmware_file])


def _fill(output, data, position, alignment, fill):
    '''Padding that aligns output for the object following position.

    The original padding bytes are reused while the rebuilt layout keeps the
    original alignment.
    '''
    if len(output) % alignment == position % alignment:
        return data[position:align(position, alignment)]
    return fill * (align(len(output), alignment) - len(output))


def splice(data, base, parts, alignment, fill):
    '''Place regenerated objects within the bytes of their container.

    Bytes the parser skipped between objects (padding files, padding RAW
    sections) are copied from data.

    Args:
        data (binary): The original container bytes.
        base (int): Offset of data, in the offsets the objects carry.
        parts (list): (object, regenerated bytes) pairs in container order.
        alignment (int): Alignment of each object within the container.
        fill (binary): Padding byte used once the layout has shifted.

    Return:
        pair (binary, int): The rebuilt bytes up to the end of the last
        object, and the position in data following the last object.
    '''
    output = b""
    position = 0
    for _object, generated in parts:
        start = _object.offset - base
        output += _fill(output, data, position, alignment, fill)
        output += data[align(position, alignment):start]
        output += generated
        position = start + _object.size
    return output, position


def splice_sections(data, base, sections, outputs):
    '''Rebuild a section list, keeping skipped sections and trailing bytes.'''
    output, position = splice(
        data, base, zip(sections, outputs), SECTION_ALIGNMENT, b"\x00")
    tail = _fill(output, data, position, SECTION_ALIGNMENT, b"\x00")
    return output + tail + data[align(position, SECTION_ALIGNMENT):]


class SectionGenerator(object):

    def __init__(self, firmware_section=None):
        self.output = b""

        if firmware_section is not None:
            if not isinstance(firmware_section, FirmwareFileSystemSection):
                raise GeneratorException(firmware_section)
            self._generate(firmware_section)

    def _generate_subsections(self, data, base, subsections):
        return splice_sections(data, base, subsections, [
            SectionGenerator(subsection).output
            for subsection in subsections])

    def generate_guided(self, guided):
        subsections = self._generate_subsections(
            guided.decompressed, 0, guided.subsections)
        payload = compress(subsections, sguid(guided.guid), guided.codecs)
        self.output = build_guided_section(
            guided.guid, payload, guided.attr_mask, guided.preamble)

    def generate_compressed(self, firmware_section, compressed):
        subsections = self._generate_subsections(
            compressed.data, compressed.offset + 5, compressed.subsections)
        header = struct.pack("<IB", len(subsections), compressed.type)
        self.output = build_section(
            firmware_section.type, header + subsections)

    def _generate(self, firmware_section):
        parsed = firmware_section.parsed_object
        if isinstance(parsed, GuidDefinedSection) and parsed.compressed \
                and len(parsed.warnings) == 0:
            self.generate_guided(parsed)
        elif isinstance(parsed, CompressedSection) and \
                parsed.type == EFI_NOT_COMPRESSED and \
                len(parsed.warnings) == 0:
            self.generate_compressed(firmware_section, parsed)
        elif isinstance(parsed, FirmwareVolume):
            self.output = build_section(
                firmware_section.type, FirmwareVolumeGenerator(parsed).output)
        else:
            self.output = build_section(
                firmware_section.type, firmware_section.data)


class FirmwareFileGenerator(object):

    def __init__(self, firmware_file=None):
        self.sections = []
        self.output = b""

        if firmware_file is not None:
            if not isinstance(firmware_file, FirmwareFile):
                raise GeneratorException(firmware_file)
            self._generate(firmware_file)

    def add_section(self, firmware_section):
        self.sections.append(SectionGenerator(firmware_section))

    def _generate(self, firmware_file):
        if firmware_file.raw or len(firmware_file.warnings) > 0:
            # Opaque content (or content that did not fully parse) is kept.
            content = firmware_file.data
        else:
            for section in firmware_file.sections:
                self.add_section(section)
            content = splice_sections(
                firmware_file.data,
                firmware_file.offset + firmware_file.header_size,
                firmware_file.sections,
                [section.output for section in self.sections])

        self.output = build_file(
            firmware_file.guid, firmware_file.type, content,
            firmware_file.attributes & ~FFS_ATTRIB_LARGE_FILE)


class FirmwareVolumeGenerator(object):

    def __init__(self, volume=None, size=None):
        self.files = []
        self.output = b""

        self.size = size
        if volume is not None:
            if not isinstance(volume, FirmwareVolume):
                raise GeneratorException(volume)
            self._generate(volume)

    def add_file(self, firmware_file):
        self.files.append(FirmwareFileGenerator(firmware_file))

    def _generate(self, volume):
        '''Generate buffer using volume object.

        Files are rebuilt in place, padding files and free space between
        them are copied from the original volume.
        '''
        if not volume.standard or len(volume.warnings) > 0:
            self.output = volume.data
            return

        for firmware_file in volume.files:
            self.add_file(firmware_file)

        data = volume.data[volume.hdrlen:]
        body, position = splice(
            data, volume.offset + volume.hdrlen,
            zip(volume.files, [f.output for f in self.files]),
            FFS_ALIGNMENT, FV_ERASE_BYTE)

        size = self.size or volume.size
        room = size - FV_HEADER_LENGTH
        if len(body) <= room:
            body += _fill(body, data, position, FFS_ALIGNMENT, FV_ERASE_BYTE)
            body = (body + data[align(position, FFS_ALIGNMENT):])[:room]

        self.output = build_volume(
            volume.guid, size, [body], volume.attributes)
