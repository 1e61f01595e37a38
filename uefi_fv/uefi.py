'''EFI and UEFI related structures.
This package defines firmware structures for unpacking, decompressing and
extracting UEFI firmware volumes, files and sections.
'''

import os
import struct

from .base import FirmwareObject
from .compression import get_codec
from .errors import (
    FirmwareError, TruncatedInput, InvalidLength, InvalidSectionLength,
    Overflow, SectionOverflow, UnsupportedCompression,
    UnknownVolumeFormat, UnknownSectionType, NestingTooDeep)
from .utils import (
    blue, green, purple, sguid, bit_set, align, is_uniform, unpack_length,
    dump_data)
from .structs.uefi_structs import *


def _get_file_type(file_type):
    return EFI_FILE_TYPES[file_type] if file_type in EFI_FILE_TYPES else (
        "unknown", "unknown", "0x%02x" % file_type)


def _get_section_type(section_type):
    if section_type in EFI_SECTION_TYPES:
        return EFI_SECTION_TYPES[section_type]
    else:
        return ("unknown", "unknown.bin", "0x%02x" % section_type)


def uefi_name(s):
    '''Return the utf-16le encoded, NUL-terminated string in s.'''
    try:
        name = s[:len(s) & ~1].decode("utf-16le").split("\0")[0]
    except UnicodeDecodeError:
        return None
    if len(name) == 0:
        return None
    return name


def _check_depth(firmware_object):
    if firmware_object.depth <= MAX_NESTING_DEPTH:
        return True
    firmware_object.warn(NestingTooDeep(
        "nesting deeper than %d levels, payload left unexpanded" %
        MAX_NESTING_DEPTH, offset=firmware_object.offset))
    return False


def _find_name(objects):
    '''First user interface name within a section tree.

    Encapsulation sections are searched depth-first, nested volumes are not.
    '''
    for _object in objects:
        if isinstance(_object, FirmwareVolume):
            continue
        if isinstance(_object, FirmwareFileSystemSection) and \
                _object.type == EFI_SECTION_USER_INTERFACE and \
                _object.name is not None:
            return _object.name
        name = _find_name(_object.objects)
        if name is not None:
            return name
    return None


def iterate_sections(data, offset=0, path="", depth=0, codecs=None):
    '''Yield the (unprocessed) sections of a section list.

    Sections start on 4-byte boundaries relative to the start of data. The
    walk ends when fewer than 8 bytes remain or the remainder is uniform
    free space. RAW sections holding only padding are skipped.

    Args:
        data (binary): The section list, usually a file's content.
        offset (Optional[int]): Position of data within the input, used for
            diagnostics.
        path (Optional[string]): Path of the containing object.
        depth (Optional[int]): Nesting level of the containing object.
        codecs (Optional[dict]): Compression codecs keyed by GUID.
    '''
    position = 0
    index = 0
    while len(data) - position >= SECTION_MIN_SPACE:
        if is_uniform(data[position:position + SECTION_MIN_SPACE]) and \
                is_uniform(data[position:]):
            break
        section = FirmwareFileSystemSection(
            data[position:], offset + position,
            "%s/section%d" % (path, index), depth, codecs)
        if not (section.type == EFI_SECTION_RAW and is_uniform(section.data)):
            yield section
            index += 1
        position = align(position + section.size, SECTION_ALIGNMENT)


def parse_sections(data, offset=0, path="", depth=0, codecs=None):
    '''Parse a section list into processed FirmwareFileSystemSections.'''
    sections = []
    for section in iterate_sections(data, offset, path, depth, codecs):
        section.process()
        sections.append(section)
    return sections


def parse_file(data, offset=0, path="", codecs=None):
    '''Parse the firmware file at offset within a volume's data.

    Return:
        FirmwareFile: The processed file, or None for a padding file.
    '''
    firmware_file = FirmwareFile(data[offset:], offset, path, codecs=codecs)
    if firmware_file.padding:
        return None
    firmware_file.process()
    return firmware_file


def parse_volume(data, offset=0, name=None, codecs=None):
    '''Parse and process the firmware volume at the start of data.'''
    volume = FirmwareVolume(data, offset, name, codecs=codecs)
    volume.process()
    return volume


class CompressedSection(FirmwareObject):
    '''A firmware file section type (compression)

    struct { UINT32 UncompressedLength; UINT8 CompressionType; }

    Only the not-compressed form can be expanded, EFI/Tiano compressed
    bodies are surfaced as-is.
    '''

    def __init__(self, data, offset=0, path="", depth=0, codecs=None):
        FirmwareObject.__init__(self)
        self.offset = offset
        self.path = path
        self.depth = depth
        self.codecs = codecs
        self.subsections = []

        if len(data) < 5:
            raise TruncatedInput(
                "compression section header requires 5 bytes", offset, path)
        self.decompressed_size, self.type = struct.unpack("<IB", data[:5])
        self.data = data[5:]

    @property
    def objects(self):
        return self.subsections

    def process(self):
        if self.type != EFI_NOT_COMPRESSED:
            self.warn(UnsupportedCompression(
                "EFI compression type 0x%02x is not supported" % self.type,
                offset=self.offset))
            return True
        if not _check_depth(self):
            return False

        status = True
        try:
            for subsection in iterate_sections(
                    self.data, self.offset + 5, self.path, self.depth + 1,
                    self.codecs):
                status = subsection.process() and status
                self.subsections.append(subsection)
        except FirmwareError as e:
            self.warn(e)
            return False
        return status

    def showinfo(self, ts='', index=None):
        print("%s type= 0x%02x, decompressed_size= 0x%x" % (
            blue("%sCompressed:" % ts), self.type, self.decompressed_size))
        for i, subsection in enumerate(self.subsections):
            subsection.showinfo("%s  " % ts, index=i)

    def dump(self, parent="", index=None):
        for i, subsection in enumerate(self.subsections):
            subsection.dump(parent, i)


class GuidDefinedSection(FirmwareObject):
    '''A firmware file section type (GUID-defined)

    struct {
        EFI_COMMON_SECTION_HEADER(2)
        UCHAR: SectionDefinitionGuid[16]
        UINT16: DataOffset
        UINT16: Attributes
    };

    The DataOffset is measured from the start of the section, common header
    included. Bytes between the GUID-defined header and DataOffset are kept
    as the preamble. Sections defined by a GUID without a registered codec
    are left opaque.
    '''

    def __init__(self, data, header_size, offset=0, path="", depth=0,
                 codecs=None):
        FirmwareObject.__init__(self)
        self.offset = offset
        self.path = path
        self.depth = depth
        self.codecs = codecs
        self.header_size = header_size
        self.subsections = []
        self.decompressed = None

        if len(data) < header_size + 16:
            raise TruncatedInput(
                "GUID-defined section requires a 16 byte GUID", offset, path)
        self.guid = data[header_size:header_size + 16]
        self.data_offset, self.attr_mask = 0, 0
        if len(data) >= header_size + GUIDED_SECTION_HEADER_SIZE:
            self.data_offset, self.attr_mask = struct.unpack_from(
                "<HH", data, header_size + 16)

        self._data = data
        self.preamble = b""
        self.data = data[header_size + 16:]

    @property
    def objects(self):
        return self.subsections

    @property
    def compressed(self):
        '''True if the payload was expanded by a codec.'''
        return self.decompressed is not None

    def _split_payload(self):
        minimum = self.header_size + GUIDED_SECTION_HEADER_SIZE
        if len(self._data) < minimum:
            raise TruncatedInput(
                "GUID-defined section header requires %d bytes" %
                GUIDED_SECTION_HEADER_SIZE, self.offset, self.path)
        if self.data_offset < minimum:
            raise InvalidLength(
                "GUID-defined data offset 0x%x inside its header" %
                self.data_offset, self.offset, self.path)
        if self.data_offset > len(self._data):
            raise Overflow(
                "GUID-defined data offset 0x%x past section end 0x%x" % (
                    self.data_offset, len(self._data)),
                self.offset, self.path)
        self.preamble = self._data[minimum:self.data_offset]
        self.data = self._data[self.data_offset:]

    def process(self):
        try:
            codec = get_codec(sguid(self.guid), self.codecs)
        except UnsupportedCompression as e:
            e.offset = self.offset
            self.warn(e)
            return True
        if not _check_depth(self):
            return False

        try:
            self._split_payload()
            self.decompressed = codec.decompress(self.data)
        except FirmwareError as e:
            if e.offset is None:
                e.offset = self.offset
            self.warn(e)
            return False

        status = True
        try:
            for subsection in iterate_sections(
                    self.decompressed, 0, self.path, self.depth + 1,
                    self.codecs):
                status = subsection.process() and status
                self.subsections.append(subsection)
        except FirmwareError as e:
            self.warn(e)
            return False
        return status

    def showinfo(self, ts='', index=None):
        auth_status = "ATTR_UNKNOWN"
        if self.attr_mask == EFI_GUIDED_SECTION_AUTH_STATUS_VALID:
            auth_status = "AUTH_VALID"
        if self.attr_mask == EFI_GUIDED_SECTION_PROCESSING_REQUIRED:
            auth_status = "PROCESSING_REQUIRED"
        print("%s%s %s offset= 0x%x attrs= 0x%x (%s)" % (
            ts, blue("Guid-Defined:"), green(sguid(self.guid)),
            self.data_offset, self.attr_mask, purple(auth_status)
        ))
        for i, section in enumerate(self.subsections):
            section.showinfo("%s  " % ts, index=i)

    def dump(self, parent="", index=None):
        for i, subsection in enumerate(self.subsections):
            subsection.dump(parent, i)
        if len(self.preamble) > 0:
            dump_data(os.path.join(parent, "guided.preamble"), self.preamble)


class FirmwareFileSystemSection(FirmwareObject):
    '''A firmware file section

    struct { UINT8 Size[3]; EFI_SECTION_TYPE Type; } EFI_COMMON_SECTION_HEADER;

    A Size of 0xFFFFFF means a UINT32 ExtendedSize follows the type
    (EFI_COMMON_SECTION_HEADER2).
    '''

    def __init__(self, data, offset=0, path="", depth=0, codecs=None):
        FirmwareObject.__init__(self)
        self.offset = offset
        self.path = path
        self.depth = depth
        self.codecs = codecs
        self.parsed_object = None

        if len(data) < SECTION_HEADER_SIZE:
            raise TruncatedInput(
                "section header requires %d bytes, %d available" % (
                    SECTION_HEADER_SIZE, len(data)), offset, path)
        try:
            self.size, self.extended = unpack_length(
                data, 0, 3, SECTION_HEADER_SIZE, 4)
        except TruncatedInput as e:
            e.offset, e.path = offset, path
            raise
        self.type = data[3]
        self.header_size = SECTION_HEADER2_SIZE if self.extended \
            else SECTION_HEADER_SIZE

        if self.size < self.header_size:
            raise InvalidSectionLength(
                "section size 0x%x smaller than its 0x%x byte header" % (
                    self.size, self.header_size), offset, path)
        if self.size > len(data):
            raise SectionOverflow(
                "section size 0x%x exceeds the 0x%x bytes remaining" % (
                    self.size, len(data)), offset, path)

        self._data = data[:self.size]
        self.data = data[self.header_size:self.size]

    @property
    def objects(self):
        if self.parsed_object is None:
            return []
        return [self.parsed_object]

    def process(self):
        self.parsed_object = None
        payload_offset = self.offset + self.header_size

        try:
            if self.type == EFI_SECTION_COMPRESSION:
                self.parsed_object = CompressedSection(
                    self.data, payload_offset, self.path, self.depth,
                    self.codecs)

            elif self.type == EFI_SECTION_GUID_DEFINED:
                self.parsed_object = GuidDefinedSection(
                    self._data, self.header_size, self.offset, self.path,
                    self.depth, self.codecs)

            elif self.type == EFI_SECTION_FIRMWARE_VOLUME_IMAGE:
                self.parsed_object = FirmwareVolume(
                    self.data, payload_offset, path="%s/volume" % self.path,
                    depth=self.depth + 1, codecs=self.codecs)
        except FirmwareError as e:
            # The payload stays available as opaque section data.
            self.warn(e)
            return False

        if self.type == EFI_SECTION_USER_INTERFACE:
            self.name = uefi_name(self.data)

        elif self.type == EFI_SECTION_VERSION:
            if len(self.data) >= 2:
                self.build_number = struct.unpack("<H", self.data[:2])[0]
                self.name = uefi_name(self.data[2:])

        elif self.type not in EFI_SECTION_TYPES:
            self.warn(UnknownSectionType(
                "unknown section type 0x%02x" % self.type,
                offset=self.offset))

        if self.parsed_object is None:
            return True
        return self.parsed_object.process()

    def showinfo(self, ts='', index=-1):
        print("%s type 0x%02x, size 0x%x (%d bytes) (%s section)" % (
            blue("%sSection %d:" % (ts, index)),
            self.type, self.size, self.size,
            _get_section_type(self.type)[0]
        ))
        if self.type in [EFI_SECTION_USER_INTERFACE, EFI_SECTION_VERSION] \
                and self.name is not None:
            print("%sName: %s" % (ts, purple(self.name)))

        if self.parsed_object is not None:
            self.parsed_object.showinfo(ts + '  ')

    def dump(self, parent="", index=0):
        if not is_uniform(self.data):
            path = os.path.join(
                parent, "section%d.%s" % (index,
                                          _get_section_type(self.type)[1]))
            dump_data(path, self.data)

        if self.parsed_object is not None:
            self.parsed_object.dump(os.path.join(parent, "section%d" % index))


class FirmwareFile(FirmwareObject):
    '''A firmware file is contained within a firmware volume and is comprised
    of firmware file sections.

    struct {
        UCHAR: FileNameGUID[16]
        UINT16: Checksum (header/file)
        UINT8: Filetype
        UINT8: Attributes
        UINT8: Size[3]
        UINT8: State
        [UINT64: ExtendedSize]
    };

    The ExtendedSize is present when Size holds 0xFFFFFF, or is zero on a
    file marked FFS_ATTRIB_LARGE_FILE.
    '''

    def __init__(self, data, offset=0, path="", depth=0, codecs=None):
        FirmwareObject.__init__(self)
        self.offset = offset
        self.depth = depth
        self.codecs = codecs
        self.sections = []

        if len(data) < FFS_HEADER_SIZE:
            raise TruncatedInput(
                "file header requires %d bytes, %d available" % (
                    FFS_HEADER_SIZE, len(data)), offset, path)
        self.guid, self.checksum, self.type, self.attributes, _, \
            self.state = struct.unpack("<16sHBB3sB", data[:FFS_HEADER_SIZE])
        self.path = "%s/file-%s" % (path, sguid(self.guid))

        try:
            self.size, self.extended = unpack_length(
                data, 0x14, 3, FFS_HEADER_SIZE, 8)
        except TruncatedInput as e:
            e.offset, e.path = offset, self.path
            raise
        if self.size == 0 and bit_set(self.attributes, FFS_ATTRIB_LARGE_FILE):
            if len(data) < FFS_HEADER2_SIZE:
                raise TruncatedInput(
                    "large file header requires 0x%x bytes" %
                    FFS_HEADER2_SIZE, offset, self.path)
            self.size = struct.unpack(
                "<Q", data[FFS_HEADER_SIZE:FFS_HEADER2_SIZE])[0]
            self.extended = True
        self.header_size = FFS_HEADER2_SIZE if self.extended \
            else FFS_HEADER_SIZE

        if self.size < self.header_size:
            raise InvalidLength(
                "file size 0x%x smaller than its 0x%x byte header" % (
                    self.size, self.header_size), offset, self.path)
        if self.size > len(data):
            raise Overflow(
                "file size 0x%x exceeds the 0x%x bytes remaining in volume" %
                (self.size, len(data)), offset, self.path)

        self.padding = sguid(self.guid) == PADDING_GUID

        # The size includes the header bytes.
        self._data = data[:self.size]
        self.data = data[self.header_size:self.size]

    @property
    def objects(self):
        return self.sections

    @property
    def raw(self):
        '''Raw and pad files hold opaque content instead of sections.'''
        return self.type in [EFI_FV_FILETYPE_RAW, EFI_FV_FILETYPE_FFS_PAD]

    def process(self):
        '''Parse the file sections if appropriate.'''
        if self.raw:
            return True

        status = True
        self.sections = []
        try:
            for section in iterate_sections(
                    self.data, self.offset + self.header_size, self.path,
                    self.depth, self.codecs):
                status = section.process() and status
                self.sections.append(section)
        except FirmwareError as e:
            # Sections parsed so far are kept, the volume continues.
            self.warn(e)
            status = False
        self.name = _find_name(self.sections)
        return status

    def showinfo(self, ts='', index="N/A"):
        guid_display = "%s" % green(sguid(self.guid))
        if self.name is not None:
            guid_display = "%s (%s)" % (guid_display, purple(self.name))
        print("%s %s type 0x%02x, attr 0x%02x, state 0x%02x, size 0x%x (%d bytes), (%s)" % (
            blue("%sFile %s:" % (ts, index)),
            guid_display,
            self.type,
            self.attributes,
            self.state ^ 0xFF,
            self.size,
            self.size,
            _get_file_type(self.type)[0]
        ))

        for i, section in enumerate(self.sections):
            section.showinfo(ts + "  ", index=i)

    def dump(self, parent="", index=None):
        parent = os.path.join(parent, "file-%s" % sguid(self.guid))

        dump_data(os.path.join(parent, "file.ffs"), self._data)
        if self.raw and not is_uniform(self.data):
            dump_data(os.path.join(parent, "file.%s" %
                                   _get_file_type(self.type)[1]), self.data)

        for i, section in enumerate(self.sections):
            section.dump(parent, index=i)


def _is_free_space(data, offset):
    '''Check for the erased tail of a volume's file list.'''
    size, extended = unpack_length(
        data, offset + 0x14, 3, offset + FFS_HEADER_SIZE, 8)
    if extended and size == 0xFFFFFFFFFFFFFFFF:
        return True
    return is_uniform(data[offset:offset + FFS_HEADER_SIZE]) and \
        is_uniform(data[offset:])


class FirmwareVolume(FirmwareObject):
    '''Describes the features and layout of the firmware volume.

    struct EFI_FIRMWARE_VOLUME_HEADER {
        UINT8: Zeros[16]
        UCHAR: FileSystemGUID[16]
        UINT64: Length
        UINT32: Signature (_FVH)
        UINT32: Attribute mask
        UINT16: Header Length
        UINT16: Checksum
        UINT16: Extended header offset
        UINT8: Reserved
        UINT8: Revision
        [<BlockMap>]+, <BlockMap(0,0)>
    };

    The header length is the offset of the first firmware file.
    '''

    _HEADER_SIZE = FV_HEADER_SIZE

    def __init__(self, data, offset=0, name=None, path=None, depth=0,
                 codecs=None):
        FirmwareObject.__init__(self)
        self.offset = offset
        self.name = name
        self.depth = depth
        self.codecs = codecs
        self.files = []
        self.path = path if path is not None else (
            "volume-%s" % name if name is not None else "volume")

        if len(data) < self._HEADER_SIZE:
            raise TruncatedInput(
                "volume header requires 0x%x bytes, 0x%x available" % (
                    self._HEADER_SIZE, len(data)), offset, self.path)
        self.rsvd, self.guid, self.size, self.magic, self.attributes, \
            self.hdrlen, self.checksum, self.ext_hdr_offset, self.rsvd2, \
            self.revision = struct.unpack(
                "<16s16sQ4sIHHHBB", data[:self._HEADER_SIZE])

        if self.magic != FV_SIGNATURE:
            raise UnknownVolumeFormat(
                "missing %s volume signature" % FV_SIGNATURE.decode(),
                offset, self.path)
        if self.size < self._HEADER_SIZE:
            raise InvalidLength(
                "volume size 0x%x smaller than its header" % self.size,
                offset, self.path)
        if self.size > len(data):
            raise Overflow(
                "volume size 0x%x exceeds the 0x%x bytes available" % (
                    self.size, len(data)), offset, self.path)

        self._data = data[:self.size]
        self.data = self._data

    @property
    def objects(self):
        return self.files

    @property
    def standard(self):
        '''True if the volume format GUID holds a firmware file system.'''
        return sguid(self.guid) in FIRMWARE_FILESYSTEM_GUIDS

    def process(self):
        self.files = []
        if not _check_depth(self):
            return False
        if self.hdrlen >= self.size or self.hdrlen < self._HEADER_SIZE:
            self.warn(InvalidLength(
                "header length 0x%x invalid for a 0x%x byte volume" % (
                    self.hdrlen, self.size), offset=self.offset))
            return False
        if not self.standard:
            self.warn(UnknownVolumeFormat(
                "volume format %s is not a firmware file system" %
                sguid(self.guid), offset=self.offset))
            return True

        data = self._data
        offset = self.hdrlen
        status = True
        while len(data) - offset >= FV_MIN_FILE_SPACE:
            if _is_free_space(data, offset):
                break
            try:
                firmware_file = FirmwareFile(
                    data[offset:], self.offset + offset, self.path,
                    self.depth, self.codecs)
            except FirmwareError as e:
                # Offsets past a broken file header cannot be trusted.
                self.warn(e)
                status = False
                break

            if not firmware_file.padding:
                status = firmware_file.process() and status
                self.files.append(firmware_file)
            offset = self.hdrlen + align(
                offset - self.hdrlen + firmware_file.size, FFS_ALIGNMENT)
        return status

    def showinfo(self, ts='', index=None):
        print("%s %s attr 0x%08x, rev %d, cksum 0x%x, size 0x%x (%d bytes)" % (
            blue("%sFirmware Volume:" % (ts)),
            green(sguid(self.guid)),
            self.attributes,
            self.revision,
            self.checksum,
            self.size,
            self.size
        ))
        for i, firmware_file in enumerate(self.files):
            firmware_file.showinfo(ts + "  ", index=i)

    def dump(self, parent="", index=None):
        label = "volume" if self.name is None else "volume-%s" % self.name
        dump_data(os.path.join(parent, "%s.fv" % label), self._data)

        for firmware_file in self.files:
            firmware_file.dump(os.path.join(parent, label))
