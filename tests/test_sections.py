import struct
import unittest

from uefi_fv.errors import (
    InvalidSectionLength, SectionOverflow, UnsupportedCompression,
    UnknownSectionType, NestingTooDeep)
from uefi_fv.generator.uefi import (
    build_section, build_guided_section, build_compressed_section,
    pack_sections, SectionGenerator)
from uefi_fv.uefi import (
    parse_sections, CompressedSection, GuidDefinedSection)
from uefi_fv.structs.uefi_structs import *

OTHER_GUID = "fc1bcdb0-7d31-49aa-936a-a4600d9dd083"


def ui_section(name):
    return build_section(
        EFI_SECTION_USER_INTERFACE, (name + "\0").encode("utf-16le"))


class SectionParseTest(unittest.TestCase):

    def test_extended_raw(self):
        payload = bytes(range(1, 0x19))
        data = b"\xff\xff\xff\x19" + struct.pack("<I", 0x20) + payload
        sections = parse_sections(data)

        self.assertEqual(len(sections), 1)
        self.assertEqual(sections[0].type, EFI_SECTION_RAW)
        self.assertEqual(sections[0].size, 0x20)
        self.assertTrue(sections[0].extended)
        self.assertEqual(sections[0].data, payload)

    def test_length_too_small(self):
        data = b"\x02\x00\x00\x19" + b"\x00" * 8
        with self.assertRaises(InvalidSectionLength):
            parse_sections(data)

        data = b"\xff\xff\xff\x19" + struct.pack("<I", 6) + b"\x00" * 8
        with self.assertRaises(InvalidSectionLength):
            parse_sections(data)

    def test_overflow(self):
        data = b"\x40\x00\x00\x19" + b"A" * 8
        with self.assertRaises(SectionOverflow):
            parse_sections(data)

    def test_alignment(self):
        data = pack_sections([
            build_section(EFI_SECTION_RAW, b"ABC"),
            ui_section("Name"),
        ])
        sections = parse_sections(data, offset=0x100)

        self.assertEqual(len(sections), 2)
        self.assertEqual(sections[0].size, 7)
        self.assertEqual(sections[1].offset, 0x108)
        self.assertEqual(sections[1].name, "Name")

    def test_uniform_raw_dropped(self):
        data = pack_sections([
            build_section(EFI_SECTION_RAW, b"\x00" * 12),
            build_section(EFI_SECTION_PE32, b"MZ" + b"\x00" * 6),
        ])
        sections = parse_sections(data)

        self.assertEqual(len(sections), 1)
        self.assertEqual(sections[0].type, EFI_SECTION_PE32)
        self.assertEqual(sections[0].path, "/section0")

    def test_trailing_padding(self):
        data = ui_section("A") + b"\xff" * 12
        sections = parse_sections(data)

        self.assertEqual(len(sections), 1)
        self.assertEqual(len(sections[0].warnings), 0)

    def test_idempotent(self):
        data = pack_sections([
            build_section(EFI_SECTION_RAW, b"ABCDEFG"),
            ui_section("Name"),
        ])
        first = parse_sections(data)
        second = parse_sections(data)

        self.assertEqual(
            [(s.type, s.offset, s.data) for s in first],
            [(s.type, s.offset, s.data) for s in second])

    def test_version(self):
        payload = struct.pack("<H", 5) + "1.0\0".encode("utf-16le")
        sections = parse_sections(build_section(EFI_SECTION_VERSION, payload))

        self.assertEqual(sections[0].build_number, 5)
        self.assertEqual(sections[0].name, "1.0")

    def test_unknown_type(self):
        sections = parse_sections(build_section(0x30, b"ABCDEFGH"))

        self.assertEqual(len(sections), 1)
        self.assertEqual(sections[0].data, b"ABCDEFGH")
        self.assertIsInstance(sections[0].warnings[0], UnknownSectionType)


class GuidDefinedSectionTest(unittest.TestCase):

    def test_unsupported_guid(self):
        payload = b"opaque payload"
        data = build_guided_section(OTHER_GUID, payload)
        sections = parse_sections(data)

        self.assertEqual(len(sections), 1)
        guided = sections[0].parsed_object
        self.assertIsInstance(guided, GuidDefinedSection)
        self.assertFalse(guided.compressed)
        self.assertEqual(guided.subsections, [])
        self.assertEqual(sections[0].data, data[SECTION_HEADER_SIZE:])
        self.assertTrue(sections[0].data.endswith(payload))

        warnings = list(sections[0].iterate_warnings())
        self.assertEqual(len(warnings), 1)
        self.assertIsInstance(warnings[0], UnsupportedCompression)
        self.assertEqual(warnings[0].path, "/section0")

    def test_lzma_section(self):
        inner = pack_sections([
            build_section(EFI_SECTION_RAW, b"payload!"),
            ui_section("Compressed"),
        ])
        sections = parse_sections(build_compressed_section(inner))

        guided = sections[0].parsed_object
        self.assertTrue(guided.compressed)
        self.assertEqual(guided.decompressed, inner)
        self.assertEqual(len(guided.subsections), 2)
        self.assertEqual(guided.subsections[0].data, b"payload!")
        self.assertEqual(guided.subsections[1].name, "Compressed")
        self.assertEqual(list(sections[0].iterate_warnings()), [])

    def test_preamble(self):
        inner = build_section(EFI_SECTION_RAW, b"payload!")
        data = build_guided_section(
            OTHER_GUID, inner, preamble=b"\x01\x02\x03\x04")
        section = parse_sections(data)[0]
        guided = section.parsed_object
        # Run the payload split directly, the GUID has no codec.
        guided._split_payload()

        self.assertEqual(guided.preamble, b"\x01\x02\x03\x04")
        self.assertEqual(guided.data, inner)

    def test_bad_data_offset(self):
        data = bytearray(build_compressed_section(
            build_section(EFI_SECTION_RAW, b"payload!")))
        struct.pack_into("<H", data, SECTION_HEADER_SIZE + 16, 0x400)
        section = parse_sections(bytes(data))[0]

        self.assertEqual(section.parsed_object.subsections, [])
        self.assertEqual(len(section.parsed_object.warnings), 1)

    def test_nesting_limit(self):
        data = build_section(EFI_SECTION_RAW, b"innermost")
        for _ in range(MAX_NESTING_DEPTH + 4):
            data = build_compressed_section(data)
        section = parse_sections(data)[0]

        warnings = list(section.iterate_warnings())
        self.assertEqual(len(warnings), 1)
        self.assertIsInstance(warnings[0], NestingTooDeep)


class CompressionSectionTest(unittest.TestCase):

    def test_not_compressed(self):
        inner = pack_sections([ui_section("Inner")])
        data = build_section(
            EFI_SECTION_COMPRESSION,
            struct.pack("<IB", len(inner), EFI_NOT_COMPRESSED) + inner)
        section = parse_sections(data)[0]

        compressed = section.parsed_object
        self.assertIsInstance(compressed, CompressedSection)
        self.assertEqual(compressed.decompressed_size, len(inner))
        self.assertEqual(compressed.subsections[0].name, "Inner")

    def test_standard_compression(self):
        data = build_section(
            EFI_SECTION_COMPRESSION,
            struct.pack("<IB", 8, EFI_STANDARD_COMPRESSION) + b"\x00" * 8)
        section = parse_sections(data)[0]

        self.assertEqual(section.parsed_object.subsections, [])
        self.assertIsInstance(
            section.parsed_object.warnings[0], UnsupportedCompression)


class SectionBuildTest(unittest.TestCase):

    def test_legacy_header(self):
        data = build_section(EFI_SECTION_RAW, b"ABC")
        self.assertEqual(data, b"\x07\x00\x00\x19ABC")

    def test_extended_header(self):
        payload = b"A" * (MAX_LEGACY_SIZE - SECTION_HEADER_SIZE)
        data = build_section(EFI_SECTION_RAW, payload)

        self.assertEqual(data[:4], b"\xff\xff\xff\x19")
        self.assertEqual(
            struct.unpack("<I", data[4:8])[0],
            SECTION_HEADER2_SIZE + len(payload))
        self.assertEqual(len(data), SECTION_HEADER2_SIZE + len(payload))

    def test_pack_sections(self):
        data = pack_sections([
            build_section(EFI_SECTION_RAW, b"A"),
            build_section(EFI_SECTION_RAW, b"B"),
        ])
        self.assertEqual(data, b"\x05\x00\x00\x19A\x00\x00\x00"
                         b"\x05\x00\x00\x19B")

    def test_regenerate_compressed(self):
        inner = pack_sections([
            build_section(EFI_SECTION_RAW, b"payload!"),
            ui_section("Compressed"),
        ])
        data = build_compressed_section(inner)
        section = parse_sections(data)[0]

        self.assertEqual(SectionGenerator(section).output, data)

    def test_regenerate_padding_subsection(self):
        inner = pack_sections([
            build_section(EFI_SECTION_RAW, b"\x00" * 32),
            ui_section("Compressed"),
        ])
        data = build_compressed_section(inner)
        section = parse_sections(data)[0]

        self.assertEqual(len(section.parsed_object.subsections), 1)
        self.assertEqual(SectionGenerator(section).output, data)

    def test_regenerate_opaque(self):
        data = build_guided_section(OTHER_GUID, b"opaque payload")
        section = parse_sections(data)[0]

        self.assertEqual(SectionGenerator(section).output, data)

if __name__ == '__main__':
    unittest.main()
