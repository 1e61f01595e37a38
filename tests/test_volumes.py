import struct
import unittest

from uefi_fv.errors import (
    InvalidLength, Overflow, UnknownVolumeFormat, VolumeTooSmall)
from uefi_fv.generator.uefi import (
    build_section, build_file, build_volume, build_compressed_volume,
    pack_sections, FirmwareVolumeGenerator)
from uefi_fv.uefi import parse_volume, FirmwareVolume, GuidDefinedSection
from uefi_fv.utils import guid_bytes
from uefi_fv.structs.uefi_structs import *

FFS2_GUID = FIRMWARE_VOLUME_GUIDS["FFS2"]
FFS3_GUID = FIRMWARE_VOLUME_GUIDS["FFS3"]
OTHER_GUID = "fff12b8d-7696-4c8b-a985-2747075b4f50"
FILE_GUID = "7c04a583-9e3e-4f1c-ad65-e05268d0b4d1"
SECOND_GUID = "5ae3f37e-4eae-41ae-8240-35465b5e81eb"


def abc_file(guid=FILE_GUID):
    return build_file(guid, EFI_FV_FILETYPE_FREEFORM, b"ABC")


class VolumeParseTest(unittest.TestCase):

    def test_single_file(self):
        data = build_volume(FFS2_GUID, 0x1000, [abc_file()])
        volume = parse_volume(data)

        self.assertEqual(len(data), 0x1000)
        self.assertEqual(volume.size, 0x1000)
        self.assertEqual(volume.hdrlen, FV_HEADER_LENGTH)
        self.assertEqual(len(volume.files), 1)
        self.assertEqual(volume.files[0].guid, guid_bytes(FILE_GUID))
        self.assertEqual(volume.files[0].type, EFI_FV_FILETYPE_FREEFORM)
        self.assertEqual(volume.files[0].data, b"ABC")
        self.assertEqual(volume.files[0].sections, [])
        self.assertEqual(list(volume.iterate_warnings()), [])

    def test_file_alignment(self):
        data = build_volume(FFS3_GUID, 0x1000, [
            abc_file(),
            build_file(PADDING_GUID, EFI_FV_FILETYPE_FFS_PAD, b"\xff" * 5),
            abc_file(SECOND_GUID),
        ])
        volume = parse_volume(data, offset=0x10000)

        self.assertEqual(len(volume.files), 2)
        self.assertEqual(volume.files[0].offset, 0x10000 + FV_HEADER_LENGTH)
        self.assertEqual(
            volume.files[1].offset, 0x10000 + FV_HEADER_LENGTH + 0x40)

    def test_free_space_sentinel(self):
        free_space = b"\xff" * FFS_HEADER2_SIZE + b"junk"
        data = build_volume(FFS2_GUID, 0x1000, [abc_file(), free_space])
        volume = parse_volume(data)

        self.assertEqual(len(volume.files), 1)
        self.assertEqual(list(volume.iterate_warnings()), [])

    def test_unknown_format(self):
        data = build_volume(OTHER_GUID, 0x1000, [abc_file()])
        volume = parse_volume(data)

        self.assertFalse(volume.standard)
        self.assertEqual(volume.files, [])
        self.assertEqual(volume.data, data)
        self.assertIsInstance(volume.warnings[0], UnknownVolumeFormat)

    def test_bad_header_length(self):
        data = bytearray(build_volume(FFS2_GUID, 0x1000, [abc_file()]))
        struct.pack_into("<H", data, 0x30, 0x1000)
        volume = FirmwareVolume(bytes(data))

        self.assertFalse(volume.process())
        self.assertEqual(volume.files, [])
        self.assertIsInstance(volume.warnings[0], InvalidLength)

    def test_broken_file_header(self):
        broken = bytearray(abc_file(SECOND_GUID))
        broken[0x14:0x17] = b"\x08\x00\x00"
        data = build_volume(FFS2_GUID, 0x1000, [abc_file(), bytes(broken)])
        volume = parse_volume(data)

        self.assertEqual(len(volume.files), 1)
        self.assertIsInstance(volume.warnings[0], InvalidLength)

    def test_truncated(self):
        data = build_volume(FFS2_GUID, 0x1000, [abc_file()])
        with self.assertRaises(Overflow):
            FirmwareVolume(data[:0x800])

    def test_signature(self):
        data = bytearray(build_volume(FFS2_GUID, 0x1000, [abc_file()]))
        data[0x28:0x2c] = b"_FVX"
        with self.assertRaises(UnknownVolumeFormat):
            FirmwareVolume(bytes(data))


class VolumeBuildTest(unittest.TestCase):

    def test_header(self):
        data = build_volume(FFS2_GUID, 0x2000, [abc_file()])

        self.assertEqual(data[:16], b"\x00" * 16)
        self.assertEqual(data[16:32], guid_bytes(FFS2_GUID))
        self.assertEqual(struct.unpack("<Q", data[0x20:0x28])[0], 0x2000)
        self.assertEqual(data[0x28:0x2c], FV_SIGNATURE)
        self.assertEqual(
            struct.unpack("<IIII", data[0x38:0x48]),
            (2, FV_BLOCK_SIZE, 0, 0))
        words = struct.unpack("<%dH" % (FV_HEADER_LENGTH // 2),
                              data[:FV_HEADER_LENGTH])
        self.assertEqual(sum(words) & 0xffff, 0)
        self.assertEqual(data[-0x10:], b"\xff" * 0x10)

    def test_too_small(self):
        with self.assertRaises(VolumeTooSmall):
            build_volume(FFS2_GUID, 0x50, [abc_file()])

    def test_exact_fit(self):
        data = build_volume(FFS2_GUID, FV_HEADER_LENGTH + 0x20, [abc_file()])
        self.assertEqual(parse_volume(data).files[0].data, b"ABC")


class CompressedVolumeTest(unittest.TestCase):

    def setUp(self):
        sections = pack_sections([
            build_section(EFI_SECTION_RAW, b"nested payload"),
            build_section(
                EFI_SECTION_USER_INTERFACE, "Nested\0".encode("utf-16le")),
        ])
        self.inner = build_volume(FFS2_GUID, 0x1000, [
            build_file(FILE_GUID, EFI_FV_FILETYPE_DRIVER, sections)])
        self.outer = build_compressed_volume(
            self.inner, 0x1000, file_guid=guid_bytes(SECOND_GUID))

    def test_nested_volume(self):
        volume = parse_volume(self.outer)
        self.assertEqual(list(volume.iterate_warnings()), [])

        container = volume.files[0]
        self.assertEqual(
            container.type, EFI_FV_FILETYPE_FIRMWARE_VOLUME_IMAGE)
        guided = container.sections[0].parsed_object
        self.assertIsInstance(guided, GuidDefinedSection)
        self.assertTrue(guided.compressed)

        nested = guided.subsections[0].parsed_object
        self.assertIsInstance(nested, FirmwareVolume)
        self.assertEqual(nested.data, self.inner)
        self.assertEqual(nested.files[0].name, "Nested")
        self.assertEqual(nested.files[0].sections[0].data, b"nested payload")
        self.assertEqual(
            nested.files[0].path,
            "volume/file-%s/section0/section0/volume/file-%s" % (
                SECOND_GUID, FILE_GUID))

    def test_regenerate(self):
        volume = parse_volume(self.outer)
        self.assertEqual(FirmwareVolumeGenerator(volume).output, self.outer)

    def test_regenerate_padding_file(self):
        data = build_volume(FFS2_GUID, 0x1000, [
            abc_file(),
            build_file(PADDING_GUID, EFI_FV_FILETYPE_FFS_PAD, b"\xff" * 0x100),
            build_file(SECOND_GUID, EFI_FV_FILETYPE_RAW, b"XYZ"),
        ])
        volume = parse_volume(data)
        output = FirmwareVolumeGenerator(volume).output

        self.assertEqual(output, data)
        self.assertEqual(
            parse_volume(output).files[1].offset, volume.files[1].offset)

    def test_resize(self):
        volume = parse_volume(self.outer)
        output = FirmwareVolumeGenerator(volume, size=0x2000).output

        self.assertEqual(len(output), 0x2000)
        self.assertEqual(len(parse_volume(output).files), 1)


if __name__ == '__main__':
    unittest.main()
