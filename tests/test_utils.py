import unittest

from uefi_fv.errors import TruncatedInput
from uefi_fv.utils import (
    sguid, guid_bytes, is_uniform, align, unpack_length, pack_length)
from uefi_fv.structs.uefi_structs import (
    EFI_FILE_TYPES, file_type_name, section_type_name, file_type_code)

LZMA_GUID = "ee4e5898-3914-4259-9d6e-dc7bd79403cf"
LZMA_GUID_BYTES = b"\x98\x58\x4e\xee\x14\x39\x59\x42" + \
    b"\x9d\x6e\xdc\x7b\xd7\x94\x03\xcf"


class GuidTest(unittest.TestCase):

    def test_decode(self):
        self.assertEqual(sguid(LZMA_GUID_BYTES), LZMA_GUID)

    def test_decode_offset(self):
        self.assertEqual(sguid(b"\x00" * 4 + LZMA_GUID_BYTES, 4), LZMA_GUID)

    def test_encode(self):
        self.assertEqual(guid_bytes(LZMA_GUID), LZMA_GUID_BYTES)
        self.assertEqual(guid_bytes(LZMA_GUID.upper()), LZMA_GUID_BYTES)

    def test_truncated(self):
        with self.assertRaises(TruncatedInput):
            sguid(LZMA_GUID_BYTES[:15])
        with self.assertRaises(TruncatedInput):
            sguid(LZMA_GUID_BYTES, 1)

    def test_malformed_text(self):
        with self.assertRaises(ValueError):
            guid_bytes("ee4e5898-3914-4259-9d6e")


class PaddingTest(unittest.TestCase):

    def test_uniform(self):
        self.assertTrue(is_uniform(b""))
        self.assertTrue(is_uniform(b"\xff" * 32))
        self.assertTrue(is_uniform(b"\x00"))
        self.assertFalse(is_uniform(b"\xff" * 31 + b"\xfe"))


class LengthTest(unittest.TestCase):

    def test_align(self):
        self.assertEqual(align(0, 8), 0)
        self.assertEqual(align(1, 8), 8)
        self.assertEqual(align(0x1a, 4), 0x1c)

    def test_legacy_length(self):
        self.assertEqual(
            unpack_length(pack_length(0x123456, 3), 0, 3, 4, 4),
            (0x123456, False))

    def test_extended_length(self):
        data = b"\xff\xff\xff\x19" + pack_length(0x01000010, 4)
        self.assertEqual(unpack_length(data, 0, 3, 4, 4), (0x01000010, True))

    def test_extended_truncated(self):
        with self.assertRaises(TruncatedInput):
            unpack_length(b"\xff\xff\xff\x19\x00", 0, 3, 4, 4)


class TypeTableTest(unittest.TestCase):

    def test_names(self):
        self.assertEqual(file_type_name(0x02), "freeform")
        self.assertEqual(file_type_name(0x42), "unknown")
        self.assertEqual(section_type_name(0x19), "Raw")
        self.assertEqual(section_type_name(0x99), "unknown")

    def test_codes(self):
        self.assertEqual(file_type_code("FREEFORM"), 0x02)
        self.assertEqual(file_type_code("driver"), 0x07)
        self.assertEqual(file_type_code("0xf0"), 0xf0)
        with self.assertRaises(ValueError):
            file_type_code("BOGUS")

    def test_immutable(self):
        with self.assertRaises(TypeError):
            EFI_FILE_TYPES[0x42] = ("new", "new", "NEW")

if __name__ == '__main__':
    unittest.main()
