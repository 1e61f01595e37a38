# -*- coding: utf-8 -*-
from types import MappingProxyType

FIRMWARE_VOLUME_GUIDS = {
    "FFS1":        "7a9354d9-0468-444a-81ce-0bf617d890df",
    "FFS2":        "8c8ce578-8a3d-4f1c-9935-896185c32dd3",
    "FFS3":        "5473c07a-3dcb-4dca-bd6f-1e9689e7349a",
    "NVRAM_EVSA":  "fff12b8d-7696-4c8b-a985-2747075b4f50",
    "NVRAM_NVAR":  "cef5b9a3-476d-497f-9fdc-e98143e0422c",
    "APPLE_BOOT":  "04adeead-61ff-4d31-b6ba-64f8bf901f5a",
}

# Volumes holding a standard firmware file list.
FIRMWARE_FILESYSTEM_GUIDS = [
    FIRMWARE_VOLUME_GUIDS["FFS2"],
    FIRMWARE_VOLUME_GUIDS["FFS3"],
]

FIRMWARE_GUIDED_GUIDS = {
    "LZMA_COMPRESSED":  "ee4e5898-3914-4259-9d6e-dc7bd79403cf",
    "TIANO_COMPRESSED": "a31280ad-481e-41b6-95e8-127f4c984779",
    "FIRMWARE_VOLUME":  "24400798-3807-4a42-b413-a1ecee205dd8",
}

PADDING_GUID = "ffffffff-ffff-ffff-ffff-ffffffffffff"

# EFI_FV_FILETYPE
EFI_FV_FILETYPE_RAW = 0x01
EFI_FV_FILETYPE_FREEFORM = 0x02
EFI_FV_FILETYPE_DRIVER = 0x07
EFI_FV_FILETYPE_APPLICATION = 0x09
EFI_FV_FILETYPE_FIRMWARE_VOLUME_IMAGE = 0x0b
EFI_FV_FILETYPE_FFS_PAD = 0xf0

# EFI_SECTION_TYPE
EFI_SECTION_COMPRESSION = 0x01
EFI_SECTION_GUID_DEFINED = 0x02
EFI_SECTION_PE32 = 0x10
EFI_SECTION_VERSION = 0x14
EFI_SECTION_USER_INTERFACE = 0x15
EFI_SECTION_FIRMWARE_VOLUME_IMAGE = 0x17
EFI_SECTION_RAW = 0x19

# EFI_FFS_FILE_ATTRIBUTES
FFS_ATTRIB_LARGE_FILE = 0x01
FFS_ATTRIB_CHECKSUM = 0x40
FFS_FIXED_CHECKSUM = 0xaa

# EFI_FFS_FILE_STATE, stored inverted on an erase-polarity-1 volume.
EFI_FILE_HEADER_CONSTRUCTION = 0x01
EFI_FILE_HEADER_VALID = 0x02
EFI_FILE_DATA_VALID = 0x04

EFI_GUIDED_SECTION_PROCESSING_REQUIRED = 0x01
EFI_GUIDED_SECTION_AUTH_STATUS_VALID = 0x02

EFI_NOT_COMPRESSED = 0x00
EFI_STANDARD_COMPRESSION = 0x01

FV_SIGNATURE = b"_FVH"
FV_HEADER_SIZE = 0x38
FV_HEADER_LENGTH = 0x48
FV_REVISION = 0x02
FV_BLOCK_SIZE = 0x1000
FV_DEFAULT_ATTRIBUTES = 0x0004feff
FV_MIN_FILE_SPACE = 0x20
FV_ERASE_BYTE = b"\xff"

FFS_HEADER_SIZE = 0x18
FFS_HEADER2_SIZE = 0x20
FFS_ALIGNMENT = 8

SECTION_HEADER_SIZE = 0x04
SECTION_HEADER2_SIZE = 0x08
SECTION_ALIGNMENT = 4
SECTION_MIN_SPACE = 8

GUIDED_SECTION_HEADER_SIZE = 20

MAX_LEGACY_SIZE = 0xffffff

MAX_NESTING_DEPTH = 16

EFI_FILE_TYPES = MappingProxyType({
    # http://wiki.phoenix.com/wiki/index.php/EFI_FV_FILETYPE
    0x00: ("unknown",                    "none",        "0x00"),
    0x01: ("raw",                        "raw",         "RAW"),
    0x02: ("freeform",                   "freeform",    "FREEFORM"),
    0x03: ("security core",              "sec",         "SEC"),
    0x04: ("pei core",                   "pei.core",    "PEI_CORE"),
    0x05: ("dxe core",                   "dxe.core",    "DXE_CORE"),
    0x06: ("pei module",                 "peim",        "PEIM"),
    0x07: ("driver",                     "dxe",         "DRIVER"),
    0x08: ("combined pei module/driver", "peim.dxe",    "COMBO_PEIM_DRIVER"),
    0x09: ("application",                "app",         "APPLICATION"),
    0x0a: ("system management",          "smm",         "SMM"),
    0x0b: ("firmware volume image",      "vol",         "FV_IMAGE"),
    0x0c: ("combined smm/driver",        "smm.dxe",     "COMBO_SMM_DRIVER"),
    0x0d: ("smm core",                   "smm.core",    "SMM_CORE"),
    0xf0: ("ffs padding",                "pad",         "FFS_PAD"),
})

EFI_SECTION_TYPES = MappingProxyType({
    0x01: ("Compression",               "compressed",   "COMPRESSION"),
    0x02: ("Guid Defined",              "guid",         "GUID_DEFINED"),
    0x03: ("Disposable",                "disposable",   "DISPOSABLE"),
    0x10: ("PE32 image",                "pe",           "PE32"),
    0x11: ("PE32+ PIC image",           "pic.pe",       "PIC"),
    0x12: ("Terse executable (TE)",     "te",           "TE"),
    0x13: ("DXE dependency expression", "dxe.depex",    "DXE_DEPEX"),
    0x14: ("Version section",           "version",      "VERSION"),
    0x15: ("User interface name",       "ui",           "UI"),
    0x16: ("IA-32 16-bit image",        "ia32.16bit",   "COMPAT16"),
    0x17: ("Firmware volume image",     "fv",           "FV_IMAGE"),
    0x18: ("Free-form GUID",            "freeform.guid", "SUBTYPE_GUID"),
    0x19: ("Raw",                       "raw",          "RAW"),
    0x1b: ("PEI dependency expression", "pie.depex",    "PEI_DEPEX"),
    0x1c: ("SMM dependency expression", "smm.depex",    "SMM_DEPEX"),
})


def file_type_name(file_type):
    '''Human-readable name of a firmware file type code.'''
    if file_type in EFI_FILE_TYPES:
        return EFI_FILE_TYPES[file_type][0]
    return "unknown"


def section_type_name(section_type):
    '''Human-readable name of a section type code.'''
    if section_type in EFI_SECTION_TYPES:
        return EFI_SECTION_TYPES[section_type][0]
    return "unknown"


def file_type_code(label):
    '''Resolve a FREEFORM-style label, a name, or a numeric string to a code.'''
    for code, names in EFI_FILE_TYPES.items():
        if label.upper() == names[2] or label.lower() == names[0]:
            return code
    return int(label, 0)
