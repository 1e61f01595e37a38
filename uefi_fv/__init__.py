'''UEFI firmware volume parser and builder.
'''
import os

from . import uefi
from . import flash

from .base import FirmwareObject, RawObject
from .errors import FirmwareError
from .flash import RegionScanner, Region, DEFAULT_STRIDE
from .uefi import parse_volume, parse_file, parse_sections
from .utils import sguid, guid_bytes, is_uniform


class MultiObject(FirmwareObject):
    '''The ordered regions discovered within a firmware image.'''

    def __init__(self, regions):
        FirmwareObject.__init__(self)
        self.regions = regions
        self.path = "image"

    @property
    def size(self):
        return sum([region.size for region in self.regions])

    @property
    def objects(self):
        return [region.object for region in self.regions]

    @property
    def volumes(self):
        return [region.object for region in self.regions
                if region.kind == Region.VOLUME]

    def showinfo(self, ts='', index=None):
        for i, _object in enumerate(self.objects):
            _object.showinfo(ts, i)

    def dump(self, parent='', index=None):
        for i, region in enumerate(self.regions):
            if region.kind == Region.UNKNOWN:
                region.object.dump(
                    os.path.join(parent, "unknown-0x%x" % region.offset))
            else:
                region.object.dump(parent, i)


def parse_image(data, start=0, length=None, stride=DEFAULT_STRIDE,
                search_descriptor=True, codecs=None):
    '''Scan a raw image and parse every firmware volume within it.

    Args:
        data (binary): The entire input file contents.
        start (Optional[int]): First offset to scan.
        length (Optional[int]): Number of bytes to extract from start.
        stride (Optional[int]): Volume signature scanning granularity.
        search_descriptor (Optional[bool]): Recognize flash descriptors.
        codecs (Optional[dict]): Compression codecs keyed by GUID.

    Return:
        MultiObject: The discovered regions in offset order.
    '''
    scanner = RegionScanner(
        data, start, length, stride, search_descriptor, codecs)
    return MultiObject(scanner.scan())


__title__ = "uefi_fv"
__version__ = "1.0"
__author__ = "uefi_fv contributors"
__license__ = "BSD"
