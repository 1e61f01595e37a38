'''Exceptions raised while parsing or building firmware structures.

Every error carries the byte offset it relates to and the path of the
containing objects, so a report can be matched against a hex dump of the
input.
'''


class FirmwareError(Exception):
    '''Base class for all structural firmware errors.'''

    def __init__(self, message, offset=None, path=None):
        Exception.__init__(self, message)
        self.message = message
        self.offset = offset
        self.path = path

    def __str__(self):
        location = []
        if self.path:
            location.append(self.path)
        if self.offset is not None:
            location.append("offset 0x%x" % self.offset)
        if len(location) == 0:
            return self.message
        return "%s (%s)" % (self.message, ", ".join(location))


class TruncatedInput(FirmwareError):
    '''Fewer bytes are available than a header requires.'''


class InvalidLength(FirmwareError):
    '''A declared size is smaller than the header it implies.'''


class InvalidSectionLength(InvalidLength):
    pass


class Overflow(FirmwareError):
    '''A declared extent exceeds its container.'''


class SectionOverflow(Overflow):
    pass


class UnsupportedCompression(FirmwareError):
    '''A section is compressed with an algorithm that has no codec.'''


class CompressionError(FirmwareError):
    '''A codec failed to compress or decompress a payload.'''


class VolumeTooSmall(FirmwareError):
    '''Packed volume content exceeds the requested volume size.'''


class UnknownVolumeFormat(FirmwareError):
    '''The volume does not carry a firmware file system this parser walks.'''


class UnknownSectionType(FirmwareError):
    pass


class NestingTooDeep(FirmwareError):
    pass
