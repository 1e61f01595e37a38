'''Base provides basic firmware object structures.
'''

import os

from .utils import dump_data, blue, red, print_error, is_uniform


class FirmwareObject(object):
    '''A pseudo-abstract type providing common firmware member facilities.'''

    def __init__(self):
        self.data = None
        self.name = None
        self.guid = None
        self.offset = 0
        self.path = ""
        self.warnings = []

    @property
    def objects(self):
        '''Objects are the child firmware objects found via 'processing'.'''
        return []

    def warn(self, error):
        '''Record a diagnostic against this object and report it.

        The error is attributed to this object's path if it has none, and is
        written to stderr. Processing of sibling objects continues.
        '''
        if error.path is None:
            error.path = self.path
        self.warnings.append(error)
        print_error("%s: %s" % (red("Warning"), str(error)))

    def iterate_warnings(self):
        '''Yield the diagnostics of this object and all of its children.'''
        for warning in self.warnings:
            yield warning
        for _object in self.objects:
            if _object is None:
                continue
            for warning in _object.iterate_warnings():
                yield warning


class RawObject(FirmwareObject):
    '''Bytes surfaced without interpretation.'''

    def __init__(self, data, offset=0, path=""):
        FirmwareObject.__init__(self)
        self.data = data
        self.offset = offset
        self.path = path

    @property
    def size(self):
        return len(self.data)

    def showinfo(self, ts='', index=None):
        print("%s%s offset= 0x%x size= %d " % (
            ts, blue("RawObject:"), self.offset, len(self.data)
        ))

    def dump(self, parent='', index=None):
        if is_uniform(self.data):
            return
        name = "object.raw" if index is None else "object%d.raw" % index
        dump_data(os.path.join(parent, name), self.data)
