# flake8: noqa: E501
# Disable flake8 line-length check (E501), it makes this file harder to read

from .exceptions import UnknownTagError


class TiffConstant(int):
    def __new__(cls, value, *args, **kwargs):
        return super().__new__(cls, value)

    def __init__(self, value, constantDict):
        """
        Create a constant.  The constant is at least a value and an
        associated name.  It can have other properties.

        :param value: an integer.
        :param constantDict: a dictionary with at least a 'name' key.
        """
        self.__dict__.update(constantDict)
        self.value = value
        self.name = str(getattr(self, 'name', self.value))

    def __str__(self):
        if str(self.name) != str(self.value):
            return '%s %d (0x%X)' % (self.name, self.value, self.value)
        return '%d (0x%X)' % (self.value, self.value)

    def __getitem__(self, key):
        try:
            return getattr(self, str(key))
        except AttributeError:
            raise KeyError(key)

    def __int__(self):
        return self.value

    def __eq__(self, other):
        if isinstance(other, TiffConstant):
            return self.value == other.value and self.name == other.name
        try:
            return self.value == int(other)
        except ValueError:
            try:
                return self.value == int(other, 0)
            except ValueError:
                pass
        except TypeError:
            return False
        return self.name.upper() == other.upper()

    def __ne__(self, other):
        return not self.__eq__(other)

    def __contains__(self, other):
        return hasattr(self, str(other))

    def __hash__(self):
        return hash((type(self).__name__, self.value))

    def get(self, key, default=None):
        return getattr(self, str(key), default)


class TiffTag(TiffConstant):
    pass


class TiffConstantSet:
    def __init__(self, setNameOrClass, setDict):
        """
        Create a set of TiffConstant values.

        :param setNameOrClass: the set name or class; this is the class name
            for the constants.  If a class, this must be a subclass of
            TiffConstant.
        :param setDict: a dictionary to turn into TiffConstant values.  The
            keys should be integers and the values dictionaries with at least a
            name key.
        """
        if isinstance(setNameOrClass, str):
            setClass = type(setNameOrClass, (TiffConstant,), {})
            globals()[setNameOrClass] = setClass
        else:
            setClass = setNameOrClass
        entries = {}
        names = {}
        for k, v in setDict.items():
            entry = setClass(k, v)
            entries[k] = entry
            names[entry.name.upper()] = entry
            names[str(int(entry))] = entry
            for altname in v.get('altnames', ()):
                names[altname.upper()] = entry
        self.__dict__.update(names)
        self._entries = entries
        self._setClass = setClass

    def __contains__(self, other):
        return hasattr(self, str(other))

    def __getattr__(self, key):
        try:
            key = str(int(key, 0))
        except (ValueError, TypeError):
            pass
        try:
            return self.__dict__[key.upper()]
        except KeyError:
            raise AttributeError("'%s' object has no attribute '%s'" % (type(self).__name__, key))

    def __getitem__(self, key):
        if isinstance(key, TiffConstant):
            key = int(key)
        try:
            return getattr(self, str(key))
        except AttributeError:
            raise KeyError(key)

    def get(self, key, default=None):
        if hasattr(self, str(key)):
            return getattr(self, str(key))
        return default

    def __iter__(self):
        for _k, v in sorted(self._entries.items()):
            yield v


def get_or_create_tag(key, tagSet=None, **tagOptions):
    """
    Get a tag from a tag set.  If the key does not exist and can be converted
    to an integer, create a tag with that value of the same type as used by the
    specified tag set.  If no tag set is specified, return a TiffTag with the
    specified value.

    :param key: the name or value of the tag to get or create.
    :param tagSet: optional TiffConstantSet with known tags.
    :param **tagOptions: if tag needs to be created and this is specified, add
        this as part of creating the tag.
    :returns: a TiffConstant.
    """
    if tagSet and key in tagSet:
        return tagSet[key]
    try:
        value = int(key)
    except ValueError:
        try:
            value = int(key, 0)
        except ValueError:
            value = -1
    if value < 0 or value >= 65536:
        raise UnknownTagError('Unknown tag %s' % key)
    tagClass = tagSet._setClass if tagSet else TiffTag
    return tagClass(value, tagOptions)


Datatype = TiffConstantSet('TiffDatatype', {
    1: {'pack': 'B', 'name': 'BYTE', 'size': 1, 'desc': 'UINT8 - unsigned byte'},
    2: {'pack': None, 'name': 'ASCII', 'size': 1, 'desc': 'null-terminated string'},
    3: {'pack': 'H', 'name': 'SHORT', 'size': 2, 'desc': 'UINT16 - unsigned short'},
    4: {'pack': 'L', 'name': 'LONG', 'size': 4, 'desc': 'UINT32 - unsigned long', 'altnames': {'DWORD'}},
    5: {'pack': 'LL', 'name': 'RATIONAL', 'size': 8, 'desc': 'two UINT32 - two unsigned longs forming a numerator and a denominator'},
    6: {'pack': 'b', 'name': 'SBYTE', 'size': 1, 'desc': 'INT8 - signed byte'},
    7: {'pack': None, 'name': 'UNDEFINED', 'size': 1, 'desc': 'arbitrary binary data'},
    8: {'pack': 'h', 'name': 'SSHORT', 'size': 2, 'desc': 'INT16 - signed short'},
    9: {'pack': 'l', 'name': 'SLONG', 'size': 4, 'desc': 'INT32 - signed long'},
    10: {'pack': 'll', 'name': 'SRATIONAL', 'size': 8, 'desc': 'two INT32 - two signed longs forming a numerator and a denominator'},
    11: {'pack': 'f', 'name': 'FLOAT', 'size': 4, 'desc': 'binary32 - IEEE-754 single-precision float'},
    12: {'pack': 'd', 'name': 'DOUBLE', 'size': 8, 'desc': 'binary64 - IEEE-754 double precision float'},
    13: {'pack': 'L', 'name': 'IFD', 'size': 4, 'desc': 'UINT32 - unsigned long with the location of an Image File Directory'},
})

MeteringMode = TiffConstantSet('NefMeteringMode', {
    0: {'name': 'Unknown'},
    1: {'name': 'Average'},
    2: {'name': 'Center-Weighted', 'altnames': {'CenterWeighted', 'CenterWeightedAverage'}},
    3: {'name': 'Spot'},
    4: {'name': 'Multi-Spot', 'altnames': {'MultiSpot'}},
    5: {'name': 'Multi-Segment', 'altnames': {'MultiSegment', 'Pattern', 'Matrix'}},
    6: {'name': 'Partial'},
    255: {'name': 'Other'},
})

Tag = TiffConstantSet(TiffTag, {
    271: {'name': 'Make', 'datatype': Datatype.ASCII, 'desc': 'The camera manufacturer'},
    272: {'name': 'Model', 'datatype': Datatype.ASCII, 'desc': 'The camera model name'},
    306: {'name': 'DateTime', 'datatype': Datatype.ASCII, 'count': 20, 'desc': 'Date and time of image creation'},
    330: {'name': 'SubIFD', 'altnames': {'SubIFDs'}, 'datatype': (Datatype.LONG, Datatype.IFD), 'desc': 'Offsets to child IFDs; the first holds the embedded preview'},
    34665: {'name': 'EXIFIFD', 'altnames': {'ExifOffset'}, 'datatype': (Datatype.LONG, Datatype.IFD), 'count': 1},
})

EXIFTag = TiffConstantSet(TiffTag, {
    33434: {'name': 'ExposureTime', 'datatype': Datatype.RATIONAL, 'count': 1, 'desc': 'Exposure time'},
    33437: {'name': 'FNumber', 'datatype': Datatype.RATIONAL, 'count': 1, 'desc': 'F number'},
    36867: {'name': 'DateTimeOriginal', 'datatype': Datatype.ASCII, 'count': 20, 'desc': 'Date and time of original data'},
    37383: {'name': 'MeteringMode', 'datatype': Datatype.SHORT, 'count': 1, 'enum': MeteringMode},
    37386: {'name': 'FocalLength', 'datatype': Datatype.RATIONAL, 'count': 1, 'desc': 'Lens focal length'},
    37500: {'name': 'MakerNote', 'datatype': Datatype.UNDEFINED, 'desc': 'Manufacturer notes'},
})

NikonTag = TiffConstantSet(TiffTag, {
    0x0001: {'name': 'MakerNoteVersion', 'datatype': Datatype.UNDEFINED, 'count': 4},
    0x0002: {'name': 'ISO', 'datatype': Datatype.SHORT, 'count': 2},
    0x0004: {'name': 'Quality', 'datatype': Datatype.ASCII},
    0x0005: {'name': 'WhiteBalance', 'datatype': Datatype.ASCII},
    0x0007: {'name': 'FocusMode', 'datatype': Datatype.ASCII},
    0x0008: {'name': 'FlashSetting', 'datatype': Datatype.ASCII},
    0x001D: {'name': 'SerialNumber', 'datatype': Datatype.ASCII, 'desc': 'Body serial number; keys the lens data cipher'},
    0x0025: {'name': 'ISOInfo', 'datatype': Datatype.UNDEFINED, 'count': 14},
    0x0083: {'name': 'LensType', 'datatype': Datatype.BYTE, 'count': 1},
    0x0084: {'name': 'Lens', 'datatype': Datatype.RATIONAL, 'count': 4, 'desc': 'Focal length range and maximum apertures'},
    0x0098: {'name': 'LensData', 'datatype': Datatype.UNDEFINED, 'desc': 'Version prefixed lens block, encrypted from version 0201'},
    0x00A7: {'name': 'ShutterCount', 'datatype': Datatype.LONG, 'count': 1, 'desc': 'Shutter count; keys the lens data cipher'},
})
