#!/usr/bin/env python3

import logging
import math
import struct

from .constants import Datatype, EXIFTag, MeteringMode, NikonTag, Tag, get_or_create_tag
from .exceptions import (HeaderInvalidError, InvalidMakernoteError, MalformedDirectoryError,
                         OutOfBoundsError, TypeMismatchError)
from .lens import (LENS_DATA_ENCRYPTED_VERSION, LENS_DATA_VERSION_SIZE, UNKNOWN_LENS,
                   LensTable, build_lens_key, decrypt_lens_data)
from .path_or_fobj import is_filelike_object, read_path_or_fobj

logger = logging.getLogger(__name__)

TIFF_LITTLE_ENDIAN = 0x4949
TIFF_MAGIC = 0x2A
TIFF_HEADER_FORMAT = '<HHL'
TIFF_HEADER_SIZE = struct.calcsize(TIFF_HEADER_FORMAT)

IFD_COUNT_FORMAT = '<H'
IFD_ENTRY_FORMAT = '<HHLL'
IFD_ENTRY_SIZE = struct.calcsize(IFD_ENTRY_FORMAT)
INLINE_VALUE_SIZE = 4

MAKERNOTE_MAGIC = b'Nikon'
# signature, version, reserved, followed by an embedded tiff header
MAKERNOTE_PREFIX_FORMAT = '<6sHH'
MAKERNOTE_HEADER_SIZE = struct.calcsize(MAKERNOTE_PREFIX_FORMAT) + TIFF_HEADER_SIZE

STATES = (
    'Init',
    'HeaderValidated',
    'Ifd0Scanned',
    'SubIfdSkipped',
    'ExifScanned',
    'MakernoteLocated',
    'MakernoteScanned',
    'LensResolved',
    'Done',
)


class RawOffset(int):
    """An offset to data that was not decoded, relative to its origin."""

    def __repr__(self):
        return 'RawOffset(%d)' % int(self)


class ByteView:
    """
    A bounds-checked little-endian view of a whole file.  The view owns a
    copy of the data; only the lens data decryption writes to it, through
    `window`.
    """

    def __init__(self, data):
        self._data = bytearray(data)

    def __len__(self):
        return len(self._data)

    def fits(self, offset, length):
        """
        Check if a specific number of bytes can be read at a given offset.

        :param offset: an absolute offset in the file.
        :param length: the number of bytes to read.
        :returns: True if the offset and length are possible.
        """
        return offset >= 0 and length >= 0 and offset + length <= len(self._data)

    def check(self, offset, length):
        if not self.fits(offset, length):
            msg = 'Cannot read %d (0x%x) bytes from desired offset %d (0x%x) of %d bytes' % (
                length, length, offset, offset, len(self._data))
            raise OutOfBoundsError(msg)

    def read(self, offset, length):
        self.check(offset, length)
        return bytes(self._data[offset:offset + length])

    def unpack(self, fmt, offset):
        """
        Unpack values at an offset.

        :param fmt: a struct format without a byte order; little-endian is
            always used.
        :param offset: an absolute offset in the file.
        :returns: a tuple of values.
        """
        fmt = '<' + fmt.lstrip('<')
        return struct.unpack(fmt, self.read(offset, struct.calcsize(fmt)))

    def u8(self, offset):
        return self.unpack('B', offset)[0]

    def u16(self, offset):
        return self.unpack('H', offset)[0]

    def u32(self, offset):
        return self.unpack('L', offset)[0]

    def window(self, offset, length):
        """
        Get a writable view of part of the file.

        :param offset: an absolute offset in the file.
        :param length: the number of bytes in the window.
        :returns: a memoryview that writes through to this view.
        """
        self.check(offset, length)
        return memoryview(self._data)[offset:offset + length]


def read_header(view, offset=0):
    """
    Read and validate a little-endian tiff header.

    :param view: the ByteView of the file.
    :param offset: the location of the header.
    :returns: a header dictionary with byteOrder, magic, and ifdOffset.
    """
    if not view.fits(offset, TIFF_HEADER_SIZE):
        msg = 'File is too short for a tiff header'
        raise HeaderInvalidError(msg)
    byteOrder, magic, ifdOffset = view.unpack(TIFF_HEADER_FORMAT, offset)
    if byteOrder != TIFF_LITTLE_ENDIAN or magic != TIFF_MAGIC:
        msg = 'Not a known NEF header (byte order 0x%04X, magic 0x%04X)' % (byteOrder, magic)
        raise HeaderInvalidError(msg)
    return {'byteOrder': byteOrder, 'magic': magic, 'ifdOffset': ifdOffset}


def read_directory(view, origin, offset):
    """
    Read the entries of one IFD without interpreting them.

    :param view: the ByteView of the file.
    :param origin: the absolute location that offsets in this directory are
        relative to.
    :param offset: the location of the directory relative to origin.
    :returns: a directory dictionary.  This contains origin, offset, tagcount,
        entries (a list in file order), and nextifd (None if it could not be
        read).
    """
    pos = origin + offset
    logger.debug('read_directory: %d (0x%X) from origin %d', offset, offset, origin)
    tagcount = view.unpack(IFD_COUNT_FORMAT, pos)[0]
    pos += struct.calcsize(IFD_COUNT_FORMAT)
    if not view.fits(pos, tagcount * IFD_ENTRY_SIZE):
        msg = 'Directory at %d (0x%X) claims %d entries, which exceeds the file' % (
            origin + offset, origin + offset, tagcount)
        raise MalformedDirectoryError(msg)
    directory = {
        'origin': origin,
        'offset': offset,
        'tagcount': tagcount,
        'entries': [],
        'nextifd': None,
    }
    for _entry in range(tagcount):
        tag, datatype, count, value = view.unpack(IFD_ENTRY_FORMAT, pos)
        pos += IFD_ENTRY_SIZE
        if datatype not in Datatype:
            logger.warning(
                'Unknown datatype %d (0x%X) in tag %d (0x%X)', datatype, datatype, tag, tag)
            continue
        directory['entries'].append({
            'tag': tag,
            'datatype': datatype,
            'count': count,
            'value': value,
            'datapos': pos - INLINE_VALUE_SIZE,
        })
    if view.fits(pos, 4):
        directory['nextifd'] = view.u32(pos)
    return directory


def is_inline(entry):
    """
    Check if an entry's data is stored in its value field.

    :param entry: an entry from read_directory.
    :returns: True if the data is in the entry, False if value is an offset.
    """
    return entry['count'] * Datatype[entry['datatype']].size <= INLINE_VALUE_SIZE


def entry_data_position(entry, origin):
    """
    Get the absolute location of an entry's data.

    :param entry: an entry from read_directory.
    :param origin: the origin of the entry's directory.
    :returns: an absolute offset in the file.
    """
    return entry['datapos'] if is_inline(entry) else origin + entry['value']


def resolve_array(view, entry, origin):
    """
    Decode all of the values of a numeric entry.

    :param view: the ByteView of the file.
    :param entry: an entry from read_directory.
    :param origin: the origin of the entry's directory.
    :returns: a list of at least one value.  Rationals are reduced to floats.
    """
    datatype = Datatype[entry['datatype']]
    if not datatype.pack:
        msg = 'Tag %d (0x%X) has non-numeric datatype %s' % (
            entry['tag'], entry['tag'], datatype.name)
        raise TypeMismatchError(msg)
    if not entry['count']:
        msg = 'Tag %d (0x%X) has no values' % (entry['tag'], entry['tag'])
        raise TypeMismatchError(msg)
    values = list(view.unpack(
        datatype.pack * entry['count'], entry_data_position(entry, origin)))
    if datatype in (Datatype.RATIONAL, Datatype.SRATIONAL):
        values = [_ratio(values[idx], values[idx + 1], entry)
                  for idx in range(0, len(values), 2)]
    return values


def _ratio(numerator, denominator, entry):
    if not denominator:
        logger.warning(
            'Rational in tag %d (0x%X) has a zero denominator', entry['tag'], entry['tag'])
        return math.nan
    return numerator / denominator


def resolve_rational(view, entry, origin):
    """
    Decode the first value of a rational entry.

    :param view: the ByteView of the file.
    :param entry: an entry from read_directory.
    :param origin: the origin of the entry's directory.
    :returns: the ratio as a float, or nan if the denominator is zero.
    """
    datatype = Datatype[entry['datatype']]
    if datatype not in (Datatype.RATIONAL, Datatype.SRATIONAL):
        msg = 'Tag %d (0x%X) is %s, not a rational' % (entry['tag'], entry['tag'], datatype.name)
        raise TypeMismatchError(msg)
    if not entry['count']:
        msg = 'Tag %d (0x%X) has no values' % (entry['tag'], entry['tag'])
        raise TypeMismatchError(msg)
    numerator, denominator = view.unpack(datatype.pack, origin + entry['value'])
    return _ratio(numerator, denominator, entry)


def resolve_ascii(view, entry, origin):
    """
    Decode an ASCII entry.  Undefined entries are decoded as characters, too,
    as some makernote fields store short text that way.

    :param view: the ByteView of the file.
    :param entry: an entry from read_directory.
    :param origin: the origin of the entry's directory.
    :returns: a string without trailing nulls.
    """
    datatype = Datatype[entry['datatype']]
    if datatype not in (Datatype.ASCII, Datatype.UNDEFINED):
        msg = 'Tag %d (0x%X) is %s, not text' % (entry['tag'], entry['tag'], datatype.name)
        raise TypeMismatchError(msg)
    rawdata = view.read(entry_data_position(entry, origin), entry['count']).rstrip(b'\x00')
    try:
        return rawdata.decode()
    except UnicodeDecodeError:
        return rawdata.decode('latin-1')


def resolve_value(view, entry, origin):
    """
    Decode an entry based on its datatype.

    :param view: the ByteView of the file.
    :param entry: an entry from read_directory.
    :param origin: the origin of the entry's directory.
    :returns: a string for ASCII, a float for rationals, an int for single
        inline numbers, a list for multiple inline numbers, bytes for inline
        undefined data, or a RawOffset for any other data stored elsewhere.
    """
    datatype = Datatype[entry['datatype']]
    if datatype == Datatype.ASCII:
        return resolve_ascii(view, entry, origin)
    if datatype in (Datatype.RATIONAL, Datatype.SRATIONAL):
        return resolve_rational(view, entry, origin)
    if not is_inline(entry):
        return RawOffset(entry['value'])
    if datatype == Datatype.UNDEFINED:
        return view.read(entry['datapos'], entry['count'])
    values = resolve_array(view, entry, origin)
    return values[0] if len(values) == 1 else values


def locate_makernote(view, makernoteOffset):
    """
    Validate a Nikon makernote and read its directory.

    :param view: the ByteView of the file.
    :param makernoteOffset: the absolute location of the makernote.
    :returns: a makernote dictionary with signature, version, header (the
        embedded tiff header), origin (the absolute location of the embedded
        tiff header), and directory.
    """
    signature, version, _reserved = view.unpack(MAKERNOTE_PREFIX_FORMAT, makernoteOffset)
    if signature[:len(MAKERNOTE_MAGIC)] != MAKERNOTE_MAGIC:
        msg = 'Invalid Makernote signature %r' % signature
        raise InvalidMakernoteError(msg)
    origin = makernoteOffset + MAKERNOTE_HEADER_SIZE - TIFF_HEADER_SIZE
    try:
        header = read_header(view, origin)
    except HeaderInvalidError as exc:
        msg = 'Invalid Makernote: %s' % exc
        raise InvalidMakernoteError(msg)
    logger.debug('Makernote at %d has origin %d', makernoteOffset, origin)
    return {
        'signature': signature,
        'version': version,
        'header': header,
        'origin': origin,
        'directory': read_directory(view, origin, header['ifdOffset']),
    }


def nikon_iso(raw):
    """
    Convert the raw ISO byte of the ISOInfo tag to an ISO value.  The result
    is rounded up to a multiple of 10.

    :param raw: the raw byte.
    :returns: an integer ISO.
    """
    iso = round(100 * 2 ** (raw / 12.0 - 5), 6)
    return int(math.ceil(iso / 10)) * 10


def _lens_spec(values):
    """
    Format the Nikon Lens tag as focal length and aperture ranges.

    :param values: min focal length, max focal length, max aperture at min
        focal length, max aperture at max focal length.
    :returns: text such as '24-70mm f/2.8'.
    """
    if len(values) < 4 or any(math.isnan(v) for v in values[:4]):
        return None

    def span(low, high):
        return '%g' % low if low == high else '%g-%g' % (low, high)

    return '%smm f/%s' % (span(values[0], values[1]), span(values[2], values[3]))


_IFD0_TEXT = {
    int(Tag.Make): 'make',
    int(Tag.Model): 'model',
    int(Tag.DateTime): 'datetime',
}

_EXIF_RATIONALS = {
    int(EXIFTag.ExposureTime): 'exposureTime',
    int(EXIFTag.FNumber): 'aperture',
    int(EXIFTag.FocalLength): 'focalLength',
}

_MAKERNOTE_TEXT = {
    int(NikonTag.Quality): 'quality',
    int(NikonTag.WhiteBalance): 'whiteBalance',
    int(NikonTag.FocusMode): 'focusMode',
    int(NikonTag.SerialNumber): 'serialNumber',
}


def _advance(info, state):
    logger.debug('NEF decode state: %s -> %s', info['state'], state)
    info['state'] = state


def _scan_ifd0(view, info):
    directory = read_directory(view, 0, info['header']['ifdOffset'])
    for entry in directory['entries']:
        tag = entry['tag']
        try:
            if tag in _IFD0_TEXT:
                info[_IFD0_TEXT[tag]] = resolve_ascii(view, entry, 0)
            elif tag == Tag.EXIFIFD:
                info['exififd'] = resolve_array(view, entry, 0)[0]
            elif tag == Tag.SubIFD:
                info['subifd'] = resolve_array(view, entry, 0)[0]
        except TypeMismatchError as exc:
            logger.warning('%s', exc)
    if not directory['nextifd']:
        logger.debug('No other IFD discovered.')
    _advance(info, 'Ifd0Scanned')


def _skip_subifd(view, info):
    # The SubIFD holds the embedded preview.  None of its tags are reported.
    if info.get('subifd'):
        directory = read_directory(view, 0, info['subifd'])
        info['subifdEntries'] = directory['tagcount']
    _advance(info, 'SubIfdSkipped')


def _scan_exif(view, info):
    directory = read_directory(view, 0, info['exififd'])
    for entry in directory['entries']:
        tag = entry['tag']
        try:
            if tag in _EXIF_RATIONALS:
                info[_EXIF_RATIONALS[tag]] = resolve_rational(view, entry, 0)
            elif tag == EXIFTag.DateTimeOriginal:
                info['timestamp'] = resolve_ascii(view, entry, 0)
            elif tag == EXIFTag.MeteringMode:
                mode = resolve_array(view, entry, 0)[0]
                info['meteringMode'] = MeteringMode.get(mode, MeteringMode.Unknown).name
            elif tag == EXIFTag.MakerNote:
                info['makernoteOffset'] = entry_data_position(entry, 0)
        except TypeMismatchError as exc:
            logger.warning('%s', exc)
    if info.get('timestamp') is None:
        info['timestamp'] = info.get('datetime')
    _advance(info, 'ExifScanned')


def _scan_makernote(view, info, makernote):
    """
    Read the makernote fields.  The lens data depends on the serial number
    and shutter count, which may appear later in the directory, so it is
    returned rather than decoded.

    :returns: a pending lens data dictionary with offset and count, or None.
    """
    origin = makernote['origin']
    pending = None
    for entry in makernote['directory']['entries']:
        tag = get_or_create_tag(entry['tag'], NikonTag)
        logger.debug('Makernote entry %s', tag)
        try:
            if int(tag) in _MAKERNOTE_TEXT:
                info[_MAKERNOTE_TEXT[int(tag)]] = resolve_ascii(view, entry, origin).rstrip()
            elif tag == NikonTag.MakerNoteVersion:
                info['makernoteVersion'] = resolve_ascii(view, entry, origin)
            elif tag == NikonTag.ShutterCount:
                info['shutterCount'] = resolve_array(view, entry, origin)[0]
            elif tag == NikonTag.LensType:
                info['lensType'] = resolve_array(view, entry, origin)[0]
            elif tag == NikonTag.ISOInfo:
                info['isoRaw'] = view.u8(entry_data_position(entry, origin))
                info['iso'] = nikon_iso(info['isoRaw'])
            elif tag == NikonTag.ISO and info.get('iso') is None:
                values = resolve_array(view, entry, origin)
                info['iso'] = values[-1] or None
            elif tag == NikonTag.Lens:
                info['lensSpec'] = _lens_spec(resolve_array(view, entry, origin))
            elif tag == NikonTag.LensData:
                pending = {
                    'offset': entry_data_position(entry, origin),
                    'count': entry['count'],
                }
        except TypeMismatchError as exc:
            logger.warning('%s', exc)
    _advance(info, 'MakernoteScanned')
    return pending


def _resolve_lens(view, info, pending, lensTable):
    if pending is None:
        logger.debug('No lens data in the makernote')
        return
    if pending['count'] < LENS_DATA_VERSION_SIZE:
        logger.warning('Lens data is too short (%d bytes)', pending['count'])
        return
    versionText = view.read(pending['offset'], LENS_DATA_VERSION_SIZE).decode('latin-1')
    info['lensDataVersion'] = versionText
    try:
        version = int(versionText)
    except ValueError:
        logger.warning('Unknown lens data version %r', versionText)
        info['lensModel'] = UNKNOWN_LENS
        return
    if version >= LENS_DATA_ENCRYPTED_VERSION:
        decrypt_lens_data(
            view.window(pending['offset'] + LENS_DATA_VERSION_SIZE,
                        pending['count'] - LENS_DATA_VERSION_SIZE),
            info.get('serialNumber'), info.get('shutterCount') or 0)
    lensType = info.get('lensType')
    if lensType is None:
        logger.warning('No LensType tag; using 0 for the lens identifier')
        lensType = 0
    key = build_lens_key(view.read(pending['offset'], pending['count']), version, lensType)
    model = lensTable.lookup(key) if key is not None else None
    if key is not None:
        info['lensIdKey'] = ' '.join('%02X' % val for val in key)
    info['lensModel'] = model if model is not None else UNKNOWN_LENS


def decode_nef(data, lensTable=None):
    """
    Decode camera and exposure information from the contents of a NEF file.

    The output is an "info" dictionary.  Fields that could not be decoded are
    None.  It contains the following keys:
    - model, make, serialNumber, lensModel, lensSpec, timestamp: text.
    - exposureTime: seconds.
    - aperture: the f-number.
    - focalLength: millimeters.
    - iso, shutterCount: integers.
    - whiteBalance, quality, focusMode, meteringMode: text.
    - makernoteVersion, lensDataVersion, lensIdKey: text.
    - state: the last decoding stage completed.
    - error: the reason the makernote was not decoded, if it wasn't.
    Structural failures raise exceptions; a missing or invalid makernote only
    leaves the makernote fields unset.

    :param data: the bytes of the whole file.
    :param lensTable: a LensTable.  If None, the built-in table is used.
    :returns: a dictionary of decoded information.
    """
    lensTable = LensTable() if lensTable is None else lensTable
    view = ByteView(data)
    info = {key: None for key in (
        'make', 'model', 'serialNumber', 'lensModel', 'lensSpec', 'timestamp',
        'exposureTime', 'aperture', 'iso', 'focalLength', 'whiteBalance', 'quality',
        'focusMode', 'meteringMode', 'shutterCount', 'makernoteVersion',
        'lensDataVersion', 'lensIdKey')}
    info['size'] = len(view)
    info['state'] = STATES[0]
    info['header'] = read_header(view)
    _advance(info, 'HeaderValidated')
    _scan_ifd0(view, info)
    _skip_subifd(view, info)
    if info.get('exififd') is None:
        logger.warning('No EXIF IFD')
        info['error'] = 'No EXIF IFD'
        return info
    _scan_exif(view, info)
    if info.get('makernoteOffset') is None:
        logger.warning('No Makernote in the EXIF IFD')
        info['error'] = 'No Makernote'
        return info
    try:
        makernote = locate_makernote(view, info['makernoteOffset'])
    except InvalidMakernoteError as exc:
        logger.warning('%s', exc)
        info['error'] = str(exc)
        return info
    info['makernoteOrigin'] = makernote['origin']
    _advance(info, 'MakernoteLocated')
    pending = _scan_makernote(view, info, makernote)
    _resolve_lens(view, info, pending, lensTable)
    _advance(info, 'LensResolved')
    _advance(info, 'Done')
    logger.debug('decode_nef: %s', info)
    return info


def read_nef(path, lensTable=None):
    """
    Read a NEF file and decode it.  See decode_nef.

    :param path: the file or stream to read.
    :param lensTable: a LensTable.  If None, the built-in table is used.
    :returns: a dictionary of decoded information.
    """
    info = decode_nef(read_path_or_fobj(path), lensTable)
    if not is_filelike_object(path):
        info['path'] = str(path)
    return info
