import math
import struct

import pytest

import neftools
from neftools.neftools import (RawOffset, is_inline, resolve_array, resolve_ascii,
                               resolve_rational)

from .nefbuilder import (TIFF_HEADER, ascii_entry, build_ifd, byte_entry, long_entry,
                         rational_entry, short_entry, undefined_entry)


def _view_with_ifd(entries):
    data = TIFF_HEADER + build_ifd(entries, 8)
    view = neftools.ByteView(data)
    return view, neftools.read_directory(view, 0, 8)


def test_byteview_bounds():
    view = neftools.ByteView(b'\x01\x02\x03\x04\x05\x06')
    assert len(view) == 6
    assert view.read(2, 4) == b'\x03\x04\x05\x06'
    assert view.u8(0) == 1
    assert view.u16(0) == 0x0201
    assert view.u32(2) == 0x06050403
    assert view.fits(0, 6)
    assert not view.fits(3, 4)
    assert not view.fits(-1, 1)
    with pytest.raises(neftools.OutOfBoundsError, match='from desired offset'):
        view.read(3, 4)
    with pytest.raises(neftools.OutOfBoundsError):
        view.u32(4)


def test_byteview_window_writes_through():
    data = b'\x00' * 8
    view = neftools.ByteView(data)
    window = view.window(2, 3)
    window[0] ^= 0xFF
    assert view.read(0, 4) == b'\x00\x00\xff\x00'
    # The source buffer is not modified
    assert data == b'\x00' * 8
    with pytest.raises(neftools.OutOfBoundsError):
        view.window(6, 3)


@pytest.mark.parametrize('header', [
    b'II\x2a\x00\x08\x00\x00\x00',
    b'II\x2a\x00\x00\x10\x00\x00',
])
def test_read_header(header):
    view = neftools.ByteView(header)
    info = neftools.read_header(view)
    assert info['byteOrder'] == 0x4949
    assert info['magic'] == 0x2A
    assert info['ifdOffset'] == struct.unpack('<L', header[4:])[0]


@pytest.mark.parametrize('header', [
    b'MM\x00\x2a\x00\x00\x00\x08',
    b'II\x2b\x00\x08\x00\x00\x00',
    b'II\x00\x2a\x08\x00\x00\x00',
    b'Not a tiff',
    b'II\x2a\x00',
    b'',
])
def test_read_header_rejected(header):
    with pytest.raises(neftools.HeaderInvalidError):
        neftools.read_header(neftools.ByteView(header))


def test_read_directory():
    view, directory = _view_with_ifd([
        ascii_entry(272, 'NIKON D5600'),
        short_entry(274, 1),
        long_entry(34665, 200),
    ])
    assert directory['tagcount'] == 3
    assert directory['origin'] == 0
    assert directory['offset'] == 8
    assert [entry['tag'] for entry in directory['entries']] == [272, 274, 34665]
    assert directory['entries'][0]['count'] == 12
    assert directory['entries'][1]['datapos'] == 8 + 2 + 12 + 8
    assert directory['nextifd'] == 0


def test_read_directory_keeps_file_order():
    view, directory = _view_with_ifd([long_entry(300, 1), long_entry(100, 2)])
    assert [entry['tag'] for entry in directory['entries']] == [300, 100]


def test_read_directory_malformed():
    data = TIFF_HEADER + struct.pack('<H', 0xFFFF) + b'\x00' * 24
    with pytest.raises(neftools.MalformedDirectoryError):
        neftools.read_directory(neftools.ByteView(data), 0, 8)


def test_read_directory_out_of_bounds():
    with pytest.raises(neftools.OutOfBoundsError):
        neftools.read_directory(neftools.ByteView(TIFF_HEADER), 0, 100)


def test_read_directory_unknown_datatype(caplog):
    data = bytearray(TIFF_HEADER + build_ifd([long_entry(300, 1), long_entry(301, 2)], 8))
    struct.pack_into('<H', data, 8 + 2 + 2, 99)
    directory = neftools.read_directory(neftools.ByteView(data), 0, 8)
    assert [entry['tag'] for entry in directory['entries']] == [301]
    assert 'Unknown datatype 99' in caplog.text


@pytest.mark.parametrize('entry,inline,values', [
    (byte_entry(300, 7), True, [7]),
    ((300, 1, 4, b'\x01\x02\x03\x04'), True, [1, 2, 3, 4]),
    ((300, 1, 5, b'\x01\x02\x03\x04\x05'), False, [1, 2, 3, 4, 5]),
    ((300, 6, 2, b'\xff\x01'), True, [-1, 1]),
    (short_entry(300, 1, 2), True, [1, 2]),
    (short_entry(300, 1, 2, 3), False, [1, 2, 3]),
    ((300, 8, 1, struct.pack('<h', -2)), True, [-2]),
    (long_entry(300, 0xDEADBEEF), True, [0xDEADBEEF]),
    (long_entry(300, 1, 2), False, [1, 2]),
    ((300, 9, 1, struct.pack('<l', -5)), True, [-5]),
    ((300, 11, 1, struct.pack('<f', 1.5)), True, [1.5]),
    ((300, 12, 1, struct.pack('<d', 2.25)), False, [2.25]),
    (rational_entry(300, (1, 4)), False, [0.25]),
    ((300, 10, 1, struct.pack('<ll', -3, 4)), False, [-0.75]),
])
def test_inline_or_indirect(entry, inline, values):
    view, directory = _view_with_ifd([entry])
    parsed = directory['entries'][0]
    assert is_inline(parsed) is inline
    if not inline:
        assert parsed['value'] == 8 + 2 + 12 + 4
    assert resolve_array(view, parsed, 0) == values


def test_resolve_value():
    view, directory = _view_with_ifd([
        ascii_entry(272, 'NIKON D5600'),
        short_entry(274, 6),
        short_entry(275, 3, 4),
        rational_entry(33434, (1, 500)),
        undefined_entry(1, b'0210'),
        undefined_entry(37500, b'x' * 20),
        long_entry(300, 1, 2, 3),
    ])
    entries = directory['entries']
    assert neftools.resolve_value(view, entries[0], 0) == 'NIKON D5600'
    assert neftools.resolve_value(view, entries[1], 0) == 6
    assert neftools.resolve_value(view, entries[2], 0) == [3, 4]
    assert neftools.resolve_value(view, entries[3], 0) == pytest.approx(0.002)
    assert neftools.resolve_value(view, entries[4], 0) == b'0210'
    offset = neftools.resolve_value(view, entries[5], 0)
    assert isinstance(offset, RawOffset)
    assert view.read(offset, 20) == b'x' * 20
    assert isinstance(neftools.resolve_value(view, entries[6], 0), RawOffset)


def test_resolve_ascii():
    view, directory = _view_with_ifd([
        ascii_entry(272, 'NIKON D5600'),
        ascii_entry(273, 'ab'),
        undefined_entry(1, b'0210'),
        (274, 2, 5, b'abc\x00\x00'),
    ])
    entries = directory['entries']
    assert resolve_ascii(view, entries[0], 0) == 'NIKON D5600'
    assert resolve_ascii(view, entries[1], 0) == 'ab'
    assert resolve_ascii(view, entries[2], 0) == '0210'
    assert resolve_ascii(view, entries[3], 0) == 'abc'


def test_resolve_rational():
    view, directory = _view_with_ifd([
        rational_entry(33434, (1, 500)),
        rational_entry(33437, (90, 10)),
    ])
    assert resolve_rational(view, directory['entries'][0], 0) == pytest.approx(0.002)
    assert resolve_rational(view, directory['entries'][1], 0) == 9.0


def test_resolve_rational_zero_denominator(caplog):
    view, directory = _view_with_ifd([rational_entry(33434, (1, 0))])
    assert math.isnan(resolve_rational(view, directory['entries'][0], 0))
    assert 'zero denominator' in caplog.text


@pytest.mark.parametrize('entry,func', [
    (ascii_entry(272, 'NIKON D5600'), resolve_rational),
    (long_entry(300, 1), resolve_rational),
    (long_entry(300, 1), resolve_ascii),
    (rational_entry(33434, (1, 500)), resolve_ascii),
    (ascii_entry(272, 'NIKON D5600'), resolve_array),
    (undefined_entry(1, b'0210'), resolve_array),
    ((0x00A7, 4, 0, b''), resolve_array),
    ((33434, 5, 0, b''), resolve_rational),
])
def test_resolve_type_mismatch(entry, func):
    view, directory = _view_with_ifd([entry])
    with pytest.raises(neftools.TypeMismatchError):
        func(view, directory['entries'][0], 0)


def test_resolve_out_of_bounds():
    data = TIFF_HEADER + struct.pack('<HHHLL', 1, 272, 2, 12, 0x10000) + b'\x00' * 4
    view = neftools.ByteView(data)
    directory = neftools.read_directory(view, 0, 8)
    with pytest.raises(neftools.OutOfBoundsError):
        resolve_ascii(view, directory['entries'][0], 0)
