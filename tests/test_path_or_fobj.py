import io
import os
import pathlib

import pytest

from neftools.path_or_fobj import OpenPathOrFobj, is_filelike_object, read_path_or_fobj


@pytest.mark.parametrize('obj,is_fobj', [
    ('-', False),
    (None, False),
    (os.path.realpath(__file__), False),
    (pathlib.Path(__file__), False),
    (io.BytesIO(), True),
])
def test_is_filelike_object(obj, is_fobj):
    assert is_filelike_object(obj) is is_fobj


def test_OpenPathOrFobj_file():
    with OpenPathOrFobj(__file__) as fobj:
        assert hasattr(fobj, 'seekable')
    assert fobj.closed


def test_OpenPathOrFobj_leaves_stream_open():
    stream = io.BytesIO(b'data')
    with OpenPathOrFobj(stream) as fobj:
        assert fobj is stream
    assert not stream.closed


def test_OpenPathOrFobj_stdin(monkeypatch):
    mock_stdin = io.BytesIO()
    mock_stdin.write(b'This is a test')
    mock_stdin.seek(0)
    mock_stdin.seekable = lambda: False

    class Namespace(object):
        pass

    mock_obj = Namespace()
    mock_obj.buffer = mock_stdin
    monkeypatch.setattr('sys.stdin', mock_obj)
    with OpenPathOrFobj('-') as fobj:
        assert fobj.read() == b'This is a test'


def test_read_path_or_fobj(tmp_path):
    path = tmp_path / 'sample.NEF'
    path.write_bytes(b'II*\x00')
    assert read_path_or_fobj(path) == b'II*\x00'
    assert read_path_or_fobj(str(path)) == b'II*\x00'
    stream = io.BytesIO(b'II*\x00')
    stream.read()
    assert read_path_or_fobj(stream) == b'II*\x00'


def test_read_path_or_fobj_unseekable():
    stream = io.BytesIO(b'abcdef')
    stream.read(2)
    stream.seekable = lambda: False
    assert read_path_or_fobj(stream) == b'cdef'
