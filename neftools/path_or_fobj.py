#!/usr/bin/env python3

import contextlib
import sys


def is_filelike_object(fobj):
    """
    Check if an object is file-like in that it has a read method.

    :param fobj: the possible filelike-object.
    :returns: True if the object is filelike.
    """
    return hasattr(fobj, 'read')


@contextlib.contextmanager
def OpenPathOrFobj(pathOrObj):
    """
    Given any of a file path, a pathlib Path object, a filelike-object, or '-'
    or None to indicate stdin, return a filelike-object open for binary
    reading.  Paths are closed on exit; passed objects are left open.

    :param pathOrObj: one of a file path, pathlib Path, filelike-object, or
        None or '-'.
    :yields: a filelike object.
    """
    if pathOrObj == '-' or pathOrObj is None:
        pathOrObj = sys.stdin.buffer
    if not is_filelike_object(pathOrObj):
        with open(pathOrObj, 'rb') as fobj:
            yield fobj
    else:
        yield pathOrObj


def read_path_or_fobj(pathOrObj):
    """
    Read the entire contents of a file or stream.

    :param pathOrObj: see OpenPathOrFobj.
    :returns: the contents as bytes.
    """
    with OpenPathOrFobj(pathOrObj) as fobj:
        if hasattr(fobj, 'seekable') and fobj.seekable():
            fobj.seek(0)
        return bytes(fobj.read())
