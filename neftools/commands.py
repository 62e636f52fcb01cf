import argparse
import json
import logging
import math
import os
import sys

import yaml

from .exceptions import NeftoolsException
from .lens import LensTable
from .neftools import read_nef

logger = logging.getLogger(__name__)

NEF_EXTENSION = '.nef'


class ThrowOnLevelHandler(logging.NullHandler):
    def handle(self, record):
        raise NeftoolsException(record.getMessage())


def _is_unknown(value):
    return value is None or (isinstance(value, float) and math.isnan(value))


def format_shutter_speed(exposureTime):
    """
    Format an exposure time as a shutter speed.

    :param exposureTime: the exposure time in seconds.
    :returns: text such as '1/500 second'.
    """
    if _is_unknown(exposureTime) or exposureTime <= 0:
        return 'Unknown'
    if exposureTime < 1:
        return '1/%d second' % round(1.0 / exposureTime)
    if exposureTime == 1:
        return '1 second'
    return '%g seconds' % exposureTime


def format_aperture(fnumber):
    return 'Unknown' if _is_unknown(fnumber) else 'f/%.1f' % fnumber


def format_focal_length(focalLength):
    return 'Unknown' if _is_unknown(focalLength) else '%.2f mm' % focalLength


REPORT_FIELDS = (
    ('Camera Model', 'model', None),
    ('Serial Number', 'serialNumber', None),
    ('Lens Model', 'lensModel', None),
    ('Lens', 'lensSpec', None),
    ('Timestamp', 'timestamp', None),
    ('Shutter Speed', 'exposureTime', format_shutter_speed),
    ('Aperture', 'aperture', format_aperture),
    ('ISO', 'iso', None),
    ('Focal Length', 'focalLength', format_focal_length),
    ('White Balance', 'whiteBalance', None),
    ('Quality', 'quality', None),
    ('Focus Mode', 'focusMode', None),
    ('Metering Mode', 'meteringMode', None),
    ('Shutter Count', 'shutterCount', None),
)


def _nef_report(info, dest):
    """
    Print decoded information as one line per field.

    :param info: the result of read_nef.
    :param dest: the stream to print results to.
    """
    for label, key, formatter in REPORT_FIELDS:
        value = info.get(key)
        if formatter:
            value = formatter(value)
        elif _is_unknown(value):
            value = 'Unknown'
        dest.write('%s = %s\n' % (label, value))


class ExtendedJsonEncoder(json.JSONEncoder):
    def default(self, obj):
        return '%s:%s' % (type(obj).__name__, repr(obj))


def nef_dump(source, dest=None, outformat='text', lensTable=None, *args, **kwargs):
    """
    Print the camera and exposure information of a NEF file.

    :param source: the source path or a list of source paths.
    :param dest: an open stream to write to.
    :param outformat: one of 'text', 'json', or 'yaml'.
    :param lensTable: a LensTable.  If None, the built-in table is used.
    """
    dest = sys.stdout if dest is None else dest
    if isinstance(source, list):
        for src in source:
            if len(source) > 1 and outformat == 'text':
                dest.write('-- %s --\n' % src)
            nef_dump(src, dest, outformat, lensTable, *args, **kwargs)
        return
    info = read_nef(source, lensTable)
    if outformat == 'json':
        json.dump(info, dest, indent=2, cls=ExtendedJsonEncoder)
        dest.write('\n')
    elif outformat == 'yaml':
        yaml.safe_dump(info, dest, sort_keys=False)
    else:
        _nef_report(info, dest)


def _check_extension(source):
    """
    Check that a source is a NEF file or stdin.

    :param source: the source path.
    :returns: None if the source is acceptable, otherwise an error message.
    """
    if source == '-':
        return None
    extension = os.path.splitext(str(source))[1]
    if extension.lower() != NEF_EXTENSION:
        return 'Unsupported file type %s.  Please specify a .NEF file to process.' % (
            extension or '(none)')
    return None


def main(args=None):
    from . import __version__

    if args is None:
        args = sys.argv[1:]
    description = 'Decode camera and lens information from Nikon NEF files.  Version %s.' % (
        __version__)
    parser = argparse.ArgumentParser(description=description)
    parser.add_argument(
        'source', nargs='+', help='Source NEF file, - for stdin.')
    parser.add_argument(
        '--json', dest='outformat', action='store_const', const='json', default='text',
        help='Output as json.')
    parser.add_argument(
        '--yaml', dest='outformat', action='store_const', const='yaml',
        help='Output as yaml.')
    parser.add_argument(
        '--lens-table', '-l', action='append', dest='lensTables', metavar='PATH',
        help='A YAML or JSON file of additional lens identifiers.  Keys are '
        'eight hex bytes, such as "E3 40 76 A6 38 40 DF 4E", and values are '
        'lens names.  This may be specified multiple times.')
    parser.add_argument(
        '--verbose', '-v', action='count', default=0, help='Increase output.')
    parser.add_argument(
        '--silent', '--quiet', '-q', action='count', default=0, help='Decrease output.')
    parser.add_argument(
        '--stop-on-warning', '-X', dest='warningIsError', action='store_true',
        help='Treat warnings as errors.')
    args = parser.parse_args(args)
    logging.basicConfig(
        stream=sys.stderr, level=max(1, logging.WARNING - 10 * (args.verbose - args.silent)))
    logger.debug('Parsed arguments: %r', args)
    for source in args.source:
        msg = _check_extension(source)
        if msg:
            sys.stderr.write('Error: %s\n' % msg)
            return 1
    logLevelHandler = ThrowOnLevelHandler(
        level=logging.WARNING if args.warningIsError else logging.ERROR)
    try:
        logging.getLogger('neftools').addHandler(logLevelHandler)
        try:
            lensTable = LensTable()
            for path in args.lensTables or []:
                lensTable.load(path)
            nef_dump(args.source, outformat=args.outformat, lensTable=lensTable)
        except Exception as exc:
            if args.verbose - args.silent >= 1:
                raise
            sys.stderr.write('Error: %s\n' % str(exc).strip())
            return 1
    finally:
        logging.getLogger('neftools').handlers.remove(logLevelHandler)
    return 0
