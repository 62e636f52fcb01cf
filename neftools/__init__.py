import logging
from importlib.metadata import PackageNotFoundError, version

from .commands import main, nef_dump
from .constants import Datatype, EXIFTag, MeteringMode, NikonTag, Tag, TiffDatatype, TiffTag
from .exceptions import (HeaderInvalidError, InvalidMakernoteError, MalformedDirectoryError,
                         NeftoolsError, NeftoolsException, OutOfBoundsError, TypeMismatchError,
                         UnknownTagError)
from .lens import LensTable, decrypt_lens_data
from .neftools import (ByteView, decode_nef, locate_makernote, read_directory, read_header,
                       read_nef, resolve_value)

try:
    __version__ = version(__name__)
except PackageNotFoundError:
    __version__ = '0.0.0'


logger = logging.getLogger(__name__)

# See http://docs.python.org/3.3/howto/logging.html#configuring-logging-for-a-library
logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = (
    'Datatype', 'TiffDatatype',
    'Tag', 'TiffTag', 'EXIFTag', 'NikonTag', 'MeteringMode',

    'NeftoolsError',
    'NeftoolsException',
    'HeaderInvalidError',
    'OutOfBoundsError',
    'MalformedDirectoryError',
    'InvalidMakernoteError',
    'TypeMismatchError',
    'UnknownTagError',

    'ByteView',
    'LensTable',
    'decode_nef',
    'decrypt_lens_data',
    'locate_makernote',
    'read_directory',
    'read_header',
    'read_nef',
    'resolve_value',

    'nef_dump',

    '__version__',
    'main',
)
