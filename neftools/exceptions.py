class NeftoolsError(Exception):
    pass


class HeaderInvalidError(NeftoolsError):
    pass


class OutOfBoundsError(NeftoolsError):
    pass


class MalformedDirectoryError(NeftoolsError):
    pass


class InvalidMakernoteError(NeftoolsError):
    pass


class TypeMismatchError(NeftoolsError):
    pass


class UnknownTagError(NeftoolsError):
    pass


NeftoolsException = NeftoolsError
