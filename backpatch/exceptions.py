class BackpatchException(Exception):
    '''Base class to extend in order to throw exception in backpatch.

    It takes a message and, where it makes sense, the ids of the placeholders
    that caused the exception.
    '''

    def __init__(self, message, ids=()):
        self.ids = tuple(ids)
        super().__init__(message)


class StreamException(BackpatchException):
    '''The underlying sink failed: the stream must be considered corrupt.'''
    pass


class InvalidArgumentException(BackpatchException, ValueError):
    pass


class OutOfRangeException(BackpatchException):
    '''Read-back or patch outside of the bytes already written.'''
    pass


class MalformedInputException(BackpatchException, ValueError):
    pass


class UnknownPlaceholderException(BackpatchException):
    pass


class AlreadyResolvedException(BackpatchException):
    pass


class ValueOutOfRangeException(BackpatchException, ValueError):
    '''The value doesn't fit the declared width, we never truncate.'''
    pass


class CyclicDependencyException(BackpatchException):
    pass


class DerivedComputeException(BackpatchException):
    '''A compute function failed; the original exception is in "error"
    (and in __cause__).'''

    def __init__(self, message, error, ids=()):
        self.error = error
        super().__init__(message, ids=ids)


class UnresolvedPlaceholdersException(BackpatchException):
    pass


class InvalidStateException(BackpatchException):
    '''The writer is closed or abandoned.'''
    pass
