"""
Exception types shared by the service and the client pipeline.
"""


class TinypixError(Exception):
    """Base class for all TinyPix errors"""


class IntakeError(TinypixError):
    """A candidate file was rejected before entering the item set"""
    code = "rejected"


class UnsupportedMediaTypeError(IntakeError):
    code = "unsupported_type"


class FileTooLargeError(IntakeError):
    code = "too_large"


class ImageDecodeError(IntakeError):
    code = "decode_failed"


class CompressionError(TinypixError):
    """Compressing a single item failed"""


class CodecError(CompressionError):
    """The image library could not decode or encode the image"""


class TransportError(CompressionError):
    """The remote compression call failed or returned an unusable response"""


class ArchiveError(TinypixError):
    """Building a bulk download archive failed"""


class HandleError(TinypixError):
    """A content or preview handle was used after release or released twice"""


class InvalidTransitionError(TinypixError):
    """An item status change that the state machine does not allow"""


class ItemNotReadyError(TinypixError):
    """A download was requested for an item that is not done"""
