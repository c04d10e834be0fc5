from peer_sync.constants import Constants
from peer_sync.errors import ValidationError
from peer_sync.models import UploadFile


def max_size_label() -> str:
    return f"{Constants.MAX_FILE_SIZE_BYTES / (1024 * 1024):.0f}MB"


def validate(file: UploadFile) -> ValidationError:
    """
    Checks an upload against the size policy. Nothing is sent and nothing is tracked here;
    the caller must not start the upload if the returned error has_error().
    :param file: The candidate upload.
    :return: ValidationError.no_error() if the file may be sent.
    """
    if file.size < 0:
        return ValidationError(f"Invalid file size: {file.size}")
    if file.size > Constants.MAX_FILE_SIZE_BYTES:
        return ValidationError(f"File too large. Maximum size is {max_size_label()}")
    return ValidationError.no_error()
