"""Terminal outcomes of a roster upload attempt.

Every error here ends the current attempt; nothing is retried automatically
and the caller shows ``user_message`` to the person who uploaded the file.
"""


class RosterImportError(Exception):
    default_message = "The roster upload failed. Please try again."

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.default_message)

    @property
    def user_message(self) -> str:
        return str(self)


class UnsupportedFormat(RosterImportError):
    default_message = "Unsupported file type. Upload a .csv or .xlsx file."


class MissingColumn(RosterImportError):
    default_message = "The spreadsheet has no 'email' column in its header row."


class FileReadError(RosterImportError):
    default_message = "The uploaded file could not be read."


class NoValidRows(RosterImportError):
    default_message = "No valid rows found in the uploaded file."


class SubmissionFailed(RosterImportError):
    default_message = "Failed to add members. Please try again."

    def __init__(self, message: str = "", *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ImportInProgress(RosterImportError):
    default_message = "An upload is already in progress. Please wait for it to finish."


__all__ = [
    "RosterImportError",
    "UnsupportedFormat",
    "MissingColumn",
    "FileReadError",
    "NoValidRows",
    "SubmissionFailed",
    "ImportInProgress",
]
