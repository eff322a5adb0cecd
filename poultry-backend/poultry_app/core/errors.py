# poultry_app/core/errors.py
"""
Taksonomi error pipeline upload -> diagnosis.

Setiap komponen menangkap exception library (Pillow, httpx, SQLAlchemy,
google-cloud) di batasnya sendiri lalu me-raise salah satu class di bawah
dengan `raise ... from exc`. Orchestrator hanya perlu mengenali PipelineError.
"""


class PipelineError(Exception):
    """Base untuk semua kegagalan tahap pipeline."""

    http_status = 500

    def __init__(self, message: str, detail: str | None = None):
        super().__init__(message)
        self.message = message
        self.detail = detail

    def to_dict(self) -> dict:
        out = {"error": type(self).__name__, "message": self.message}
        if self.detail:
            out["detail"] = self.detail
        return out


class ValidationError(PipelineError):
    """Input gambar tidak valid (bisa diperbaiki user)."""

    http_status = 400

    TOO_SMALL = "too_small"
    TOO_LARGE = "too_large"
    UNRECOGNIZED_FORMAT = "unrecognized_format"

    def __init__(self, message: str, reason: str, detail: str | None = None):
        super().__init__(message, detail)
        self.reason = reason


class CompressionError(PipelineError):
    """Decode/encode gagal pada input yang lolos validasi."""


class ClassifierUnavailable(PipelineError):
    """Transport/timeout ke ML service."""

    http_status = 503


class ClassifierError(PipelineError):
    """ML service menjawab tapi melaporkan kegagalan."""

    http_status = 502

    def __init__(self, message: str, status_code: int | None = None, detail: str | None = None):
        super().__init__(message, detail)
        self.status_code = status_code


class PredictionFormatError(PipelineError):
    """Respons classifier melanggar kontrak bentuk data."""

    http_status = 502


class StorageError(PipelineError):
    """Penulisan/akses blob storage gagal."""


class PersistenceError(PipelineError):
    """Query/insert ke database relasional gagal."""
