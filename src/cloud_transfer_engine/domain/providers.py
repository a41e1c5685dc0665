"""Value objects exchanged with provider capabilities and account stores."""

from __future__ import annotations

from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

DEFAULT_CONTENT_TYPE = "application/octet-stream"


class ProviderType(StrEnum):
    """Provider types with a bundled capability implementation."""

    AWS_S3 = "aws-s3"
    GOOGLE_DRIVE = "google-drive"


@dataclass(slots=True, frozen=True)
class ResolvedAccount:
    """Cloud account with decrypted credentials, owned by one user."""

    account_id: str
    user_id: str
    provider_type: str
    credentials: dict[str, Any]
    account_name: str | None = None


@dataclass(slots=True, frozen=True)
class AuthenticationResult:
    """Outcome of a capability authentication probe."""

    ok: bool
    meta: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True, frozen=True)
class FileInfo:
    """Remote object metadata."""

    name: str
    path: str
    size: int
    content_type: str | None = None


@dataclass(slots=True, frozen=True)
class TransferProgress:
    """Progress reported by a capability during download or upload."""

    loaded: int
    total: int
    speed: float = 0.0

    @property
    def percentage(self) -> int:
        """Return completion in whole percent, 0 when the total is unknown."""

        if self.total <= 0:
            return 0
        return max(0, min(100, round_half_up(self.loaded / self.total * 100)))


ProgressCallback = Callable[[TransferProgress], Awaitable[None]]


@dataclass(slots=True)
class DownloadResult:
    """Readable stream of a remote object plus its metadata."""

    stream: AsyncIterator[bytes]
    file_info: FileInfo


@dataclass(slots=True, frozen=True)
class UploadResult:
    """Where an uploaded object landed at the destination."""

    location: str
    size: int | None = None


def round_half_up(value: float) -> int:
    """Round halves away from zero for the non-negative values used here."""

    return int(value + 0.5)


_SIZE_UNITS = ("Bytes", "KB", "MB", "GB", "TB")


def format_file_size(size: int) -> str:
    """Render a byte count with a binary unit, e.g. `1.5 MB`."""

    if size <= 0:
        return "0 Bytes"
    value = float(size)
    unit = 0
    while value >= 1024 and unit < len(_SIZE_UNITS) - 1:
        value /= 1024
        unit += 1
    return f"{round(value, 2):g} {_SIZE_UNITS[unit]}"


__all__ = [
    "AuthenticationResult",
    "DEFAULT_CONTENT_TYPE",
    "DownloadResult",
    "FileInfo",
    "ProgressCallback",
    "ProviderType",
    "ResolvedAccount",
    "TransferProgress",
    "UploadResult",
    "format_file_size",
    "round_half_up",
]
