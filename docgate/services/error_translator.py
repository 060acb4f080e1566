"""
Upstream Error Translation
==========================

Maps the technical failure strings returned by upstream operations to a
stable, user-facing error taxonomy. The table is plain data grouped by
domain; add entries by passing extra domains to ErrorTranslator.
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, Iterator, Mapping, Optional, Tuple


@dataclass(frozen=True)
class ErrorEntry:
    user_message: str
    suggestion: str
    code: str


@dataclass(frozen=True)
class Translation:
    user_message: str
    technical_message: str
    suggestion: str
    code: str

    def to_dict(self) -> Dict[str, str]:
        return {
            "userMessage": self.user_message,
            "technicalMessage": self.technical_message,
            "suggestion": self.suggestion,
            "code": self.code,
        }


FALLBACK = ErrorEntry(
    user_message="Processing failed",
    suggestion="Try again or contact support",
    code="GEN_UNKNOWN",
)


def _frozen(entries: Dict[str, ErrorEntry]) -> Mapping[str, ErrorEntry]:
    return MappingProxyType(entries)


DEFAULT_ERROR_TABLE: Mapping[str, Mapping[str, ErrorEntry]] = MappingProxyType({
    "document-crop": _frozen({
        "low confidence in keypoints": ErrorEntry(
            "Please upload a different image",
            "Try uploading a clearer image with better lighting and ensure the ID document is fully visible",
            "ID_CROP_001",
        ),
        "image too blurry": ErrorEntry(
            "Image quality is too low",
            "Please upload a sharper, clearer image of your ID document",
            "ID_CROP_002",
        ),
        "document not detected": ErrorEntry(
            "ID document not found in image",
            "Please ensure the entire ID document is visible in the image",
            "ID_CROP_003",
        ),
        "invalid image format": ErrorEntry(
            "Unsupported image format",
            "Please upload a valid image file (JPG, PNG, etc.)",
            "ID_CROP_004",
        ),
    }),
    "face": _frozen({
        "no face detected": ErrorEntry(
            "No face found in the image",
            "Please ensure your face is clearly visible in the image",
            "FACE_DET_001",
        ),
        "multiple faces detected": ErrorEntry(
            "Multiple faces detected",
            "Please upload an image with only one face",
            "FACE_DET_002",
        ),
        "face too small": ErrorEntry(
            "Face is too small in the image",
            "Please upload an image where your face takes up more of the frame",
            "FACE_DET_003",
        ),
    }),
    "qr": _frozen({
        "qr code not found": ErrorEntry(
            "QR code not detected",
            "Please ensure the QR code is clearly visible and not damaged",
            "QR_001",
        ),
        "qr code damaged": ErrorEntry(
            "QR code appears to be damaged",
            "Please upload an image with a clear, undamaged QR code",
            "QR_002",
        ),
    }),
    "signature": _frozen({
        "signature not clear": ErrorEntry(
            "Signature is not clear enough",
            "Please upload a clearer image of the signature",
            "SIG_001",
        ),
        "no signature found": ErrorEntry(
            "No signature detected in the image",
            "Please ensure the signature is clearly visible in the image",
            "SIG_002",
        ),
    }),
    # Scanned last so a domain-specific phrase wins over a generic one.
    "generic-infra": _frozen({
        "processing failed": ErrorEntry(
            "Processing failed",
            "Please try again with a different image",
            "GEN_001",
        ),
        "timeout": ErrorEntry(
            "Request timed out",
            "Please try again later",
            "GEN_002",
        ),
        "server error": ErrorEntry(
            "Service temporarily unavailable",
            "Please try again later",
            "GEN_003",
        ),
    }),
})


class ErrorTranslator:
    """
    Translate technical upstream messages.

    Lookup is case-insensitive: an exact match on the trimmed, lower-cased
    message first, then the first table phrase contained in it (domains in
    table order), then the GEN_UNKNOWN fallback.
    """

    def __init__(
        self,
        table: Mapping[str, Mapping[str, ErrorEntry]] = DEFAULT_ERROR_TABLE,
        extra: Optional[Mapping[str, Mapping[str, ErrorEntry]]] = None,
    ):
        merged: Dict[str, Dict[str, ErrorEntry]] = {
            domain: {phrase.lower(): entry for phrase, entry in entries.items()}
            for domain, entries in table.items()
        }
        for domain, entries in (extra or {}).items():
            merged.setdefault(domain, {}).update(
                {phrase.lower(): entry for phrase, entry in entries.items()}
            )
        self._ordered: Tuple[Tuple[str, ErrorEntry], ...] = tuple(
            (phrase, entry) for entries in merged.values() for phrase, entry in entries.items()
        )
        self._exact: Mapping[str, ErrorEntry] = MappingProxyType(dict(self._ordered))

    def __iter__(self) -> Iterator[Tuple[str, ErrorEntry]]:
        return iter(self._ordered)

    def lookup(self, technical_message: str) -> Optional[ErrorEntry]:
        key = (technical_message or "").strip().lower()
        if not key:
            return None

        entry = self._exact.get(key)
        if entry is not None:
            return entry

        for phrase, entry in self._ordered:
            if phrase in key:
                return entry
        return None

    def translate(self, technical_message: str) -> Translation:
        entry = self.lookup(technical_message) or FALLBACK
        return Translation(
            user_message=entry.user_message,
            technical_message=(technical_message or "").strip(),
            suggestion=entry.suggestion,
            code=entry.code,
        )
