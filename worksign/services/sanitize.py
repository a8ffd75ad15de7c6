"""Input cleaning shared by tickets, progress entries and signatures."""
import re
from typing import Iterable, List, Optional

from worksign.models.enums import SignatureType
from worksign.services.errors import ValidationError

# Characters that could be used for markup or query injection
DANGEROUS_CHARS = re.compile(r"[<>'\"&;(){}\[\]\\|`~]")
MAX_INPUT_LENGTH = 500

MIN_SUMMARY_LENGTH = 10
MIN_TEXT_SIGNATURE_LENGTH = 2

_PHOTO_URL = re.compile(r"^(https?://\S+|/\S*)$")


def sanitize_input(value: Optional[str]) -> str:
    """Strip dangerous characters, trim, and cap the length."""
    if not value or not isinstance(value, str):
        return ""
    cleaned = DANGEROUS_CHARS.sub("", value).strip()
    return cleaned[:MAX_INPUT_LENGTH]


def clean_summary(summary: Optional[str]) -> str:
    cleaned = sanitize_input(summary)
    if len(cleaned) < MIN_SUMMARY_LENGTH:
        raise ValidationError(
            f"Progress summary must be at least {MIN_SUMMARY_LENGTH} characters"
        )
    return cleaned


def clean_signature(signature: Optional[str], signature_type) -> tuple:
    """
    Validate a signature and return (payload, SignatureType).

    Text signatures are sanitized and need at least two characters.
    Image signatures are opaque payloads and are stored as given.
    """
    try:
        kind = SignatureType(signature_type)
    except ValueError:
        raise ValidationError("Invalid signature type")

    if not signature or not isinstance(signature, str):
        raise ValidationError("Signature is required")

    if kind == SignatureType.IMAGE:
        if not signature.strip():
            raise ValidationError("Signature is required")
        return signature, kind

    cleaned = sanitize_input(signature)
    if len(cleaned) < MIN_TEXT_SIGNATURE_LENGTH:
        raise ValidationError(
            f"Signature must be at least {MIN_TEXT_SIGNATURE_LENGTH} characters"
        )
    return cleaned, kind


def clean_photo_url(url: Optional[str]) -> str:
    if not url or not isinstance(url, str) or not _PHOTO_URL.match(url.strip()):
        raise ValidationError(f"Invalid photo URL: {url!r}")
    return url.strip()


def clean_photo_urls(urls: Iterable[str]) -> List[str]:
    return [clean_photo_url(url) for url in urls]
