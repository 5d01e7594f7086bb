"""APNs device token helpers."""
import re

from ..errors import ValidationError

# APNs device tokens are 32 bytes rendered as hex
DEVICE_TOKEN_RE = re.compile(r"[a-fA-F0-9]{64}")


def is_valid_device_token(device_token: str) -> bool:
    return bool(device_token) and DEVICE_TOKEN_RE.fullmatch(device_token) is not None


def validate_device_token(device_token: str) -> str:
    """Return the token unchanged, or raise ValidationError if malformed."""
    if not is_valid_device_token(device_token):
        raise ValidationError("Invalid device token format")
    return device_token


def mask_token(device_token: str) -> str:
    """Shorten a token for log output."""
    return f"{device_token[:16]}..."
