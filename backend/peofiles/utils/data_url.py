import base64
import binascii
import re
from typing import Optional
from peofiles.core.errors import ValidationFault

# data:<mime>[;param=value...];base64,
_DATA_URL_PREFIX = re.compile(r"^data:[^,]*?;base64,", re.IGNORECASE)


def encode_data_url(mime_type: Optional[str], content: bytes) -> str:
    """Render bytes as an inline data URL the browser can show directly"""
    mime_type = mime_type or "application/octet-stream"
    return f"data:{mime_type};base64,{base64.b64encode(content).decode('ascii')}"


def decode_data_url(data: str) -> bytes:
    """
    Decode a base64 data URL, or bare base64, into bytes.

    Any mime type is accepted in the prefix, not only images.
    """
    payload = _DATA_URL_PREFIX.sub("", data.strip(), count=1)
    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValidationFault("File data is not valid base64") from e
