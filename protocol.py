"""JSON frame codec for the real-time channel.

Every frame, in both directions, is `{"type": "text_update", "content": ...}`
carrying the whole document rather than a diff.
"""
from typing import Union

from pydantic import ValidationError

from errors import MalformedMessage
from schemas.messages import TextUpdateMessage


def encode_text_update(content: str) -> str:
    return TextUpdateMessage(content=content).model_dump_json()


def decode_frame(raw: Union[str, bytes]) -> TextUpdateMessage:
    """Parse one frame, raising MalformedMessage for anything but a text_update."""
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = bytes(raw).decode("utf-8")
        except UnicodeDecodeError as exc:
            raise MalformedMessage(f"frame is not valid UTF-8: {exc}") from exc
    try:
        return TextUpdateMessage.model_validate_json(raw)
    except ValidationError as exc:
        raise MalformedMessage(f"bad frame: {exc.errors()[0]['msg']}") from exc
