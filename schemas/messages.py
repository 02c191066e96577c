from typing import Literal

from pydantic import BaseModel

TEXT_UPDATE = "text_update"


class TextUpdateMessage(BaseModel):
    type: Literal["text_update"] = TEXT_UPDATE
    content: str
