from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, TypeAdapter


class TextToImageResponse(BaseModel):
    images: list[str]
    parameters: Optional[dict[str, Any]] = None
    info: Optional[str] = None


class ErrorLocation(BaseModel):
    where: str
    index: int


class ErrorContext(BaseModel):
    msg: str
    doc: str
    pos: int
    lineno: int
    colno: int


class ErrorDetail(BaseModel):
    loc: list[ErrorLocation]
    msg: str
    type: str
    ctx: Optional[ErrorContext] = None


class ErrorResponse(BaseModel):
    detail: list[ErrorDetail]

    def message(self) -> str:
        if self.detail:
            return self.detail[0].msg
        return "Unknown error"


class SDModel(BaseModel):
    title: str
    model_name: str
    hash: Optional[str] = None
    sha256: Optional[str] = None
    filename: str
    config: Optional[str] = None


SDModelList = TypeAdapter(list[SDModel])
