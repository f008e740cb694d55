from __future__ import annotations

from typing import TYPE_CHECKING, Any, TypeVar, Union

from pydantic import BaseModel, ConfigDict, ValidationError

if TYPE_CHECKING:
    from twisted.web.http import Request

T = TypeVar('T', bound='QueryParams')


def set_cors(request: Request, method: str) -> None:
    request.setHeader(b'access-control-allow-origin', b'*')
    request.setHeader(b'access-control-allow-methods', method.encode())
    request.setHeader(b'access-control-allow-headers', b'x-prototype-version,x-requested-with,content-type')
    request.setHeader(b'access-control-max-age', b'604800')


class Response(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    def json_dumpb(self) -> bytes:
        return self.model_dump_json(by_alias=True).encode('utf-8')


class ErrorResponse(Response):
    success: bool = False
    error: str


class QueryParams(BaseModel):
    """Query string of a GET request.

    Keys ending with `[]` keep every value given; other keys keep the first.
    """
    model_config = ConfigDict(populate_by_name=True, extra='ignore')

    @classmethod
    def from_request(cls: type[T], request: Request) -> Union[T, ErrorResponse]:
        raw: dict[str, Any] = {}
        for key, values in (request.args or {}).items():
            name = key.decode('utf-8')
            decoded = [value.decode('utf-8') for value in values]
            raw[name] = decoded if name.endswith('[]') else decoded[0]
        try:
            return cls.model_validate(raw)
        except ValidationError as e:
            return ErrorResponse(error=str(e))
