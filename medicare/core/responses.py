from typing import Any, Generic, TypeVar

from pydantic import BaseModel

DataT = TypeVar('DataT')


class Envelope(BaseModel, Generic[DataT]):
    success: bool = True
    message: str = ''
    data: DataT | None = None


def ok(data: Any = None, message: str = '') -> dict:
    return {'success': True, 'message': message, 'data': data}
