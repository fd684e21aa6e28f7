"""Response envelope shared by every endpoint.

Success: {"status_code": 200, "data": ..., "message": "...", "success": true}
Errors use the same keys with success=false (see vidstream.errors).
"""

from typing import Generic, Optional, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    status_code: int = 200
    data: Optional[T] = None
    message: str = "Success"
    success: bool = True


def ok(data=None, message: str = "Success", status_code: int = 200) -> dict:
    return {
        "status_code": status_code,
        "data": data,
        "message": message,
        "success": status_code < 400,
    }
