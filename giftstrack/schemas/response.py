from pydantic import BaseModel
from typing import Optional, Any, Dict


class ErrorResponse(BaseModel):
    """
    Standard error structure handed to the UI layer.
    """
    error: str
    code: str
    details: Optional[Any] = None


class ApiResponse(BaseModel):
    """
    Normalized API envelope: {success, data, message, errors}.
    """
    success: bool
    data: Optional[Any] = None
    message: Optional[str] = None
    errors: Optional[Dict[str, Any]] = None
