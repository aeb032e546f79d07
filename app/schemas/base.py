"""
Base schemas and response utilities.
"""

from typing import Any, Dict

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model exchanged with the canvas frontend.

    Attributes are snake_case in Python and camelCase on the wire.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=False,
    )

    def to_wire(self) -> Dict[str, Any]:
        """Dump to JSON-compatible camelCase dict."""
        return self.model_dump(by_alias=True, mode="json")


class BaseResponse:
    """Base response format for consistent API responses."""

    @staticmethod
    def success(data: Any, message: str = "Success") -> Dict[str, Any]:
        """Create a success response."""
        return {
            "success": True,
            "message": message,
            "data": data
        }

    @staticmethod
    def error(message: str, details: Any = None, status_code: int = 400) -> Dict[str, Any]:
        """Create an error response."""
        response = {
            "success": False,
            "message": message,
            "status_code": status_code
        }
        if details:
            response["details"] = details
        return response
