"""Response envelope shared by every endpoint: ``{success, message?, data?}``."""

from typing import Any, Optional


def ok(data: Any = None, message: Optional[str] = None) -> dict:
    body: dict = {"success": True}
    if message:
        body["message"] = message
    if data is not None:
        body["data"] = data
    return body
