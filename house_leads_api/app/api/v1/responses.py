"""
Translate service envelopes into HTTP responses.

The body is always the envelope itself (``{data, message}`` or
``{success, message}``); only the status code depends on the outcome.
"""

from typing import Union

from fastapi import status
from fastapi.responses import JSONResponse

from house_leads_api.app.schemas.common import ActionResult, DataResult, ErrorKind

STATUS_BY_ERROR = {
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.VALIDATION: status.HTTP_400_BAD_REQUEST,
    ErrorKind.PERMISSION: status.HTTP_403_FORBIDDEN,
    ErrorKind.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorKind.STORE: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def envelope_response(
    result: Union[DataResult, ActionResult], success_status: int = status.HTTP_200_OK
) -> JSONResponse:
    if result.ok:
        code = success_status
    else:
        code = STATUS_BY_ERROR.get(result.error, status.HTTP_400_BAD_REQUEST)
    return JSONResponse(status_code=code, content=result.model_dump(mode="json"))
