"""Exception handling for the HIL web endpoints.

Every engine error is rendered as a structured JSON body with the error's own
HTTP status, so no engine error ever reaches the client as a 500.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from litestar import MediaType, Response

from litestar_hil.exceptions import HilError

if TYPE_CHECKING:  # pragma: no cover
    from typing import Any

    from litestar import Request

__all__ = ["exception_handlers", "hil_error_handler"]

logger = logging.getLogger(__name__)


def hil_error_handler(request: Request[Any, Any, Any], exc: HilError) -> Response[dict[str, Any]]:
    """Exception handler for :class:`~litestar_hil.exceptions.HilError`.

    Args:
        request: The Litestar request object.
        exc: The engine error.

    Returns:
        Response with ``{"success": false, "error": {"code", "message", "details"}}``.
    """
    logger.info("%s %s -> %s (%s)", request.method, request.url.path, exc.code, exc)
    return Response(
        content={"success": False, "error": exc.to_dict()},
        status_code=exc.status_code,
        media_type=MediaType.JSON,
    )


exception_handlers = {HilError: hil_error_handler}
