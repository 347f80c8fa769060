import logging

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)


def _flatten(detail):
    if isinstance(detail, list):
        return "; ".join(_flatten(d) for d in detail)
    if isinstance(detail, dict):
        return "; ".join(f"{k}: {_flatten(v)}" for k, v in detail.items())
    return str(detail)


def api_exception_handler(exc, context):
    """
    Render every API error as {"error": ..., "code": ...}.

    DRF exceptions keep their status code. Anything else is an unexpected
    failure: it is logged with its traceback and reported as a plain 500.
    """
    response = exception_handler(exc, context)
    if response is not None:
        code = getattr(exc, 'default_code', 'error')
        response.data = {
            "error": _flatten(getattr(exc, 'detail', response.data)),
            "code": str(code).upper(),
        }
        return response

    view = context.get('view')
    logger.exception("Unhandled error in %s", view.__class__.__name__ if view else "view")
    return Response(
        {"error": "Internal Server Error", "code": "INTERNAL"},
        status=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )
