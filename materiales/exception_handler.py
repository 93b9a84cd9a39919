import logging

from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

from .exceptions import ControlMaterialesError

logger = logging.getLogger(__name__)


def materiales_exception_handler(exc, context):
    """
    Traduce los errores de dominio a {"error": codigo, "detalle": mensaje}
    con el status de cada tipo. El resto lo maneja DRF.
    """
    if isinstance(exc, ControlMaterialesError):
        view = context.get("view")
        logger.warning(
            "Operación rechazada (%s) en %s: %s",
            exc.codigo,
            view.__class__.__name__ if view else "-",
            exc.mensaje,
        )
        return Response(
            {"error": exc.codigo, "detalle": exc.mensaje},
            status=exc.status_code,
        )
    return drf_exception_handler(exc, context)
