from decimal import Decimal, InvalidOperation

from django.contrib.auth import get_user_model

from .exceptions import CantidadInvalidaError, NoEncontradoError
from .models import Material

User = get_user_model()


PRECISION_CANTIDAD = Decimal("0.001")
DIGITOS_ENTEROS_MAX = 11


def a_decimal(valor, campo: str = "cantidad") -> Decimal:
    """
    Convierte a Decimal (strings, int, Decimal). None, floats raros o texto
    inválido -> CantidadInvalidaError.

    Las cantidades se guardan con 3 decimales y 11 dígitos enteros; lo que
    no cabe se rechaza en vez de redondearse al persistir.
    """
    if isinstance(valor, bool) or valor is None:
        raise CantidadInvalidaError(f"La {campo} es obligatoria y debe ser numérica.")
    if isinstance(valor, Decimal):
        resultado = valor
    else:
        try:
            resultado = Decimal(str(valor).strip())
        except (InvalidOperation, ValueError):
            raise CantidadInvalidaError(f"La {campo} '{valor}' no es un número válido.")
    if not resultado.is_finite():
        raise CantidadInvalidaError(f"La {campo} '{valor}' no es un número válido.")
    if resultado and resultado.adjusted() >= DIGITOS_ENTEROS_MAX:
        raise CantidadInvalidaError(f"La {campo} '{valor}' excede el máximo permitido.")
    if resultado != resultado.quantize(PRECISION_CANTIDAD):
        raise CantidadInvalidaError(f"La {campo} '{valor}' admite como máximo 3 decimales.")
    return resultado


def normalizar_id(valor, entidad: str) -> int:
    try:
        return int(str(valor))
    except (TypeError, ValueError):
        raise NoEncontradoError(f"{entidad} '{valor}' no encontrado.")


def obtener_tecnico(tecnico_id):
    try:
        return User.objects.get(pk=normalizar_id(tecnico_id, "Técnico"))
    except User.DoesNotExist:
        raise NoEncontradoError(f"Técnico {tecnico_id} no encontrado.")


def obtener_material(material_id, *, solo_activos: bool = False) -> Material:
    qs = Material.objects.all()
    if solo_activos:
        qs = qs.filter(activo=True)
    try:
        return qs.get(pk=normalizar_id(material_id, "Material"))
    except Material.DoesNotExist:
        raise NoEncontradoError(f"Material {material_id} no encontrado o inactivo.")
