import logging
from decimal import Decimal

from django.db import transaction

from materiales.exceptions import CantidadInvalidaError, NoEncontradoError
from materiales.models import ControlMaterial, MovimientoInventario
from materiales.utils import a_decimal, obtener_material, obtener_tecnico

from .alertas import evaluar_stock_bajo
from .stock import aplicar_movimiento

logger = logging.getLogger(__name__)

TIPOS_VALIDOS = {tipo for tipo, _label in MovimientoInventario.TIPO_CHOICES}
ORIGENES_VALIDOS = {origen for origen, _label in MovimientoInventario.ORIGEN_CHOICES}


def validar_cantidad(tipo: str, cantidad) -> Decimal:
    """
    Ajuste acepta cualquier cantidad distinta de cero; el resto solo > 0.
    """
    if tipo not in TIPOS_VALIDOS:
        raise CantidadInvalidaError(f"Tipo de movimiento desconocido: {tipo!r}.")
    cantidad = a_decimal(cantidad)
    if tipo == MovimientoInventario.TIPO_AJUSTE:
        if cantidad == 0:
            raise CantidadInvalidaError("Un ajuste no puede tener cantidad 0.")
    elif cantidad <= 0:
        raise CantidadInvalidaError(f"La cantidad de un movimiento de {tipo} debe ser > 0.")
    return cantidad


@transaction.atomic
def registrar_movimiento(
    *,
    tecnico_id,
    material_id,
    tipo: str,
    cantidad,
    motivo: str = "",
    usuario=None,
    origen: str = MovimientoInventario.ORIGEN_MANUAL,
    referencia_origen: str = "",
    control: ControlMaterial | None = None,
    visible_para_analistas: bool = True,
) -> MovimientoInventario:
    """
    Agrega una entrada al ledger y la pliega en el saldo del técnico en la
    misma transacción. Si el saldo quedaría negativo no se registra nada.
    """
    cantidad = validar_cantidad(tipo, cantidad)
    if origen not in ORIGENES_VALIDOS:
        raise CantidadInvalidaError(f"Origen de movimiento desconocido: {origen!r}.")

    movimiento = MovimientoInventario.objects.create(
        tecnico_id=tecnico_id,
        material_id=material_id,
        tipo=tipo,
        cantidad=cantidad,
        motivo=motivo or "",
        usuario_responsable=usuario,
        origen=origen,
        referencia_origen=referencia_origen or "",
        control=control,
        visible_para_analistas=visible_para_analistas,
    )
    saldo = aplicar_movimiento(movimiento)
    evaluar_stock_bajo(saldo)

    logger.info(
        "Movimiento %s registrado: tecnico=%s material=%s cantidad=%s control=%s",
        tipo,
        tecnico_id,
        material_id,
        cantidad,
        control.pk if control else None,
    )
    return movimiento


def registrar_entrada(
    *,
    tecnico_id,
    material_id,
    cantidad,
    usuario=None,
    motivo: str = "",
    referencia_origen: str = "",
) -> MovimientoInventario:
    """
    Stock que bodega entrega al técnico para su inventario propio.
    """
    tecnico = obtener_tecnico(tecnico_id)
    material = obtener_material(material_id, solo_activos=True)
    return registrar_movimiento(
        tecnico_id=tecnico.pk,
        material_id=material.pk,
        tipo=MovimientoInventario.TIPO_ENTRADA,
        cantidad=cantidad,
        motivo=motivo or "Entrega de bodega",
        usuario=usuario,
        referencia_origen=referencia_origen,
    )


def registrar_ajuste(
    *,
    tecnico_id,
    material_id,
    cantidad,
    motivo: str,
    usuario=None,
    control_id=None,
    visible_para_analistas: bool = True,
) -> MovimientoInventario:
    """
    Corrección con signo sobre el saldo del técnico.

    - motivo obligatorio.
    - Puede referenciar un control (incluso cerrado): es la única forma de
      corregir un control ya conciliado.
    """
    if not (motivo or "").strip():
        raise CantidadInvalidaError("El motivo del ajuste es obligatorio.")

    tecnico = obtener_tecnico(tecnico_id)
    material = obtener_material(material_id)

    control = None
    origen = MovimientoInventario.ORIGEN_MANUAL
    referencia = ""
    if control_id is not None:
        control = ControlMaterial.objects.filter(pk=control_id).first()
        if control is None:
            raise NoEncontradoError(f"Control {control_id} no encontrado.")
        if control.orden_trabajo_id:
            origen = MovimientoInventario.ORIGEN_ORDEN
            referencia = control.orden_trabajo_id

    return registrar_movimiento(
        tecnico_id=tecnico.pk,
        material_id=material.pk,
        tipo=MovimientoInventario.TIPO_AJUSTE,
        cantidad=cantidad,
        motivo=motivo.strip(),
        usuario=usuario,
        origen=origen,
        referencia_origen=referencia,
        control=control,
        visible_para_analistas=visible_para_analistas,
    )


def movimientos_por_tecnico(
    tecnico_id,
    *,
    material_id=None,
    tipo=None,
    control_id=None,
    desde=None,
    hasta=None,
    solo_visibles: bool = False,
):
    qs = MovimientoInventario.objects.select_related("material", "usuario_responsable").filter(
        tecnico_id=tecnico_id
    )
    if material_id is not None:
        qs = qs.filter(material_id=material_id)
    if tipo:
        qs = qs.filter(tipo=tipo)
    if control_id is not None:
        qs = qs.filter(control_id=control_id)
    if desde is not None:
        qs = qs.filter(fecha__gte=desde)
    if hasta is not None:
        qs = qs.filter(fecha__lte=hasta)
    if solo_visibles:
        qs = qs.filter(visible_para_analistas=True)
    return qs.order_by("fecha", "id")


def movimientos_por_material(material_id):
    return (
        MovimientoInventario.objects.select_related("tecnico")
        .filter(material_id=material_id)
        .order_by("fecha", "id")
    )
