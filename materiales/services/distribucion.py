import logging
from decimal import Decimal

from django.db import transaction
from django.utils import timezone

from materiales.conf import obtener_config
from materiales.exceptions import CantidadInvalidaError, StockInsuficienteError
from materiales.models import (
    CERO,
    ControlMaterial,
    EstadoControl,
    EstadoLinea,
    Material,
    MaterialAsignado,
    MovimientoInventario,
)
from materiales.utils import a_decimal, obtener_material, obtener_tecnico

from .controles import actualizar_control, obtener_control_bloqueado, origen_de_control
from .movimientos import registrar_movimiento
from .stock import bloquear_saldo, bloquear_stock_central, descontar_stock_central

logger = logging.getLogger(__name__)


def _normalizar_lineas(lineas) -> list[tuple[Material, Decimal]]:
    """
    Valida las líneas pedidas: [{"material_id": ..., "cantidad": ...}, ...].
    """
    if not lineas:
        raise CantidadInvalidaError("Debe asignar al menos un material.")

    items = []
    vistos = set()
    for linea in lineas:
        cantidad = a_decimal(linea.get("cantidad"))
        if cantidad <= 0:
            raise CantidadInvalidaError("La cantidad asignada debe ser > 0.")
        material = obtener_material(linea.get("material_id"), solo_activos=True)
        if material.pk in vistos:
            raise CantidadInvalidaError(
                f"El material '{material.nombre}' aparece más de una vez en la asignación."
            )
        vistos.add(material.pk)
        items.append((material, cantidad))
    return items


@transaction.atomic
def asignar_materiales(
    *,
    tecnico_id,
    bodeguero,
    lineas,
    orden_trabajo_id: str | None = None,
    observaciones: str = "",
) -> ControlMaterial:
    """
    Crea un control en estado ASIGNADO y aparta el stock del técnico.

    Todo o nada:
    - Se validan TODAS las líneas (material activo, cantidad > 0, stock
      disponible del técnico y, si está activo, el stock central) antes de
      escribir cualquier cosa.
    - Si alguna falla se lanza el error y no queda ni control ni movimientos.
    """
    tecnico = obtener_tecnico(tecnico_id)
    items = _normalizar_lineas(lineas)
    usar_stock_central = bool(obtener_config("DESCONTAR_STOCK_CENTRAL"))

    for material, cantidad in items:
        saldo = bloquear_saldo(tecnico.pk, material.pk)
        disponible = saldo.cantidad_disponible if saldo else CERO
        if disponible < cantidad:
            raise StockInsuficienteError(
                f"El técnico no tiene suficiente '{material.nombre}' disponible. "
                f"Disponible {disponible}, solicitado {cantidad}."
            )
        if usar_stock_central:
            central = bloquear_stock_central(material.pk)
            disponible_central = central.cantidad_disponible if central else CERO
            if disponible_central < cantidad:
                raise StockInsuficienteError(
                    f"Stock central insuficiente de '{material.nombre}'. "
                    f"Disponible {disponible_central}, solicitado {cantidad}."
                )

    ot = (orden_trabajo_id or "").strip()
    control = ControlMaterial.objects.create(
        tecnico=tecnico,
        orden_trabajo_id=ot,
        bodeguero_asigno=bodeguero,
        estado_general=EstadoControl.ASIGNADO,
        observaciones_bodeguero=observaciones or "",
    )
    origen, referencia = origen_de_control(control)
    motivo = f"Asignación para OT {ot}" if ot else "Asignación sin OT"

    for material, cantidad in items:
        MaterialAsignado.objects.create(
            control=control,
            material=material,
            cantidad_asignada=cantidad,
            estado=EstadoLinea.PENDIENTE,
        )
        registrar_movimiento(
            tecnico_id=tecnico.pk,
            material_id=material.pk,
            tipo=MovimientoInventario.TIPO_APARTADO,
            cantidad=cantidad,
            motivo=motivo,
            usuario=bodeguero,
            origen=origen,
            referencia_origen=referencia,
            control=control,
        )
        if usar_stock_central:
            descontar_stock_central(material_id=material.pk, cantidad=cantidad)

    logger.info(
        "Control #%s asignado: tecnico=%s lineas=%s ot=%s",
        control.pk,
        tecnico.pk,
        len(items),
        ot or "-",
    )
    return control


@transaction.atomic
def iniciar_trabajo(control_id) -> ControlMaterial:
    """
    ASIGNADO -> EN_TRABAJO. Lo apartado de cada línea sale del inventario
    del técnico (movimiento de salida) y las líneas quedan EN_USO.
    """
    control = obtener_control_bloqueado(control_id)
    control = actualizar_control(
        control,
        EstadoControl.EN_TRABAJO,
        fecha_inicio_trabajo=timezone.now(),
    )

    origen, referencia = origen_de_control(control)
    for linea in control.lineas.select_related("material"):
        registrar_movimiento(
            tecnico_id=control.tecnico_id,
            material_id=linea.material_id,
            tipo=MovimientoInventario.TIPO_SALIDA,
            cantidad=linea.cantidad_asignada,
            motivo="Inicio de trabajo - material en uso",
            usuario=control.tecnico,
            origen=origen,
            referencia_origen=referencia,
            control=control,
        )
        linea.estado = EstadoLinea.EN_USO
        linea.save(update_fields=["estado", "updated_at"])

    logger.info("Control #%s en trabajo", control.pk)
    return control


@transaction.atomic
def completar_trabajo(control_id, *, observaciones: str = "") -> ControlMaterial:
    control = obtener_control_bloqueado(control_id)
    campos = {"fecha_fin_trabajo": timezone.now()}
    if observaciones:
        campos["observaciones_tecnico"] = observaciones
    control = actualizar_control(control, EstadoControl.TRABAJO_COMPLETADO, **campos)
    logger.info("Control #%s trabajo completado", control.pk)
    return control
