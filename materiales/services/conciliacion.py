import logging
from decimal import Decimal

from django.db import transaction
from django.utils import timezone

from materiales.exceptions import (
    CantidadesNoCuadranError,
    NoEncontradoError,
    TransicionEstadoError,
)
from materiales.models import (
    CERO,
    ControlMaterial,
    EstadoControl,
    EstadoLinea,
    MaterialAsignado,
    MovimientoInventario,
)
from materiales.utils import a_decimal, normalizar_id

from .alertas import registrar_alerta_descuadre, resolver_alertas_de_control
from .controles import actualizar_control, obtener_control_bloqueado, origen_de_control
from .movimientos import registrar_movimiento

logger = logging.getLogger(__name__)

CUATRO_DECIMALES = Decimal("0.0001")


def estado_linea_conciliada(asignada: Decimal, devuelta: Decimal, perdida: Decimal) -> str:
    if devuelta == asignada:
        return EstadoLinea.DEVUELTO_TOTAL
    if devuelta > 0 or perdida > 0:
        return EstadoLinea.DEVUELTO_PARCIAL
    return EstadoLinea.COMPLETADO


def calcular_valor_descuadre(control: ControlMaterial) -> Decimal:
    """
    Σ cantidad_perdida * costo_unitario sobre las líneas del control.
    Siempre se calcula desde las líneas, nunca se confía en lo guardado.
    """
    total = CERO
    for linea in control.lineas.all():
        total += (linea.cantidad_perdida or CERO) * (linea.costo_unitario or CERO)
    return total.quantize(CUATRO_DECIMALES)


def _resumen_descuadre(lineas: list[MaterialAsignado]) -> str:
    partes = []
    for linea in lineas:
        if linea.cantidad_perdida > 0:
            partes.append(
                f"{linea.material.nombre}: {linea.cantidad_perdida} "
                f"{linea.material.unidad_medida} perdida(s) ({linea.motivo_perdida})"
            )
    return "; ".join(partes)


def _validar_reportes(por_material: dict, reportes) -> list[tuple]:
    if not reportes:
        raise CantidadesNoCuadranError("Debe reportar al menos un material.")

    validados = []
    vistos = set()
    for dato in reportes:
        material_id = normalizar_id(dato.get("material_id"), "Material")
        linea = por_material.get(material_id)
        if linea is None:
            raise NoEncontradoError(f"El material {material_id} no está en este control.")
        if material_id in vistos:
            raise CantidadesNoCuadranError(
                f"El material '{linea.material.nombre}' se reportó más de una vez."
            )
        vistos.add(material_id)
        if linea.es_terminal:
            raise TransicionEstadoError(
                f"El material '{linea.material.nombre}' ya fue conciliado en este control."
            )

        utilizada = a_decimal(dato.get("cantidad_utilizada", 0), "cantidad utilizada")
        devuelta = a_decimal(dato.get("cantidad_devuelta", 0), "cantidad devuelta")
        perdida = a_decimal(dato.get("cantidad_perdida", 0), "cantidad perdida")
        if utilizada < 0 or devuelta < 0 or perdida < 0:
            raise CantidadesNoCuadranError(
                f"Material '{linea.material.nombre}': las cantidades no pueden ser negativas."
            )

        total = utilizada + devuelta + perdida
        if total != linea.cantidad_asignada:
            raise CantidadesNoCuadranError(
                f"Material '{linea.material.nombre}': utilizada ({utilizada}) + "
                f"devuelta ({devuelta}) + perdida ({perdida}) = {total}, "
                f"pero se asignaron {linea.cantidad_asignada}."
            )

        motivo = (dato.get("motivo_perdida") or "").strip()
        if perdida > 0 and not motivo:
            raise CantidadesNoCuadranError(
                f"Material '{linea.material.nombre}': debe indicar el motivo de la pérdida."
            )
        validados.append((linea, utilizada, devuelta, perdida, motivo))
    return validados


@transaction.atomic
def registrar_devolucion(
    *,
    control_id,
    reportes,
    observaciones: str = "",
) -> ControlMaterial:
    """
    Concilia las líneas reportadas de un control.

    reportes = [{"material_id", "cantidad_utilizada", "cantidad_devuelta",
                 "cantidad_perdida", "motivo_perdida"}, ...]

    Reglas:
    - Solo desde TRABAJO_COMPLETADO o DEVOLUCION_PENDIENTE.
    - Por línea: utilizada + devuelta + perdida == asignada (exacto),
      ninguna negativa, pérdida con motivo.
    - Si cualquier línea falla no se aplica ninguna.
    - Lo devuelto vuelve al inventario del técnico (movimiento de devolución).
    - Si quedan líneas sin reportar el control pasa a DEVOLUCION_PENDIENTE;
      si no, a DEVOLUCION_COMPLETADA con el descuadre calculado.
    """
    control = obtener_control_bloqueado(control_id)
    if control.estado_general not in (
        EstadoControl.TRABAJO_COMPLETADO,
        EstadoControl.DEVOLUCION_PENDIENTE,
    ):
        raise TransicionEstadoError(
            f"El control #{control.pk} no admite devoluciones en estado "
            f"'{control.estado_general}'."
        )

    lineas = list(control.lineas.select_related("material"))
    por_material = {linea.material_id: linea for linea in lineas}
    validados = _validar_reportes(por_material, reportes)

    origen, referencia = origen_de_control(control)
    for linea, utilizada, devuelta, perdida, motivo in validados:
        costo = linea.material.costo_unitario or CERO
        linea.cantidad_utilizada = utilizada
        linea.cantidad_devuelta = devuelta
        linea.cantidad_perdida = perdida
        linea.motivo_perdida = motivo
        linea.costo_unitario = costo
        linea.valor_perdida = (perdida * costo).quantize(CUATRO_DECIMALES)
        linea.estado = estado_linea_conciliada(linea.cantidad_asignada, devuelta, perdida)
        linea.save(
            update_fields=[
                "cantidad_utilizada",
                "cantidad_devuelta",
                "cantidad_perdida",
                "motivo_perdida",
                "costo_unitario",
                "valor_perdida",
                "estado",
                "updated_at",
            ]
        )

        if devuelta > 0:
            registrar_movimiento(
                tecnico_id=control.tecnico_id,
                material_id=linea.material_id,
                tipo=MovimientoInventario.TIPO_DEVOLUCION,
                cantidad=devuelta,
                motivo="Devolución de material no utilizado",
                usuario=control.tecnico,
                origen=origen,
                referencia_origen=referencia,
                control=control,
            )

    campos = {}
    if observaciones:
        campos["observaciones_tecnico"] = observaciones

    if any(not linea.es_terminal for linea in lineas):
        control = actualizar_control(control, EstadoControl.DEVOLUCION_PENDIENTE, **campos)
        logger.info("Control #%s con devolución parcial", control.pk)
        return control

    valor = calcular_valor_descuadre(control)
    tiene_descuadre = valor > 0
    control = actualizar_control(
        control,
        EstadoControl.DEVOLUCION_COMPLETADA,
        fecha_devolucion=timezone.now(),
        tiene_descuadre=tiene_descuadre,
        valor_descuadre=valor,
        motivo_descuadre=_resumen_descuadre(lineas),
        **campos,
    )
    if control.tiene_descuadre:
        registrar_alerta_descuadre(control)

    logger.info(
        "Control #%s devolución completada: descuadre=%s valor=%s",
        control.pk,
        control.tiene_descuadre,
        control.valor_descuadre,
    )
    return control


@transaction.atomic
def resolver_descuadre(control_id, *, analista, observaciones: str = "") -> ControlMaterial:
    """
    Un analista acepta el descuadre de un control con devolución completada.
    Queda registrado quién y cuándo; no cambia el estado.
    """
    control = obtener_control_bloqueado(control_id)
    if control.estado_general != EstadoControl.DEVOLUCION_COMPLETADA:
        raise TransicionEstadoError(
            f"El control #{control.pk} no tiene la devolución completada."
        )
    if not control.tiene_descuadre:
        raise TransicionEstadoError(f"El control #{control.pk} no tiene descuadre.")
    if control.descuadre_resuelto:
        raise TransicionEstadoError(f"El descuadre del control #{control.pk} ya fue resuelto.")

    control = actualizar_control(
        control,
        descuadre_resuelto=True,
        analista_supervisa=analista,
        fecha_resolucion_descuadre=timezone.now(),
        observaciones_analista=observaciones or "",
    )
    resolver_alertas_de_control(control, usuario=analista)

    logger.info("Descuadre del control #%s resuelto por %s", control.pk, analista)
    return control


@transaction.atomic
def cerrar_control(control_id, *, analista=None) -> ControlMaterial:
    """
    DEVOLUCION_COMPLETADA -> CERRADO, solo si no hay descuadre o ya se resolvió.
    """
    control = obtener_control_bloqueado(control_id)
    if control.estado_general != EstadoControl.DEVOLUCION_COMPLETADA:
        raise TransicionEstadoError(
            f"El control #{control.pk} no se puede cerrar en estado "
            f"'{control.estado_general}'."
        )
    if control.tiene_descuadre and not control.descuadre_resuelto:
        raise TransicionEstadoError(
            f"El control #{control.pk} tiene un descuadre sin resolver."
        )

    campos = {"fecha_cierre": timezone.now()}
    if analista is not None and control.analista_supervisa_id is None:
        campos["analista_supervisa"] = analista
    control = actualizar_control(control, EstadoControl.CERRADO, **campos)

    logger.info("Control #%s cerrado", control.pk)
    return control
