import logging
from decimal import Decimal

from django.db import transaction
from django.utils import timezone

from materiales.exceptions import (
    CantidadInvalidaError,
    ConflictoConcurrenciaError,
    NoEncontradoError,
    TransicionEstadoError,
)
from materiales.models import (
    CERO,
    EstadoSolicitud,
    MaterialSolicitado,
    SolicitudMaterial,
)
from materiales.utils import a_decimal, normalizar_id, obtener_material, obtener_tecnico

from .distribucion import asignar_materiales

logger = logging.getLogger(__name__)

LIMITE_SOLICITUDES_TECNICO = 20


def _obtener_solicitud_bloqueada(solicitud_id) -> SolicitudMaterial:
    solicitud = (
        SolicitudMaterial.objects.select_for_update()
        .filter(pk=normalizar_id(solicitud_id, "Solicitud"))
        .first()
    )
    if solicitud is None:
        raise NoEncontradoError(f"Solicitud {solicitud_id} no encontrada.")
    return solicitud


def _cambiar_estado(solicitud: SolicitudMaterial, nuevo_estado: str, **campos) -> SolicitudMaterial:
    if not solicitud.puede_transicionar(nuevo_estado):
        raise TransicionEstadoError(
            f"La solicitud #{solicitud.pk} no puede pasar de "
            f"'{solicitud.estado}' a '{nuevo_estado}'."
        )
    actualizadas = SolicitudMaterial.objects.filter(
        pk=solicitud.pk,
        estado=solicitud.estado,
    ).update(estado=nuevo_estado, updated_at=timezone.now(), **campos)
    if actualizadas != 1:
        raise ConflictoConcurrenciaError(
            f"La solicitud #{solicitud.pk} fue modificada por otra operación."
        )
    solicitud.refresh_from_db()
    return solicitud


@transaction.atomic
def crear_solicitud(*, tecnico_id, lineas, observaciones: str = "") -> SolicitudMaterial:
    """
    Registra un pedido de materiales de un técnico, en estado PENDIENTE.

    lineas: [{"material_id", "cantidad_solicitada", "motivo", "tipo_trabajo_estimado"}, ...]

    - Al menos una línea, cantidades > 0, sin materiales repetidos.
    - Solo materiales activos.
    - No toca stock: eso ocurre al entregar.
    """
    tecnico = obtener_tecnico(tecnico_id)
    if not lineas:
        raise CantidadInvalidaError("La solicitud debe incluir al menos un material.")

    items = []
    vistos = set()
    for linea in lineas:
        cantidad = a_decimal(linea.get("cantidad_solicitada"), "cantidad solicitada")
        if cantidad <= 0:
            raise CantidadInvalidaError("La cantidad solicitada debe ser > 0.")
        material = obtener_material(linea.get("material_id"), solo_activos=True)
        if material.pk in vistos:
            raise CantidadInvalidaError(
                f"El material '{material.nombre}' aparece más de una vez en la solicitud."
            )
        vistos.add(material.pk)
        items.append((material, cantidad, linea))

    solicitud = SolicitudMaterial.objects.create(
        tecnico=tecnico,
        observaciones=observaciones or "",
    )
    MaterialSolicitado.objects.bulk_create(
        [
            MaterialSolicitado(
                solicitud=solicitud,
                material=material,
                cantidad_solicitada=cantidad,
                motivo=linea.get("motivo") or "",
                tipo_trabajo_estimado=linea.get("tipo_trabajo_estimado") or "",
            )
            for material, cantidad, linea in items
        ]
    )

    logger.info("Solicitud #%s creada: tecnico=%s lineas=%s", solicitud.pk, tecnico.pk, len(items))
    return solicitud


@transaction.atomic
def aprobar_solicitud(solicitud_id, *, aprobado_por, ajustes=None) -> SolicitudMaterial:
    """
    PENDIENTE -> APROBADA.

    Sin `ajustes` se aprueba lo solicitado. Con `ajustes`
    ([{"material_id", "cantidad_aprobada"}, ...]) se fija la cantidad de esas
    líneas y el resto queda aprobado por lo solicitado. Una cantidad aprobada
    de 0 deja la línea fuera de la entrega; no puede superar lo solicitado.
    """
    solicitud = _obtener_solicitud_bloqueada(solicitud_id)
    if solicitud.estado != EstadoSolicitud.PENDIENTE:
        raise TransicionEstadoError(
            f"La solicitud #{solicitud.pk} ya fue revisada ({solicitud.estado})."
        )

    lineas = {linea.material_id: linea for linea in solicitud.lineas.select_related("material")}
    aprobadas: dict[int, Decimal] = {
        material_id: linea.cantidad_solicitada for material_id, linea in lineas.items()
    }

    for ajuste in ajustes or []:
        material_id = normalizar_id(ajuste.get("material_id"), "Material")
        linea = lineas.get(material_id)
        if linea is None:
            raise NoEncontradoError(
                f"El material {material_id} no está en la solicitud #{solicitud.pk}."
            )
        cantidad = a_decimal(ajuste.get("cantidad_aprobada"), "cantidad aprobada")
        if cantidad < 0 or cantidad > linea.cantidad_solicitada:
            raise CantidadInvalidaError(
                f"La cantidad aprobada de '{linea.material.nombre}' debe estar entre 0 "
                f"y {linea.cantidad_solicitada}."
            )
        aprobadas[material_id] = cantidad

    if not any(cantidad > 0 for cantidad in aprobadas.values()):
        raise CantidadInvalidaError(
            "La aprobación no entrega ningún material; use el rechazo de la solicitud."
        )

    for material_id, linea in lineas.items():
        linea.cantidad_aprobada = aprobadas[material_id]
        linea.save(update_fields=["cantidad_aprobada"])

    solicitud = _cambiar_estado(
        solicitud,
        EstadoSolicitud.APROBADA,
        aprobado_por=aprobado_por,
        fecha_aprobacion=timezone.now(),
    )
    logger.info("Solicitud #%s aprobada por %s", solicitud.pk, getattr(aprobado_por, "pk", None))
    return solicitud


@transaction.atomic
def rechazar_solicitud(solicitud_id, *, usuario, motivo: str = "") -> SolicitudMaterial:
    solicitud = _obtener_solicitud_bloqueada(solicitud_id)
    solicitud = _cambiar_estado(
        solicitud,
        EstadoSolicitud.RECHAZADA,
        aprobado_por=usuario,
        fecha_rechazo=timezone.now(),
        motivo_rechazo=(motivo or "").strip(),
    )
    logger.info("Solicitud #%s rechazada", solicitud.pk)
    return solicitud


@transaction.atomic
def entregar_solicitud(
    solicitud_id,
    *,
    bodeguero,
    orden_trabajo_id: str | None = None,
    observaciones: str = "",
) -> SolicitudMaterial:
    """
    APROBADA -> ENTREGADA.

    Las líneas con cantidad aprobada > 0 se asignan al técnico con
    asignar_materiales (se aparta su stock y nace un control ASIGNADO).
    Si la asignación falla, la solicitud sigue APROBADA.
    """
    solicitud = _obtener_solicitud_bloqueada(solicitud_id)
    if solicitud.estado != EstadoSolicitud.APROBADA:
        raise TransicionEstadoError(
            f"La solicitud #{solicitud.pk} no puede entregarse en estado '{solicitud.estado}'."
        )

    lineas = [
        {"material_id": linea.material_id, "cantidad": linea.cantidad_aprobada}
        for linea in solicitud.lineas.all()
        if linea.cantidad_aprobada > CERO
    ]
    control = asignar_materiales(
        tecnico_id=solicitud.tecnico_id,
        bodeguero=bodeguero,
        lineas=lineas,
        orden_trabajo_id=orden_trabajo_id,
        observaciones=observaciones or f"Entrega de solicitud #{solicitud.pk}",
    )

    solicitud = _cambiar_estado(
        solicitud,
        EstadoSolicitud.ENTREGADA,
        fecha_entrega=timezone.now(),
        control=control,
    )
    logger.info("Solicitud #%s entregada con control #%s", solicitud.pk, control.pk)
    return solicitud


def solicitudes_pendientes():
    return (
        SolicitudMaterial.objects.select_related("tecnico")
        .filter(estado=EstadoSolicitud.PENDIENTE)
        .prefetch_related("lineas__material")
        .order_by("-fecha_solicitud", "-id")
    )


def solicitudes_por_tecnico(tecnico_id, *, limite: int = LIMITE_SOLICITUDES_TECNICO):
    return (
        SolicitudMaterial.objects.filter(tecnico_id=tecnico_id)
        .select_related("aprobado_por")
        .prefetch_related("lineas__material")
        .order_by("-fecha_solicitud", "-id")[:limite]
    )
