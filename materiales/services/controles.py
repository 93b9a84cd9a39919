from django.db.models import F
from django.utils import timezone

from materiales.exceptions import ConflictoConcurrenciaError, NoEncontradoError, TransicionEstadoError
from materiales.models import ESTADOS_ABIERTOS, ControlMaterial, MovimientoInventario


def obtener_control_bloqueado(control_id) -> ControlMaterial:
    """
    Debe llamarse dentro de una transacción.
    """
    control = (
        ControlMaterial.objects.select_for_update()
        .filter(pk=control_id)
        .first()
    )
    if control is None:
        raise NoEncontradoError(f"Control {control_id} no encontrado.")
    return control


def actualizar_control(control: ControlMaterial, nuevo_estado: str | None = None, **campos) -> ControlMaterial:
    """
    Escribe el control con compare-and-swap sobre (version, estado_general).

    Si `nuevo_estado` viene, la transición debe estar permitida por
    TRANSICIONES_CONTROL. Si otra operación movió el control entre la
    lectura y la escritura se lanza ConflictoConcurrenciaError.
    """
    if nuevo_estado is not None:
        if not control.puede_transicionar(nuevo_estado):
            raise TransicionEstadoError(
                f"El control #{control.pk} no puede pasar de "
                f"'{control.estado_general}' a '{nuevo_estado}'."
            )
        campos["estado_general"] = nuevo_estado

    actualizados = ControlMaterial.objects.filter(
        pk=control.pk,
        version=control.version,
        estado_general=control.estado_general,
    ).update(
        version=F("version") + 1,
        updated_at=timezone.now(),
        **campos,
    )
    if actualizados != 1:
        raise ConflictoConcurrenciaError(
            f"El control #{control.pk} fue modificado por otra operación."
        )

    control.refresh_from_db()
    return control


def origen_de_control(control: ControlMaterial) -> tuple[str, str]:
    if control.orden_trabajo_id:
        return MovimientoInventario.ORIGEN_ORDEN, control.orden_trabajo_id
    return MovimientoInventario.ORIGEN_MANUAL, ""


def controles_pendientes(*, tecnico_id=None):
    """
    Controles abiertos (asignado hasta devolución pendiente), más
    recientes primero.
    """
    qs = ControlMaterial.objects.select_related("tecnico", "bodeguero_asigno").filter(
        estado_general__in=ESTADOS_ABIERTOS
    )
    if tecnico_id is not None:
        qs = qs.filter(tecnico_id=tecnico_id)
    return qs.prefetch_related("lineas__material").order_by("-fecha_asignacion", "-id")


def controles_por_tecnico(tecnico_id):
    return (
        ControlMaterial.objects.filter(tecnico_id=tecnico_id)
        .prefetch_related("lineas__material")
        .order_by("-fecha_asignacion", "-id")
    )


def controles_con_descuadre(*, resueltos: bool = False):
    return (
        ControlMaterial.objects.select_related("tecnico", "analista_supervisa")
        .filter(tiene_descuadre=True, descuadre_resuelto=resueltos)
        .prefetch_related("lineas__material")
        .order_by(F("fecha_devolucion").desc(nulls_last=True), "-id")
    )
