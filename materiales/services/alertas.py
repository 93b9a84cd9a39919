import logging

from django.db import transaction
from django.utils import timezone

from materiales.exceptions import NoEncontradoError, TransicionEstadoError
from materiales.models import Alerta, ControlMaterial, StockTecnico

logger = logging.getLogger(__name__)


def evaluar_stock_bajo(saldo: StockTecnico) -> Alerta | None:
    """
    Sincroniza la alerta de stock crítico de un saldo:
    - crea una si el disponible quedó bajo el umbral y no hay una abierta;
    - resuelve la abierta si el disponible se recuperó.
    """
    abiertas = Alerta.objects.filter(
        tipo=Alerta.TIPO_STOCK_CRITICO,
        tecnico_id=saldo.tecnico_id,
        material_id=saldo.material_id,
        resuelta=False,
    )
    umbral = saldo.material.umbral_stock_bajo

    if saldo.cantidad_disponible >= umbral:
        abiertas.update(resuelta=True, fecha_resolucion=timezone.now())
        return None

    if abiertas.exists():
        return None

    alerta = Alerta.objects.create(
        tipo=Alerta.TIPO_STOCK_CRITICO,
        descripcion=(
            f"Stock bajo de {saldo.material.nombre}: disponible "
            f"{saldo.cantidad_disponible} {saldo.material.unidad_medida} "
            f"(umbral {umbral})."
        ),
        tecnico_id=saldo.tecnico_id,
        material_id=saldo.material_id,
    )
    logger.warning(
        "Stock crítico: tecnico=%s material=%s disponible=%s umbral=%s",
        saldo.tecnico_id,
        saldo.material_id,
        saldo.cantidad_disponible,
        umbral,
    )
    return alerta


def registrar_alerta_descuadre(control: ControlMaterial) -> Alerta:
    alerta = Alerta.objects.create(
        tipo=Alerta.TIPO_DESCUADRE,
        descripcion=(
            f"Descuadre en control #{control.pk}: valor {control.valor_descuadre}. "
            f"{control.motivo_descuadre}"
        ).strip(),
        tecnico_id=control.tecnico_id,
        control=control,
    )
    logger.warning(
        "Descuadre registrado: control=%s tecnico=%s valor=%s",
        control.pk,
        control.tecnico_id,
        control.valor_descuadre,
    )
    return alerta


def alertas_pendientes(*, desde=None, tipo=None):
    """
    Alertas sin resolver, más nuevas primero. `desde` filtra por fecha de
    creación (para que el emisor externo haga polling incremental).
    """
    qs = Alerta.objects.select_related("tecnico", "material", "control").filter(resuelta=False)
    if desde is not None:
        qs = qs.filter(created_at__gt=desde)
    if tipo:
        qs = qs.filter(tipo=tipo)
    return qs.order_by("-created_at", "-id")


@transaction.atomic
def resolver_alerta(alerta_id, *, usuario=None) -> Alerta:
    alerta = Alerta.objects.select_for_update().filter(pk=alerta_id).first()
    if alerta is None:
        raise NoEncontradoError(f"Alerta {alerta_id} no encontrada.")
    if alerta.resuelta:
        raise TransicionEstadoError(f"La alerta #{alerta.pk} ya está resuelta.")

    alerta.resuelta = True
    alerta.fecha_resolucion = timezone.now()
    alerta.resuelta_por = usuario
    alerta.save(update_fields=["resuelta", "fecha_resolucion", "resuelta_por", "updated_at"])
    return alerta


def resolver_alertas_de_control(control: ControlMaterial, *, usuario=None) -> int:
    return Alerta.objects.filter(
        tipo=Alerta.TIPO_DESCUADRE,
        control=control,
        resuelta=False,
    ).update(resuelta=True, fecha_resolucion=timezone.now(), resuelta_por=usuario)
