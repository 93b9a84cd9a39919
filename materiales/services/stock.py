import logging
from decimal import Decimal

from django.db import transaction
from django.db.models import F, Q
from django.utils import timezone

from materiales.conf import obtener_config
from materiales.exceptions import (
    CantidadInvalidaError,
    ConflictoConcurrenciaError,
    StockInsuficienteError,
    StockNegativoError,
)
from materiales.models import CERO, MovimientoInventario, StockCentral, StockTecnico
from materiales.utils import a_decimal

logger = logging.getLogger(__name__)


def obtener_saldo(tecnico_id, material_id) -> StockTecnico:
    """
    Saldo actual de un técnico para un material. Si nunca tuvo movimientos
    devuelve un StockTecnico en cero sin guardar.
    """
    saldo = (
        StockTecnico.objects.select_related("material")
        .filter(tecnico_id=tecnico_id, material_id=material_id)
        .first()
    )
    if saldo is None:
        return StockTecnico(
            tecnico_id=tecnico_id,
            material_id=material_id,
            cantidad_actual=CERO,
            cantidad_apartada=CERO,
            cantidad_disponible=CERO,
        )
    return saldo


def bloquear_saldo(tecnico_id, material_id) -> StockTecnico | None:
    """
    Toma el lock de fila del saldo (si existe) dentro de la transacción actual.
    """
    return (
        StockTecnico.objects.select_for_update()
        .filter(tecnico_id=tecnico_id, material_id=material_id)
        .first()
    )


@transaction.atomic
def aplicar_movimiento(movimiento: MovimientoInventario) -> StockTecnico:
    """
    Pliega un movimiento del ledger en el saldo del técnico.

    - Bloquea (o crea) el StockTecnico del par técnico/material.
    - Calcula el nuevo saldo según MovimientoInventario.efecto().
    - No permite saldos negativos (StockNegativoError).
    - Escribe con compare-and-swap sobre `version`: si otra transacción
      ganó la carrera se lanza ConflictoConcurrenciaError.
    """
    saldo, _created = StockTecnico.objects.select_for_update().get_or_create(
        tecnico_id=movimiento.tecnico_id,
        material_id=movimiento.material_id,
        defaults={
            "cantidad_actual": CERO,
            "cantidad_apartada": CERO,
            "cantidad_disponible": CERO,
        },
    )

    delta_actual, delta_apartada = MovimientoInventario.efecto(
        movimiento.tipo, movimiento.cantidad
    )
    nuevo_actual = (saldo.cantidad_actual or CERO) + delta_actual
    nuevo_apartado = (saldo.cantidad_apartada or CERO) + delta_apartada
    nuevo_disponible = nuevo_actual - nuevo_apartado

    if nuevo_actual < 0 or nuevo_apartado < 0 or nuevo_disponible < 0:
        raise StockNegativoError(
            f"El movimiento {movimiento.tipo} de {movimiento.cantidad} dejaría en negativo "
            f"el saldo de {movimiento.material} (actual {saldo.cantidad_actual}, "
            f"apartado {saldo.cantidad_apartada})."
        )

    actualizados = StockTecnico.objects.filter(
        pk=saldo.pk,
        version=saldo.version,
    ).update(
        cantidad_actual=nuevo_actual,
        cantidad_apartada=nuevo_apartado,
        cantidad_disponible=nuevo_disponible,
        ultimo_movimiento=movimiento.fecha,
        version=F("version") + 1,
        updated_at=timezone.now(),
    )
    if actualizados != 1:
        raise ConflictoConcurrenciaError(
            f"El saldo de {movimiento.material} del técnico {movimiento.tecnico_id} "
            "cambió durante la operación."
        )

    saldo.refresh_from_db()
    return saldo


def reconstruir_saldo(tecnico_id, material_id) -> tuple[Decimal, Decimal]:
    """
    Recalcula (cantidad_actual, cantidad_apartada) plegando todo el ledger
    del técnico para el material, en orden cronológico.
    """
    actual = CERO
    apartada = CERO
    movimientos = (
        MovimientoInventario.objects.filter(tecnico_id=tecnico_id, material_id=material_id)
        .order_by("fecha", "id")
        .values_list("tipo", "cantidad")
    )
    for tipo, cantidad in movimientos.iterator():
        delta_actual, delta_apartada = MovimientoInventario.efecto(tipo, cantidad)
        actual += delta_actual
        apartada += delta_apartada
    return actual, apartada


def saldo_consistente(saldo: StockTecnico) -> bool:
    actual, apartada = reconstruir_saldo(saldo.tecnico_id, saldo.material_id)
    return (
        saldo.cantidad_actual == actual
        and saldo.cantidad_apartada == apartada
        and saldo.cantidad_disponible == actual - apartada
    )


def saldos_bajo_umbral(*, tecnico_id=None):
    """
    Saldos de técnicos con disponible bajo el umbral: el stock_minimo del
    material si está definido, o MATERIALES['UMBRAL_STOCK_BAJO'].
    """
    umbral_global = Decimal(str(obtener_config("UMBRAL_STOCK_BAJO")))

    qs = StockTecnico.objects.select_related("material", "tecnico").filter(
        material__activo=True,
    )
    qs = qs.filter(
        Q(material__stock_minimo__gt=0, cantidad_disponible__lt=F("material__stock_minimo"))
        | Q(material__stock_minimo__lte=0, cantidad_disponible__lt=umbral_global)
    )
    if tecnico_id is not None:
        qs = qs.filter(tecnico_id=tecnico_id)
    return qs.order_by("tecnico_id", "material__nombre")


# --- Stock central (pool compartido, opcional) ---


@transaction.atomic
def ingresar_stock_central(*, material_id, cantidad) -> StockCentral:
    cantidad = a_decimal(cantidad)
    if cantidad <= 0:
        raise CantidadInvalidaError("La cantidad a ingresar al stock central debe ser > 0.")

    stock, _created = StockCentral.objects.select_for_update().get_or_create(
        material_id=material_id,
        defaults={"cantidad_disponible": CERO},
    )
    actualizados = StockCentral.objects.filter(pk=stock.pk, version=stock.version).update(
        cantidad_disponible=F("cantidad_disponible") + cantidad,
        version=F("version") + 1,
        updated_at=timezone.now(),
    )
    if actualizados != 1:
        raise ConflictoConcurrenciaError("El stock central cambió durante la operación.")

    stock.refresh_from_db()
    logger.info("Ingreso a stock central: material=%s cantidad=%s", material_id, cantidad)
    return stock


def bloquear_stock_central(material_id) -> StockCentral | None:
    return StockCentral.objects.select_for_update().filter(material_id=material_id).first()


@transaction.atomic
def descontar_stock_central(*, material_id, cantidad: Decimal) -> StockCentral:
    """
    Descuenta del pool con guarda atómica: la fila solo se actualiza si
    la versión no cambió y alcanza la cantidad.
    """
    stock = bloquear_stock_central(material_id)
    disponible = stock.cantidad_disponible if stock else CERO
    if stock is None or disponible < cantidad:
        raise StockInsuficienteError(
            f"Stock central insuficiente para el material {material_id}. "
            f"Disponible {disponible}, solicitado {cantidad}."
        )

    actualizados = StockCentral.objects.filter(
        pk=stock.pk,
        version=stock.version,
        cantidad_disponible__gte=cantidad,
    ).update(
        cantidad_disponible=F("cantidad_disponible") - cantidad,
        version=F("version") + 1,
        updated_at=timezone.now(),
    )
    if actualizados != 1:
        raise ConflictoConcurrenciaError("El stock central cambió durante la operación.")

    stock.refresh_from_db()
    return stock
