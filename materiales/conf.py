from decimal import Decimal

from django.conf import settings

DEFAULTS = {
    # Umbral de stock disponible bajo el cual se genera alerta, cuando el
    # material no define su propio stock_minimo.
    "UMBRAL_STOCK_BAJO": Decimal("5"),
    # Si es True, asignar materiales descuenta también del StockCentral.
    "DESCONTAR_STOCK_CENTRAL": False,
}


def obtener_config(clave: str):
    """
    Lee una opción de settings.MATERIALES con fallback a DEFAULTS.
    """
    overrides = getattr(settings, "MATERIALES", {}) or {}
    if clave in overrides:
        return overrides[clave]
    return DEFAULTS[clave]
