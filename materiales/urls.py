from django.urls import path, include
from rest_framework.routers import DefaultRouter

from .views import (
    AlertaViewSet,
    ControlMaterialViewSet,
    MaterialViewSet,
    MovimientoInventarioViewSet,
    SolicitudMaterialViewSet,
    StockTecnicoViewSet,
)

router = DefaultRouter()
router.register(r"materiales", MaterialViewSet, basename="material")
router.register(r"stock-tecnicos", StockTecnicoViewSet, basename="stock-tecnico")
router.register(r"movimientos", MovimientoInventarioViewSet, basename="movimiento")
router.register(r"controles", ControlMaterialViewSet, basename="control")
router.register(r"alertas", AlertaViewSet, basename="alerta")
router.register(r"solicitudes", SolicitudMaterialViewSet, basename="solicitud")


urlpatterns = [
    path("", include(router.urls)),
]
