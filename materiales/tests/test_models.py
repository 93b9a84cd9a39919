from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import TestCase, override_settings

from materiales.exceptions import LedgerInmutableError, TransicionEstadoError
from materiales.models import (
    ControlMaterial,
    EstadoControl,
    EstadoLinea,
    MaterialAsignado,
    Material,
    MovimientoInventario,
    StockTecnico,
)

User = get_user_model()


class MovimientoEfectoTests(TestCase):
    def test_efecto_por_tipo(self):
        q = Decimal("4")
        self.assertEqual(MovimientoInventario.efecto("entrada", q), (q, Decimal("0")))
        self.assertEqual(MovimientoInventario.efecto("apartado", q), (Decimal("0"), q))
        self.assertEqual(MovimientoInventario.efecto("salida", q), (-q, -q))
        self.assertEqual(MovimientoInventario.efecto("devolucion", q), (q, Decimal("0")))
        self.assertEqual(
            MovimientoInventario.efecto("ajuste", Decimal("-2")),
            (Decimal("-2"), Decimal("0")),
        )

    def test_efecto_tipo_desconocido(self):
        with self.assertRaises(ValueError):
            MovimientoInventario.efecto("traspaso", Decimal("1"))


class MovimientoInmutableTests(TestCase):
    def setUp(self):
        self.tecnico = User.objects.create_user(username="tecnico", password="password123")
        self.material = Material.objects.create(nombre="Cable UTP", unidad_medida="metro")
        self.movimiento = MovimientoInventario.objects.create(
            tecnico=self.tecnico,
            material=self.material,
            tipo=MovimientoInventario.TIPO_ENTRADA,
            cantidad=Decimal("10"),
            motivo="Carga inicial",
        )

    def test_no_se_puede_modificar(self):
        self.movimiento.cantidad = Decimal("99")
        with self.assertRaises(LedgerInmutableError):
            self.movimiento.save()

        self.movimiento.refresh_from_db()
        self.assertEqual(self.movimiento.cantidad, Decimal("10"))

    def test_no_se_puede_eliminar(self):
        with self.assertRaises(LedgerInmutableError):
            self.movimiento.delete()
        self.assertTrue(MovimientoInventario.objects.filter(pk=self.movimiento.pk).exists())

    def test_queryset_update_y_delete_bloqueados(self):
        with self.assertRaises(LedgerInmutableError):
            MovimientoInventario.objects.filter(pk=self.movimiento.pk).update(cantidad=1)
        with self.assertRaises(LedgerInmutableError):
            MovimientoInventario.objects.all().delete()


class MaterialTests(TestCase):
    def test_umbral_usa_stock_minimo_si_esta_definido(self):
        material = Material.objects.create(
            nombre="Conector RJ45",
            unidad_medida="unidad",
            stock_minimo=Decimal("20"),
        )
        self.assertEqual(material.umbral_stock_bajo, Decimal("20"))

    def test_umbral_global_por_defecto(self):
        material = Material.objects.create(nombre="Grapas", unidad_medida="caja")
        self.assertEqual(material.umbral_stock_bajo, Decimal("5"))

    @override_settings(MATERIALES={"UMBRAL_STOCK_BAJO": Decimal("2")})
    def test_umbral_global_configurable(self):
        material = Material.objects.create(nombre="Cinta aislante", unidad_medida="rollo")
        self.assertEqual(material.umbral_stock_bajo, Decimal("2"))

    def test_stock_tecnico_bajo_umbral(self):
        tecnico = User.objects.create_user(username="tec", password="password123")
        material = Material.objects.create(nombre="Tarugos", unidad_medida="unidad")
        saldo = StockTecnico.objects.create(
            tecnico=tecnico,
            material=material,
            cantidad_actual=Decimal("4"),
            cantidad_disponible=Decimal("4"),
        )
        self.assertTrue(saldo.bajo_umbral)


class ControlMaterialTests(TestCase):
    def setUp(self):
        self.tecnico = User.objects.create_user(username="tecnico", password="password123")
        self.bodeguero = User.objects.create_user(username="bodeguero", password="password123")
        self.material = Material.objects.create(
            nombre="Cable coaxial",
            unidad_medida="metro",
            costo_unitario=Decimal("1200"),
        )

    def _control(self, estado=EstadoControl.ASIGNADO, **extra):
        return ControlMaterial.objects.create(
            tecnico=self.tecnico,
            bodeguero_asigno=self.bodeguero,
            estado_general=estado,
            **extra,
        )

    def test_transiciones_solo_hacia_adelante(self):
        control = self._control()
        self.assertTrue(control.puede_transicionar(EstadoControl.EN_TRABAJO))
        self.assertFalse(control.puede_transicionar(EstadoControl.CERRADO))

        control = self._control(EstadoControl.DEVOLUCION_PENDIENTE)
        self.assertTrue(control.puede_transicionar(EstadoControl.DEVOLUCION_PENDIENTE))
        self.assertTrue(control.puede_transicionar(EstadoControl.DEVOLUCION_COMPLETADA))
        self.assertFalse(control.puede_transicionar(EstadoControl.TRABAJO_COMPLETADO))

        control = self._control(EstadoControl.CERRADO)
        for estado in EstadoControl:
            self.assertFalse(control.puede_transicionar(estado))

    def test_puede_cerrarse(self):
        sin_descuadre = self._control(EstadoControl.DEVOLUCION_COMPLETADA)
        self.assertTrue(sin_descuadre.puede_cerrarse)

        con_descuadre = self._control(EstadoControl.DEVOLUCION_COMPLETADA, tiene_descuadre=True)
        self.assertFalse(con_descuadre.puede_cerrarse)

        con_descuadre.descuadre_resuelto = True
        self.assertTrue(con_descuadre.puede_cerrarse)

        self.assertFalse(self._control(EstadoControl.TRABAJO_COMPLETADO).puede_cerrarse)

    def test_control_cerrado_es_inmutable(self):
        control = self._control(EstadoControl.CERRADO)
        control.observaciones_analista = "cambio tardío"
        with self.assertRaises(TransicionEstadoError):
            control.save()

    def test_lineas_de_control_cerrado_son_inmutables(self):
        control = self._control()
        linea = MaterialAsignado.objects.create(
            control=control,
            material=self.material,
            cantidad_asignada=Decimal("3"),
        )
        ControlMaterial.objects.filter(pk=control.pk).update(estado_general=EstadoControl.CERRADO)

        linea.cantidad_utilizada = Decimal("3")
        with self.assertRaises(TransicionEstadoError):
            linea.save()
        with self.assertRaises(TransicionEstadoError):
            linea.delete()

    def test_linea_cuadra(self):
        control = self._control()
        linea = MaterialAsignado(
            control=control,
            material=self.material,
            cantidad_asignada=Decimal("10"),
            cantidad_utilizada=Decimal("7"),
            cantidad_devuelta=Decimal("2"),
            cantidad_perdida=Decimal("1"),
            estado=EstadoLinea.DEVUELTO_PARCIAL,
        )
        self.assertEqual(linea.total_reportado, Decimal("10"))
        self.assertTrue(linea.cuadra)
        self.assertTrue(linea.es_terminal)

        linea.cantidad_perdida = Decimal("0")
        self.assertFalse(linea.cuadra)
