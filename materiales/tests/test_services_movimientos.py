from datetime import timedelta
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import TestCase
from django.utils import timezone

from materiales.exceptions import (
    CantidadInvalidaError,
    NoEncontradoError,
    StockNegativoError,
)
from materiales.models import ControlMaterial, EstadoControl, Material, MovimientoInventario
from materiales.services.movimientos import (
    movimientos_por_material,
    movimientos_por_tecnico,
    registrar_ajuste,
    registrar_entrada,
    registrar_movimiento,
)
from materiales.services.stock import obtener_saldo

User = get_user_model()


class RegistrarMovimientoTests(TestCase):
    def setUp(self):
        self.bodeguero = User.objects.create_user(username="bodeguero", password="password123")
        self.tecnico = User.objects.create_user(username="tecnico", password="password123")
        self.material = Material.objects.create(
            nombre="Cable UTP",
            unidad_medida="metro",
            costo_unitario=Decimal("350"),
        )

    def test_entrada_crea_movimiento_y_saldo(self):
        movimiento = registrar_entrada(
            tecnico_id=self.tecnico.pk,
            material_id=self.material.pk,
            cantidad=Decimal("25"),
            usuario=self.bodeguero,
            referencia_origen="GUIA-001",
        )

        saldo = obtener_saldo(self.tecnico.pk, self.material.pk)
        self.assertEqual(movimiento.tipo, MovimientoInventario.TIPO_ENTRADA)
        self.assertEqual(movimiento.usuario_responsable, self.bodeguero)
        self.assertEqual(movimiento.referencia_origen, "GUIA-001")
        self.assertTrue(movimiento.visible_para_analistas)
        self.assertEqual(saldo.cantidad_actual, Decimal("25"))
        self.assertEqual(saldo.cantidad_apartada, Decimal("0"))
        self.assertEqual(saldo.cantidad_disponible, Decimal("25"))
        self.assertEqual(saldo.version, 1)

    def test_cantidad_acepta_texto_numerico(self):
        registrar_entrada(
            tecnico_id=self.tecnico.pk,
            material_id=self.material.pk,
            cantidad="12.5",
        )
        self.assertEqual(
            obtener_saldo(self.tecnico.pk, self.material.pk).cantidad_actual,
            Decimal("12.5"),
        )

    def test_cantidades_invalidas(self):
        for cantidad in (Decimal("0"), Decimal("-3"), "abc", None):
            with self.subTest(cantidad=cantidad):
                with self.assertRaises(CantidadInvalidaError):
                    registrar_entrada(
                        tecnico_id=self.tecnico.pk,
                        material_id=self.material.pk,
                        cantidad=cantidad,
                    )
        self.assertFalse(MovimientoInventario.objects.exists())

    def test_cantidad_con_mas_de_tres_decimales(self):
        with self.assertRaises(CantidadInvalidaError):
            registrar_entrada(
                tecnico_id=self.tecnico.pk,
                material_id=self.material.pk,
                cantidad="0.0004",
            )
        self.assertFalse(MovimientoInventario.objects.exists())

        # Ceros sobrantes no cambian el valor
        movimiento = registrar_entrada(
            tecnico_id=self.tecnico.pk,
            material_id=self.material.pk,
            cantidad="2.5000",
        )
        movimiento.refresh_from_db()
        self.assertEqual(movimiento.cantidad, Decimal("2.5"))

    def test_cantidad_fuera_de_rango(self):
        for cantidad in ("1e12", Decimal("100000000000")):
            with self.subTest(cantidad=cantidad):
                with self.assertRaises(CantidadInvalidaError):
                    registrar_entrada(
                        tecnico_id=self.tecnico.pk,
                        material_id=self.material.pk,
                        cantidad=cantidad,
                    )
        self.assertFalse(MovimientoInventario.objects.exists())

        registrar_entrada(
            tecnico_id=self.tecnico.pk,
            material_id=self.material.pk,
            cantidad=Decimal("99999999999.999"),
        )
        self.assertEqual(
            obtener_saldo(self.tecnico.pk, self.material.pk).cantidad_actual,
            Decimal("99999999999.999"),
        )

    def test_tipo_desconocido(self):
        with self.assertRaises(CantidadInvalidaError):
            registrar_movimiento(
                tecnico_id=self.tecnico.pk,
                material_id=self.material.pk,
                tipo="traspaso",
                cantidad=Decimal("1"),
            )

    def test_salida_sin_apartado_no_deja_saldo_negativo(self):
        registrar_entrada(
            tecnico_id=self.tecnico.pk,
            material_id=self.material.pk,
            cantidad=Decimal("5"),
        )
        with self.assertRaises(StockNegativoError):
            registrar_movimiento(
                tecnico_id=self.tecnico.pk,
                material_id=self.material.pk,
                tipo=MovimientoInventario.TIPO_SALIDA,
                cantidad=Decimal("2"),
            )

        # No queda la entrada huérfana en el ledger
        self.assertEqual(MovimientoInventario.objects.count(), 1)
        saldo = obtener_saldo(self.tecnico.pk, self.material.pk)
        self.assertEqual(saldo.cantidad_actual, Decimal("5"))

    def test_tecnico_o_material_desconocido(self):
        with self.assertRaises(NoEncontradoError):
            registrar_entrada(tecnico_id=9999, material_id=self.material.pk, cantidad=1)
        with self.assertRaises(NoEncontradoError):
            registrar_entrada(tecnico_id=self.tecnico.pk, material_id=9999, cantidad=1)

    def test_material_inactivo_no_recibe_entradas(self):
        self.material.activo = False
        self.material.save()
        with self.assertRaises(NoEncontradoError):
            registrar_entrada(tecnico_id=self.tecnico.pk, material_id=self.material.pk, cantidad=1)


class RegistrarAjusteTests(TestCase):
    def setUp(self):
        self.bodeguero = User.objects.create_user(username="bodeguero", password="password123")
        self.tecnico = User.objects.create_user(username="tecnico", password="password123")
        self.material = Material.objects.create(nombre="Conector F", unidad_medida="unidad")
        registrar_entrada(
            tecnico_id=self.tecnico.pk,
            material_id=self.material.pk,
            cantidad=Decimal("10"),
        )

    def test_ajuste_negativo_resta(self):
        movimiento = registrar_ajuste(
            tecnico_id=self.tecnico.pk,
            material_id=self.material.pk,
            cantidad=Decimal("-4"),
            motivo="Conteo físico",
            usuario=self.bodeguero,
        )
        self.assertEqual(movimiento.cantidad, Decimal("-4"))
        saldo = obtener_saldo(self.tecnico.pk, self.material.pk)
        self.assertEqual(saldo.cantidad_actual, Decimal("6"))
        self.assertEqual(saldo.cantidad_disponible, Decimal("6"))

    def test_ajuste_cero_invalido(self):
        with self.assertRaises(CantidadInvalidaError):
            registrar_ajuste(
                tecnico_id=self.tecnico.pk,
                material_id=self.material.pk,
                cantidad=Decimal("0"),
                motivo="nada",
            )

    def test_ajuste_requiere_motivo(self):
        with self.assertRaises(CantidadInvalidaError):
            registrar_ajuste(
                tecnico_id=self.tecnico.pk,
                material_id=self.material.pk,
                cantidad=Decimal("1"),
                motivo="   ",
            )

    def test_ajuste_no_puede_dejar_negativo(self):
        with self.assertRaises(StockNegativoError):
            registrar_ajuste(
                tecnico_id=self.tecnico.pk,
                material_id=self.material.pk,
                cantidad=Decimal("-11"),
                motivo="Pérdida",
            )
        self.assertEqual(MovimientoInventario.objects.filter(tipo="ajuste").count(), 0)

    def test_ajuste_sobre_control_cerrado(self):
        control = ControlMaterial.objects.create(
            tecnico=self.tecnico,
            bodeguero_asigno=self.bodeguero,
            orden_trabajo_id="OT-77",
            estado_general=EstadoControl.CERRADO,
        )
        movimiento = registrar_ajuste(
            tecnico_id=self.tecnico.pk,
            material_id=self.material.pk,
            cantidad=Decimal("1"),
            motivo="Apareció material del control",
            control_id=control.pk,
        )
        self.assertEqual(movimiento.control, control)
        self.assertEqual(movimiento.origen, MovimientoInventario.ORIGEN_ORDEN)
        self.assertEqual(movimiento.referencia_origen, "OT-77")

    def test_ajuste_con_control_desconocido(self):
        with self.assertRaises(NoEncontradoError):
            registrar_ajuste(
                tecnico_id=self.tecnico.pk,
                material_id=self.material.pk,
                cantidad=Decimal("1"),
                motivo="x",
                control_id=12345,
            )


class ConsultasLedgerTests(TestCase):
    def setUp(self):
        self.tecnico = User.objects.create_user(username="tecnico", password="password123")
        self.otro = User.objects.create_user(username="otro", password="password123")
        self.cable = Material.objects.create(nombre="Cable", unidad_medida="metro")
        self.conector = Material.objects.create(nombre="Conector", unidad_medida="unidad")

        registrar_entrada(tecnico_id=self.tecnico.pk, material_id=self.cable.pk, cantidad=10)
        registrar_entrada(tecnico_id=self.tecnico.pk, material_id=self.conector.pk, cantidad=20)
        registrar_ajuste(
            tecnico_id=self.tecnico.pk,
            material_id=self.cable.pk,
            cantidad=-1,
            motivo="Corte",
            visible_para_analistas=False,
        )
        registrar_entrada(tecnico_id=self.otro.pk, material_id=self.cable.pk, cantidad=5)

    def test_por_tecnico_en_orden_cronologico(self):
        movimientos = list(movimientos_por_tecnico(self.tecnico.pk))
        self.assertEqual(len(movimientos), 3)
        self.assertEqual(
            [m.tipo for m in movimientos],
            ["entrada", "entrada", "ajuste"],
        )
        ids = [m.pk for m in movimientos]
        self.assertEqual(ids, sorted(ids))

    def test_por_tecnico_con_filtros(self):
        self.assertEqual(
            movimientos_por_tecnico(self.tecnico.pk, material_id=self.cable.pk).count(), 2
        )
        self.assertEqual(movimientos_por_tecnico(self.tecnico.pk, tipo="ajuste").count(), 1)
        self.assertEqual(movimientos_por_tecnico(self.tecnico.pk, solo_visibles=True).count(), 2)
        futuro = timezone.now() + timedelta(days=1)
        self.assertEqual(movimientos_por_tecnico(self.tecnico.pk, desde=futuro).count(), 0)

    def test_consulta_reiniciable(self):
        qs = movimientos_por_tecnico(self.tecnico.pk)
        self.assertEqual(list(qs.values_list("pk", flat=True)), list(qs.values_list("pk", flat=True)))

    def test_por_material(self):
        movimientos = movimientos_por_material(self.cable.pk)
        self.assertEqual(movimientos.count(), 3)
        self.assertEqual(
            {m.tecnico_id for m in movimientos},
            {self.tecnico.pk, self.otro.pk},
        )
