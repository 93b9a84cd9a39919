from decimal import Decimal

from django.contrib.auth import get_user_model
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APITestCase

from materiales.models import ControlMaterial, EstadoControl, Material, MovimientoInventario
from materiales.services.movimientos import registrar_entrada

User = get_user_model()


class ControlesAPITests(APITestCase):
    def setUp(self):
        self.bodeguero = User.objects.create_user(username="bodeguero", password="testpass123")
        self.tecnico = User.objects.create_user(username="tecnico", password="testpass123")
        self.analista = User.objects.create_user(username="analista", password="testpass123")
        self.material = Material.objects.create(
            nombre="Cable UTP",
            unidad_medida="metro",
            costo_unitario=Decimal("2500"),
        )
        registrar_entrada(tecnico_id=self.tecnico.pk, material_id=self.material.pk, cantidad=20)

        self.list_url = reverse("control-list")

    def _accion(self, nombre, control_id, payload=None, usuario=None):
        self.client.force_authenticate(user=usuario or self.tecnico)
        url = reverse(f"control-{nombre}", args=[control_id])
        return self.client.post(url, payload or {}, format="json")

    def _asignar(self, cantidad="10"):
        self.client.force_authenticate(user=self.bodeguero)
        payload = {
            "tecnico_id": self.tecnico.pk,
            "orden_trabajo_id": "OT-55",
            "lineas": [{"material_id": self.material.pk, "cantidad": cantidad}],
        }
        return self.client.post(self.list_url, payload, format="json")

    def test_requiere_autenticacion(self):
        response = self.client.get(self.list_url)
        self.assertIn(response.status_code, (status.HTTP_401_UNAUTHORIZED, status.HTTP_403_FORBIDDEN))

    def test_flujo_completo(self):
        response = self._asignar()
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data["estado_general"], EstadoControl.ASIGNADO)
        self.assertEqual(response.data["bodeguero_asigno"], self.bodeguero.pk)
        self.assertEqual(len(response.data["lineas"]), 1)
        control_id = response.data["id"]

        response = self._accion("iniciar-trabajo", control_id)
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["estado_general"], EstadoControl.EN_TRABAJO)

        response = self._accion("completar-trabajo", control_id, {"observaciones": "Listo"})
        self.assertEqual(response.data["estado_general"], EstadoControl.TRABAJO_COMPLETADO)

        response = self._accion(
            "devolucion",
            control_id,
            {
                "reportes": [
                    {
                        "material_id": self.material.pk,
                        "cantidad_utilizada": "7",
                        "cantidad_devuelta": "2",
                        "cantidad_perdida": "1",
                        "motivo_perdida": "broke",
                    }
                ]
            },
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["estado_general"], EstadoControl.DEVOLUCION_COMPLETADA)
        self.assertTrue(response.data["tiene_descuadre"])
        self.assertEqual(Decimal(response.data["valor_descuadre"]), Decimal("2500"))

        response = self._accion("cerrar", control_id, usuario=self.analista)
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data["error"], "transicion_invalida")

        response = self._accion(
            "resolver-descuadre",
            control_id,
            {"observaciones": "Aceptado"},
            usuario=self.analista,
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data["descuadre_resuelto"])
        self.assertEqual(response.data["analista_supervisa"], self.analista.pk)

        response = self._accion("cerrar", control_id, usuario=self.analista)
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["estado_general"], EstadoControl.CERRADO)

    def test_stock_insuficiente_409(self):
        response = self._asignar(cantidad="21")
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data["error"], "stock_insuficiente")
        self.assertIn("detalle", response.data)
        self.assertFalse(ControlMaterial.objects.exists())

    def test_cantidad_invalida_400(self):
        response = self._asignar(cantidad="0")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["error"], "cantidad_invalida")

    def test_tecnico_desconocido_404(self):
        self.client.force_authenticate(user=self.bodeguero)
        response = self.client.post(
            self.list_url,
            {"tecnico_id": 9999, "lineas": [{"material_id": self.material.pk, "cantidad": "1"}]},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data["error"], "no_encontrado")

    def test_devolucion_que_no_cuadra_400(self):
        control_id = self._asignar().data["id"]
        self._accion("iniciar-trabajo", control_id)
        self._accion("completar-trabajo", control_id)

        response = self._accion(
            "devolucion",
            control_id,
            {"reportes": [{"material_id": self.material.pk, "cantidad_utilizada": "9"}]},
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["error"], "cantidades_no_cuadran")

    def test_transicion_invalida_409(self):
        control_id = self._asignar().data["id"]
        response = self._accion("completar-trabajo", control_id)
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)

    def test_control_inexistente_404(self):
        response = self._accion("iniciar-trabajo", 424242)
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_pendientes_y_mis_asignaciones(self):
        control_id = self._asignar(cantidad="2").data["id"]

        self.client.force_authenticate(user=self.analista)
        response = self.client.get(reverse("control-pendientes"))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([c["id"] for c in response.data], [control_id])

        response = self.client.get(reverse("control-mis-asignaciones"))
        self.assertEqual(response.data, [])

        self.client.force_authenticate(user=self.tecnico)
        response = self.client.get(reverse("control-mis-asignaciones"))
        self.assertEqual([c["id"] for c in response.data], [control_id])

    def test_filtro_por_estado(self):
        control_id = self._asignar(cantidad="2").data["id"]
        self.client.force_authenticate(user=self.analista)

        response = self.client.get(self.list_url, {"estado_general": "asignado"})
        self.assertEqual([c["id"] for c in response.data], [control_id])

        response = self.client.get(self.list_url, {"estado_general": "cerrado"})
        self.assertEqual(response.data, [])

    def test_descuadres(self):
        control_id = self._asignar(cantidad="2").data["id"]
        self._accion("iniciar-trabajo", control_id)
        self._accion("completar-trabajo", control_id)
        self._accion(
            "devolucion",
            control_id,
            {
                "reportes": [
                    {
                        "material_id": self.material.pk,
                        "cantidad_utilizada": "1",
                        "cantidad_perdida": "1",
                        "motivo_perdida": "Extraviado",
                    }
                ]
            },
        )

        self.client.force_authenticate(user=self.analista)
        response = self.client.get(reverse("control-descuadres"))
        self.assertEqual([c["id"] for c in response.data], [control_id])

        response = self.client.get(reverse("control-descuadres"), {"resueltos": "true"})
        self.assertEqual(response.data, [])


class LedgerAPITests(APITestCase):
    def setUp(self):
        self.bodeguero = User.objects.create_user(username="bodeguero", password="testpass123")
        self.tecnico = User.objects.create_user(username="tecnico", password="testpass123")
        self.material = Material.objects.create(nombre="Conector", unidad_medida="unidad")
        self.client.force_authenticate(user=self.bodeguero)

    def test_entrada_y_listado(self):
        response = self.client.post(
            reverse("movimiento-entrada"),
            {"tecnico_id": self.tecnico.pk, "material_id": self.material.pk, "cantidad": "15"},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data["tipo"], MovimientoInventario.TIPO_ENTRADA)
        self.assertEqual(response.data["usuario_responsable"], self.bodeguero.pk)

        response = self.client.get(reverse("movimiento-list"), {"tecnico": self.tecnico.pk})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 1)

        response = self.client.get(reverse("stock-tecnico-list"), {"tecnico": self.tecnico.pk})
        self.assertEqual(Decimal(response.data[0]["cantidad_disponible"]), Decimal("15"))

    def test_ajuste_negativo_que_deja_saldo_negativo(self):
        response = self.client.post(
            reverse("movimiento-ajuste"),
            {
                "tecnico_id": self.tecnico.pk,
                "material_id": self.material.pk,
                "cantidad": "-1",
                "motivo": "Conteo",
            },
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data["error"], "stock_negativo")

    def test_ledger_no_acepta_escrituras_directas(self):
        registrar_entrada(tecnico_id=self.tecnico.pk, material_id=self.material.pk, cantidad=1)
        movimiento = MovimientoInventario.objects.get()

        response = self.client.delete(reverse("movimiento-detail", args=[movimiento.pk]))
        self.assertEqual(response.status_code, status.HTTP_405_METHOD_NOT_ALLOWED)

        response = self.client.post(reverse("movimiento-list"), {}, format="json")
        self.assertEqual(response.status_code, status.HTTP_405_METHOD_NOT_ALLOWED)

    def test_stock_bajo_umbral_y_alertas(self):
        registrar_entrada(tecnico_id=self.tecnico.pk, material_id=self.material.pk, cantidad=2)

        response = self.client.get(reverse("stock-tecnico-bajo-umbral"))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 1)
        self.assertTrue(response.data[0]["bajo_umbral"])

        response = self.client.get(reverse("alerta-pendientes"), {"tipo": "stock_critico"})
        self.assertEqual(len(response.data), 1)
        alerta_id = response.data[0]["id"]

        response = self.client.post(reverse("alerta-resolver", args=[alerta_id]))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data["resuelta"])

        response = self.client.post(reverse("alerta-resolver", args=[alerta_id]))
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)

    def test_alertas_fecha_invalida(self):
        response = self.client.get(reverse("alerta-pendientes"), {"desde": "ayer"})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


class MaterialesAPITests(APITestCase):
    def setUp(self):
        self.user = User.objects.create_user(username="testuser", password="testpass123")
        Material.objects.create(nombre="Cable", unidad_medida="metro")

    def test_listado_publico(self):
        response = self.client.get(reverse("material-list"))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn("Cable", [m["nombre"] for m in response.data])

    def test_crear_requiere_autenticacion(self):
        payload = {"nombre": "Fibra", "unidad_medida": "metro"}
        response = self.client.post(reverse("material-list"), payload, format="json")
        self.assertIn(response.status_code, (status.HTTP_401_UNAUTHORIZED, status.HTTP_403_FORBIDDEN))

        self.client.force_authenticate(user=self.user)
        response = self.client.post(reverse("material-list"), payload, format="json")
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)

    def test_costo_negativo_rechazado(self):
        self.client.force_authenticate(user=self.user)
        response = self.client.post(
            reverse("material-list"),
            {"nombre": "Fibra", "unidad_medida": "metro", "costo_unitario": "-1"},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
