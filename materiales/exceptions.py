class ControlMaterialesError(Exception):
    """Errores de dominio del control de materiales.

    Cada error es una operación rechazada, nunca un fallo del proceso:
    la vista lo traduce a una respuesta HTTP y el usuario corrige y reenvía.
    """

    codigo = "error_control_materiales"
    status_code = 400

    def __init__(self, mensaje: str = ""):
        self.mensaje = mensaje or self.__class__.__doc__ or ""
        super().__init__(self.mensaje)


class StockInsuficienteError(ControlMaterialesError):
    """La asignación dejaría un saldo negativo."""

    codigo = "stock_insuficiente"
    status_code = 409


class CantidadesNoCuadranError(ControlMaterialesError):
    """Utilizada + devuelta + perdida no coincide con lo asignado."""

    codigo = "cantidades_no_cuadran"
    status_code = 400


class TransicionEstadoError(ControlMaterialesError):
    """Operación inválida para el estado actual del control."""

    codigo = "transicion_invalida"
    status_code = 409


class NoEncontradoError(ControlMaterialesError):
    """Control, técnico o material desconocido."""

    codigo = "no_encontrado"
    status_code = 404


class CantidadInvalidaError(ControlMaterialesError):
    """Cantidad no positiva o mal formada, o ajuste sin motivo."""

    codigo = "cantidad_invalida"
    status_code = 400


class ConflictoConcurrenciaError(ControlMaterialesError):
    """Otra operación modificó el registro; reintentar."""

    codigo = "conflicto_concurrencia"
    status_code = 409


class StockNegativoError(ControlMaterialesError):
    """Aplicar el movimiento dejaría el saldo del técnico en negativo."""

    codigo = "stock_negativo"
    status_code = 409


class LedgerInmutableError(ControlMaterialesError):
    """Los movimientos de inventario no se editan ni se eliminan."""

    codigo = "movimiento_inmutable"
    status_code = 409
