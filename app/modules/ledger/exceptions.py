"""
Errores de dominio del ledger de fiado.

Cada error lleva el status HTTP con el que el router lo reporta; el servicio
nunca los captura ni reintenta.
"""
from fastapi import status


class LedgerError(Exception):
    """Base de todos los fallos del ledger de fiado."""

    status_code = status.HTTP_400_BAD_REQUEST
    retryable = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidPaymentAmount(LedgerError):
    """Monto cero, negativo, con más de dos decimales o mayor que lo adeudado."""


class NoOpenSales(LedgerError):
    """El cliente no tiene ventas fiado en abierto."""

    status_code = status.HTTP_404_NOT_FOUND


class SaleNotFound(LedgerError):
    status_code = status.HTTP_404_NOT_FOUND


class SaleAlreadySettled(LedgerError):
    """La venta ya está quitada; impide un doble pago."""

    status_code = status.HTTP_409_CONFLICT


class ConcurrencyConflict(LedgerError):
    """Lock no disponible o conflicto al confirmar; se puede reintentar completo."""

    status_code = status.HTTP_409_CONFLICT
    retryable = True


class PersistenceFailure(LedgerError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class CustomerNotFound(LedgerError):
    status_code = status.HTTP_404_NOT_FOUND
