"""
Servicios de negocio para el módulo de Clientes

El saldo fiado (total_owed) nunca se guarda en la tabla de clientes: se
recalcula en cada lectura a partir de las ventas fiado en abierto.
"""

from fastapi import HTTPException, status
from sqlalchemy.orm import Session
from decimal import Decimal
import logging

from app.modules.customers.models import Customer
from app.modules.customers.schemas import CustomerCreate, CustomerUpdate, CustomerOut, CustomerList
from app.modules.ledger.store import LedgerStore

logger = logging.getLogger(__name__)


class CustomerService:
    """Servicio principal para gestión de clientes"""

    def __init__(self, db: Session):
        self.db = db
        self.ledger = LedgerStore(db)

    def _to_out(self, customer: Customer, owed: Decimal) -> CustomerOut:
        return CustomerOut(
            id=customer.id,
            name=customer.name,
            total_owed=owed,
            created_at=customer.created_at
        )

    def create_customer(self, customer_data: CustomerCreate) -> CustomerOut:
        """Crear un nuevo cliente"""
        try:
            customer = Customer(name=customer_data.name)
            self.db.add(customer)
            self.db.commit()
            self.db.refresh(customer)
            logger.info(f"Customer created: id={customer.id} name={customer.name!r}")
            return self._to_out(customer, Decimal("0.00"))
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error creating customer: {e}", exc_info=True)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error creando cliente: {str(e)}"
            )

    def get_customers(self) -> CustomerList:
        """Listar clientes ordenados por nombre, con su saldo fiado"""
        customers = self.db.query(Customer).order_by(Customer.name, Customer.id).all()
        owed = self.ledger.owed_by_customer()
        return CustomerList(
            customers=[self._to_out(c, owed.get(c.id, Decimal("0.00"))) for c in customers],
            total=len(customers)
        )

    def get_customer_model(self, customer_id: int) -> Customer:
        customer = self.db.query(Customer).filter(Customer.id == customer_id).first()
        if not customer:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Cliente no encontrado"
            )
        return customer

    def get_customer(self, customer_id: int) -> CustomerOut:
        customer = self.get_customer_model(customer_id)
        owed = self.ledger.owed_by_customer([customer_id])
        return self._to_out(customer, owed.get(customer_id, Decimal("0.00")))

    def update_customer(self, customer_id: int, customer_data: CustomerUpdate) -> CustomerOut:
        customer = self.get_customer_model(customer_id)
        try:
            customer.name = customer_data.name
            self.db.commit()
            self.db.refresh(customer)
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error updating customer {customer_id}: {e}", exc_info=True)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error actualizando cliente: {str(e)}"
            )
        return self.get_customer(customer_id)
