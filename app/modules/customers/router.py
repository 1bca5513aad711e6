from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.common.cache import dashboard_cache
from app.dependencies.dbDependecies import get_db
from app.modules.auth.dependencies import require_auth
from app.modules.customers.service import CustomerService
from app.modules.customers.schemas import CustomerCreate, CustomerUpdate, CustomerOut, CustomerList

router = APIRouter(
    prefix="/customers",
    tags=["Customers"],
    dependencies=[Depends(require_auth)],
    responses={404: {"description": "Not found"}}
)


@router.post("/", response_model=CustomerOut, status_code=status.HTTP_201_CREATED)
def create_customer(customer_data: CustomerCreate, db: Session = Depends(get_db)):
    """Crear un nuevo cliente"""
    customer = CustomerService(db).create_customer(customer_data)
    dashboard_cache.invalidate()
    return customer


@router.get("/", response_model=CustomerList)
def get_customers(db: Session = Depends(get_db)):
    """Listar clientes con su saldo fiado actual"""
    return CustomerService(db).get_customers()


@router.get("/{customer_id}", response_model=CustomerOut)
def get_customer(customer_id: int, db: Session = Depends(get_db)):
    return CustomerService(db).get_customer(customer_id)


@router.patch("/{customer_id}", response_model=CustomerOut)
def update_customer(customer_id: int, customer_data: CustomerUpdate, db: Session = Depends(get_db)):
    customer = CustomerService(db).update_customer(customer_id, customer_data)
    dashboard_cache.invalidate()
    return customer
