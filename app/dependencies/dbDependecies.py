from fastapi import Depends
from sqlalchemy.orm import Session
from typing import Annotated
from app.database.database import get_db

# Dependencia de sesión síncrona usada por todos los routers
db_dependency = Annotated[Session, Depends(get_db)]
