from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
import logging

# Import database components
from app.database.database import engine, Base

# Import middleware
from app.common.middleware import RequestLoggingMiddleware, SecurityHeadersMiddleware

# Import routers
from app.modules.auth.router import auth_router
from app.modules.products.router import product_router
from app.modules.customers.router import router as customers_router
from app.modules.sales.router import router as sales_router
from app.modules.ledger.router import router as credit_router
from app.modules.dashboard.router import router as dashboard_router

# Import models for table creation
import app.modules.products.models
import app.modules.customers.models
import app.modules.sales.models
import app.modules.ledger.models

from app.core.config import settings

# Configure logging
logging.basicConfig(
    level=logging.INFO if settings.ENVIRONMENT == "production" else logging.DEBUG,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# FastAPI app
app = FastAPI(
    title="Tabacaria POS API",
    description="Point-of-sale API for a tobacco shop: products, customers, sales and running-tab (fiado) credit",
    version="1.0.0",
    docs_url="/docs" if settings.ENVIRONMENT != "production" else None,
    redoc_url="/redoc" if settings.ENVIRONMENT != "production" else None
)

# Add middleware (order matters!)
app.add_middleware(GZipMiddleware, minimum_size=1000)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(RequestLoggingMiddleware)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(auth_router, prefix="/auth", tags=["Auth"])
app.include_router(product_router)
app.include_router(customers_router)
app.include_router(sales_router)
app.include_router(credit_router)
app.include_router(dashboard_router)

# Create database tables (only for development - use migrations in production)
if settings.ENVIRONMENT == "development":
    Base.metadata.create_all(bind=engine)

@app.get("/")
async def read_root():
    return {
        "message": "Tabacaria POS API is running",
        "version": "1.0.0",
        "environment": settings.ENVIRONMENT
    }

@app.get("/health")
async def health_check():
    return {"status": "healthy", "environment": settings.ENVIRONMENT}

@app.on_event("startup")
async def startup_event():
    logger.info("Tabacaria POS API starting up...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Debug mode: {settings.DEBUG}")
    if settings.SHOP_PASSWORD == "change-me" and settings.ENVIRONMENT == "production":
        logger.warning("SHOP_PASSWORD is still the default value")

@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Tabacaria POS API shutting down...")
