from fastapi import APIRouter
from tellus_crm.api.endpoints import audit, auth, customers, customer_upload, documents, leads, sharing, storage

api_router = APIRouter()

api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
api_router.include_router(customers.router, prefix="/customers", tags=["customers"])
api_router.include_router(leads.router, prefix="/leads", tags=["leads"])
api_router.include_router(documents.router, prefix="/documents", tags=["documents"])
api_router.include_router(sharing.router, prefix="/sharing", tags=["sharing"])
api_router.include_router(customer_upload.router, prefix="/customer-upload", tags=["customer-upload"])
api_router.include_router(storage.router, prefix="/storage", tags=["storage"])
api_router.include_router(audit.router, prefix="/audit", tags=["audit"])
