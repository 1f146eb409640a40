from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import logging

from residence_chat.core.config import settings
from residence_chat.core.firebase_init import initialize_firebase, get_firebase_status
from residence_chat.services.firebase_storage_init import get_bucket_info
from residence_chat.services.websocket_service import connection_manager
from residence_chat.routers import chat, community, websocket

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Residence Chat API",
    description="Direct resident/staff messaging and community feed for the residence portal",
    version="1.0.0"
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(chat.router)
app.include_router(community.router)
app.include_router(websocket.router)

@app.on_event("startup")
async def startup_event():
    """Bring up Firebase and the storage bucket"""
    logger.info("🔥 Initializing Firebase...")
    if get_firebase_status()['available'] or initialize_firebase():
        logger.info("✅ Firebase ready")
    else:
        logger.warning("⚠️ Firebase initialization failed - app will run without Firebase features")

    storage_info = get_bucket_info()
    if storage_info['available']:
        logger.info(f"✅ Storage initialized: {storage_info['bucket_path']}")
    else:
        logger.warning(f"⚠️ Storage initialization failed: {storage_info.get('error', 'Unknown error')}")

@app.get("/")
async def root():
    return {
        "message": "Welcome to the Residence Chat API",
        "firebase_status": get_firebase_status(),
        "storage_status": get_bucket_info()
    }

@app.get("/health")
async def health_check():
    return {
        "status": "healthy",
        "firebase_available": get_firebase_status()['available'],
        "storage_available": get_bucket_info()['available'],
        "websocket": connection_manager.get_connection_stats()
    }
