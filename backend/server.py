from fastapi import FastAPI, APIRouter
from dotenv import load_dotenv
from fastapi.middleware.cors import CORSMiddleware
import os
import logging
from pathlib import Path

# Load env before other imports
ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

from patchlib import __version__
from patchlib_api import patchlib_router, get_db, close_db

# Create the main app
app = FastAPI(title="Patch Library API", version=__version__)

# Create a router with the /api prefix
api_router = APIRouter(prefix="/api")

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# ============== Health Check ==============

@api_router.get("/")
async def root():
    return {"message": "Patch Library API", "version": __version__}

@api_router.get("/health")
async def health_check():
    return {"status": "healthy"}

# Include the routers
app.include_router(api_router)
app.include_router(patchlib_router)

app.add_middleware(
    CORSMiddleware,
    allow_credentials=True,
    allow_origins=os.environ.get('CORS_ORIGINS', '*').split(','),
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.on_event("startup")
async def open_store():
    db = get_db()
    logger.info(f"Patch library store at {db.db_path}")

@app.on_event("shutdown")
async def close_store():
    close_db()
