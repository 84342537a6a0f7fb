import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlmodel import SQLModel

import models.school  # Ensure these models are known by SQLModel for table creation
import models.check_in_session
from api.admin_maintenance_routes import router as admin_maintenance_router
from api.admin_school_routes import router as admin_school_router
from api.admin_session_routes import router as admin_session_router
from api.admin_user_routes import router as admin_user_router
from api.health_routes import router as health_router
from api.school_routes import router as school_router
from api.session_routes import router as session_router
from api.user_routes import router as user_router
from core.config import DEV_DOMAIN, LOG_LEVEL, PRODUCTION_DOMAIN, school_cache_config, user_cache_config
from db.session import engine
from utils.cache import TTLCache

# This file is the control center of the whole application

# Configure logging
logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

logger = logging.getLogger(__name__)

# Construct the list of allowed origins, always including both dev and production
allowed_origins_list = [
    DEV_DOMAIN,
    PRODUCTION_DOMAIN,
    "http://127.0.0.1:3000",  # Additional fallback for local dev
]

# Remove any None values and duplicates
allowed_origins_list = list(dict.fromkeys(origin for origin in allowed_origins_list if origin))

logger.info(f"CORS: Allowing origins: {allowed_origins_list}")


# When We Start, Create the DB Tables if they don't exist
@asynccontextmanager
async def lifespan(app: FastAPI):

    SQLModel.metadata.create_all(engine)

    # (would do shutdown cleanup here if needed)
    yield


# Starts Fast API Up; Init
app = FastAPI(lifespan=lifespan)

# One cache per concern; routes reach them through core.deps
app.state.school_cache = TTLCache(school_cache_config())
app.state.user_cache = TTLCache(user_cache_config())

# Allow requests from the web client in dev & production
app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins_list,  # Use the constructed list
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Connects Routes From Session_Routes (check-in / out) to main app
app.include_router(session_router, prefix="/sessions", tags=["Sessions"])
app.include_router(school_router, prefix="/schools", tags=["Schools", "Geofence"])
app.include_router(user_router, prefix="/users", tags=["User"])
app.include_router(admin_school_router, prefix="/admin", tags=["Admin", "School Management"])
app.include_router(admin_session_router, prefix="/admin/sessions", tags=["Admin", "Session Management"])
app.include_router(admin_user_router, prefix="/admin", tags=["Admin", "User Management"])
app.include_router(admin_maintenance_router, prefix="/admin/maintenance", tags=["Admin", "Maintenance"])
app.include_router(health_router, prefix="/health", tags=["Health"])
