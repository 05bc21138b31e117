from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from ecoquest.config import get_settings
from ecoquest.routes import auth, callback, profile
import logging

logging.basicConfig(level=logging.INFO)

app = FastAPI(
    redirect_slashes=False,
    title="EcoQuest API",
    description="Auth, role routing and profile screens for the EcoQuest application",
    version="1.0.0",
    openapi_tags=[
        {
            "name": "Auth",
            "description": "Student and admin login screens",
        },
        {
            "name": "Callback",
            "description": "Email confirmation and OAuth redirects",
        },
        {
            "name": "Profile",
            "description": "Profile screen, avatar upload and logout",
        },
    ],
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=[get_settings().frontend_url],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(auth.router, tags=["Auth"])
app.include_router(callback.router, prefix="/auth", tags=["Callback"])
app.include_router(profile.router, tags=["Profile"])
