import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

import database
from config import DEV_JWT_SECRET, Config
from routes.admin_routes import router as admin_router
from routes.auth_routes import router as auth_router
from routes.comment_routes import router as comment_router
from routes.festival_routes import router as festival_router
from routes.notification_routes import router as notification_router
from routes.topic_routes import router as topic_router
from routes.user_routes import router as user_router

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if Config.JWT_SECRET == DEV_JWT_SECRET:
        logger.warning("JWT_SECRET is not set; using the development secret")
    try:
        database.ensure_indexes()
    except Exception as e:
        logger.warning("Index creation failed: %s", e)
    yield


app = FastAPI(title="FestivalSphere API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[Config.FRONTEND_URL],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth_router)
app.include_router(user_router)
app.include_router(festival_router)
app.include_router(comment_router)
app.include_router(notification_router)
app.include_router(admin_router)
app.include_router(topic_router)

# Uploaded festival images and avatars
app.mount("/images", StaticFiles(directory=os.path.join(Config.PUBLIC_DIR, "images"), check_dir=False), name="images")
app.mount("/uploads", StaticFiles(directory=Config.UPLOAD_DIR, check_dir=False), name="uploads")


# --- Error handlers: every failure is answered as {"message": ...} ---

@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"message": exc.detail}, headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = [{"field": ".".join(str(p) for p in e["loc"]), "error": e["msg"]} for e in exc.errors()]
    return JSONResponse(status_code=400, content={"message": "Invalid request", "errors": errors})


@app.exception_handler(Exception)
async def internal_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"message": "Something went wrong!"})


# --- Routes ---
@app.get("/")
def root():
    return {"message": "Welcome to FestivalSphere API"}


@app.get("/api/health")
def health():
    return {"status": "ok", "database": database.db is not None}


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if Config.DATABASE_URL else "❌ Not Set",
        "database_name": Config.DATABASE_NAME,
        "connection_status": "Not Connected",
        "collections": []
    }
    if database.db is not None:
        response["database"] = "✅ Available"
        response["connection_status"] = "Connected"
        try:
            collections = database.db.list_collection_names()
            response["collections"] = collections[:10]
            response["database"] = "✅ Connected & Working"
        except Exception as e:
            response["database"] = f"⚠️ Connected but Error: {str(e)[:50]}"
    return response


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=Config.PORT)
