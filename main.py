import logging
import os

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api import auth, categories, products, reviews, subcategories, uploads
from config import get_settings
from deps import default_store
from errors import CatalogError

settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Catalog API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)


@app.middleware("http")
async def log_blocked_origins(request: Request, call_next):
    origin = request.headers.get("origin")
    if origin and origin.rstrip("/") not in settings.allowed_origins:
        logger.warning("Blocked CORS request from: %s", origin)
    return await call_next(request)


@app.exception_handler(CatalogError)
async def catalog_error_handler(request: Request, exc: CatalogError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


app.include_router(auth.router, tags=["auth"], prefix="/api/auth")
app.include_router(categories.router, tags=["categories"], prefix="/api/categories")
app.include_router(subcategories.router, tags=["subcategories"], prefix="/api/subcategories")
app.include_router(products.router, tags=["products"], prefix="/api/products")
app.include_router(reviews.router, tags=["reviews"], prefix="/api/reviews")
app.include_router(uploads.router, tags=["uploads"], prefix="/api/uploads")


@app.get("/")
def read_root():
    return {"message": "Catalog backend is running"}


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": None,
        "database_name": None,
        "connection_status": "Not Connected",
        "collections": []
    }
    try:
        store = default_store()
        if store is not None:
            response["database"] = "✅ Available"
            response["database_url"] = "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set"
            response["database_name"] = "✅ Set" if os.getenv("DATABASE_NAME") else "❌ Not Set"
            response["connection_status"] = "Connected"
            try:
                response["collections"] = store.collection_names()[:10]
                response["database"] = "✅ Connected & Working"
            except CatalogError as e:
                response["database"] = f"⚠️ Connected but Error: {e.message[:50]}"
    except CatalogError as e:
        response["database"] = f"❌ Error: {e.message[:50]}"
    return response


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=settings.port)
