import logging
import secrets
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.openapi.docs import get_redoc_html, get_swagger_ui_html
from fastapi.openapi.utils import get_openapi
from fastapi.responses import JSONResponse
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from app.api.endpoints import gallery, health, nft
from app.core.config import Settings, settings
from app.core.dependencies import Services, build_services
from app.schemas.sign_request import ApiResponse

logger = logging.getLogger(__name__)

security = HTTPBasic()


def create_app(app_settings: Settings, services: Optional[Services] = None) -> FastAPI:
    logging.basicConfig(
        level=app_settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    services = services or build_services(app_settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if app_settings.PAYOUT_WORKER_ENABLED:
            services.dispatcher.start()
            logger.info("[payout] dispatcher started in-process")
        try:
            yield
        finally:
            if app_settings.PAYOUT_WORKER_ENABLED:
                await services.dispatcher.stop()
                logger.info("[payout] dispatcher stopped")

    app = FastAPI(
        title=app_settings.PROJECT_NAME,
        version=app_settings.VERSION,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
        lifespan=lifespan,
    )
    app.state.services = services

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins="*",
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RequestValidationError)
    async def invalid_request_handler(request: Request, exc: RequestValidationError):
        logger.info("invalid request on %s: %s", request.url.path, exc.errors())
        return JSONResponse(status_code=status.HTTP_200_OK, content=ApiResponse.invalid_request().model_dump())

    def doc_auth(credentials: HTTPBasicCredentials = Depends(security)):
        correct_password = secrets.compare_digest(credentials.password, app_settings.DOC_PASSWORD)
        if not app_settings.DOC_PASSWORD or not correct_password:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Incorrect password",
                headers={"WWW-Authenticate": "Basic"},
            )
        return credentials.username

    @app.get("/docs", include_in_schema=False)
    async def get_swagger_documentation(username: str = Depends(doc_auth)):
        return get_swagger_ui_html(openapi_url="/openapi.json", title="docs")

    @app.get("/redoc", include_in_schema=False)
    async def get_redoc_documentation(username: str = Depends(doc_auth)):
        return get_redoc_html(openapi_url="/openapi.json", title="docs")

    @app.get("/openapi.json", include_in_schema=False)
    async def openapi(username: str = Depends(doc_auth)):
        return get_openapi(title=app.title, version=app.version, routes=app.routes)

    app.include_router(health.router)
    app.include_router(nft.router, prefix="/nft")
    app.include_router(gallery.router, prefix="/gallery")
    return app


app = create_app(settings)


if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=settings.HOST,
        port=settings.PORT,
        ssl_keyfile=settings.SSL_KEY or None,
        ssl_certfile=settings.SSL_CERT or None,
        reload=settings.DEBUG,
    )
