"""Image Manager Backend Application.

This is the main entry point for the image manager backend service.
Users upload images through it to a managed media store (Cloudinary) and
list the images stored under the shared namespace.

Modules:
    - images: upload and listing endpoints
    - media: external media store adapters
    - client: staged-upload and gallery client library
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from image_manager.config import get_config
from image_manager.images.router import router as images_router
from image_manager.images.service import ImageService, get_image_service, set_image_service
from image_manager.media.cloudinary import CloudinaryMediaStore

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

# httpx/httpcore log every TCP connection and TLS handshake to Cloudinary.
for _noisy in (
    "httpx",
    "httpcore",
    "httpcore.http11",
    "httpcore.connection",
):
    logging.getLogger(_noisy).setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup/shutdown events."""
    # Startup
    config = get_config()

    configured_level = getattr(logging, config.logging.level.upper(), None)
    if configured_level is not None:
        logging.getLogger().setLevel(configured_level)
        logger.info("Root logger level set to %s", config.logging.level.upper())

    # A service injected before startup (tests) wins over the configured one.
    if get_image_service() is None:
        credentials = config.secrets.cloudinary
        if credentials.configured:
            store = CloudinaryMediaStore(credentials, config.media_store)
            set_image_service(ImageService(store, config.media_store))
            logger.info(
                "Media store ready: cloudinary cloud=%s namespace=%s",
                credentials.cloud_name,
                config.media_store.namespace,
            )
        else:
            logger.warning(
                "Cloudinary credentials missing; upload and listing will answer 503"
            )

    yield  # Application runs here

    # Shutdown
    logger.info("Application shutdown complete")


def create_app() -> FastAPI:
    """Build the FastAPI application with CORS restricted to the configured origins."""
    config = get_config()

    application = FastAPI(
        title="Image Manager API",
        description="Upload images to a managed media store and list them back",
        version="0.1.0",
        lifespan=lifespan,
    )
    application.add_middleware(
        CORSMiddleware,
        allow_origins=config.server.allowed_origins,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )
    application.include_router(images_router)

    @application.get("/health")
    async def health() -> dict:
        """Health check endpoint.

        Returns:
            dict: Status object indicating the server is running.
        """
        return {"status": "ok"}

    return application


app = create_app()


def run() -> None:
    """Serve the application with uvicorn on the configured host and port."""
    import uvicorn

    config = get_config()
    logger.info(
        "Server running on http://%s:%s", config.server.host, config.server.port
    )
    uvicorn.run(app, host=config.server.host, port=config.server.port)


if __name__ == "__main__":
    run()
