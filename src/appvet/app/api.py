"""HTTP intake API.

Thin FastAPI layer over the container's use cases. Domain exceptions are
mapped to status codes by exception handlers, never inside the routes.
"""

from __future__ import annotations

from typing import Optional

from fastapi import FastAPI, File, Form, Request, Response, UploadFile, status
from fastapi.responses import JSONResponse

from .container import Container
from ..core.domain.exceptions import (
    ArchiveTooLarge,
    DuplicatePackage,
    InvalidArchive,
    InvalidInput,
    MaliciousContent,
    PackageNotFound,
    StorageFailure,
)
from ..core.services.intake_service import ICON_NAMESPACE, SCREENSHOT_NAMESPACE


_PUBLIC_NAMESPACES = (ICON_NAMESPACE, SCREENSHOT_NAMESPACE)


def _media_type(data: bytes) -> str:
    if data.startswith(b"\x89PNG\r\n\x1a\n"):
        return "image/png"
    if data.startswith(b"\xff\xd8\xff"):
        return "image/jpeg"
    return "application/octet-stream"


def create_app(container: Container) -> FastAPI:
    """Build the API around an initialized container.

    The caller owns the container lifecycle (``init_resources`` /
    ``shutdown_resources``).
    """
    app = FastAPI(title="appvet", description="Package intake and malware vetting")
    app.state.container = container
    public_base_url = container.config.api.public_base_url()

    @app.exception_handler(DuplicatePackage)
    async def duplicate_handler(request: Request, exc: DuplicatePackage):
        return JSONResponse(
            status_code=status.HTTP_409_CONFLICT,
            content={
                "error": "Package already exists",
                "contentHash": exc.content_hash,
                "existingId": exc.existing_id,
            },
        )

    @app.exception_handler(MaliciousContent)
    async def malicious_handler(request: Request, exc: MaliciousContent):
        return JSONResponse(
            status_code=422,
            content={"error": "Malicious files detected", "files": exc.files},
        )

    @app.exception_handler(ArchiveTooLarge)
    async def too_large_handler(request: Request, exc: ArchiveTooLarge):
        return JSONResponse(
            status_code=413,
            content={"error": str(exc)},
        )

    @app.exception_handler(InvalidInput)
    @app.exception_handler(InvalidArchive)
    async def invalid_handler(request: Request, exc: Exception):
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": str(exc)})

    @app.exception_handler(PackageNotFound)
    async def not_found_handler(request: Request, exc: PackageNotFound):
        return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"error": str(exc)})

    @app.exception_handler(StorageFailure)
    async def storage_handler(request: Request, exc: StorageFailure):
        container.logger().error("api_storage_failure", path=request.url.path, error=str(exc))
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"error": "Storage unavailable"},
        )

    @app.get("/health")
    def health():
        return {"status": "ok"}

    @app.post("/packages", status_code=status.HTTP_201_CREATED)
    def upload_package(
        package: Optional[UploadFile] = File(None),
        manifest: Optional[str] = Form(None),
    ):
        if package is None:
            raise InvalidInput("Package file required")
        data = package.file.read()
        created = container.ingest_uc().execute(data=data, manifest=manifest)
        return created.public_view(public_base_url)

    @app.get("/packages/{package_id}")
    def get_package(package_id: str):
        return container.show_uc().execute(package_id=package_id).to_dict()

    @app.post("/packages/{package_id}/scan", status_code=status.HTTP_202_ACCEPTED)
    def rescan_package(package_id: str):
        request = container.rescan_uc().execute(package_id=package_id)
        return {"packageId": request.package_id, "queued": True}

    @app.get("/packages/{package_id}/threats")
    def package_threats(package_id: str):
        container.show_uc().execute(package_id=package_id)
        entries = container.threats_uc().execute(package_id=package_id)
        return {"count": len(entries), "threats": [e.to_dict() for e in entries]}

    @app.get("/blobs/{namespace}/{digest}")
    def get_blob(namespace: str, digest: str):
        if namespace not in _PUBLIC_NAMESPACES:
            return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"error": "Not found"})
        content_store = container.content_store()
        key = f"{namespace}/{digest}"
        try:
            if not content_store.exists(key):
                return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"error": "Not found"})
        except StorageFailure:
            # Malformed key
            return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"error": "Not found"})
        data = content_store.get(key)
        return Response(content=data, media_type=_media_type(data))

    return app
