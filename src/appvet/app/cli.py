from __future__ import annotations

import json
from pathlib import Path

import typer

from .config import AppConfig
from .container import create_container
from .cli_formatter import format_package, format_threat_logs, format_verdict
from ..core.domain.exceptions import (
    AppVetError,
    ArchiveTooLarge,
    DuplicatePackage,
    InvalidArchive,
    InvalidInput,
    MaliciousContent,
    PackageNotFound,
    StorageFailure,
)

from dotenv import load_dotenv

load_dotenv()

app = typer.Typer(add_completion=False, no_args_is_help=True)

# Exit codes
EXIT_REJECTED = 1
EXIT_INVALID = 2
EXIT_STORAGE = 3


def _fail(message: str, code: int) -> typer.Exit:
    typer.echo(f"Error: {message}", err=True)
    return typer.Exit(code=code)


def _exit_for(exc: AppVetError) -> typer.Exit:
    if isinstance(exc, DuplicatePackage):
        return _fail(f"{exc} (existing id {exc.existing_id})", EXIT_REJECTED)
    if isinstance(exc, (MaliciousContent, PackageNotFound)):
        return _fail(str(exc), EXIT_REJECTED)
    if isinstance(exc, (InvalidInput, InvalidArchive, ArchiveTooLarge)):
        return _fail(str(exc), EXIT_INVALID)
    if isinstance(exc, StorageFailure):
        return _fail(str(exc), EXIT_STORAGE)
    return _fail(str(exc), EXIT_REJECTED)


@app.command()
def ingest(
    path: Path = typer.Argument(..., help="Package archive (zip/APK)"),
    manifest: Path = typer.Option(..., "--manifest", "-m", help="Manifest JSON file"),
    wait: bool = typer.Option(False, "--wait", "-w", help="Scan before returning"),
    json_output: bool = typer.Option(False, "--json", help="Output result as JSON"),
):
    """Ingest a package and queue it for scanning.

    Without --wait the package stays at 'uploaded' until a running
    'appvet serve' picks it up.
    """
    if not path.is_file():
        raise _fail(f"Package file not found: {path}", EXIT_INVALID)
    if not manifest.is_file():
        raise _fail(f"Manifest file not found: {manifest}", EXIT_INVALID)

    config = AppConfig()
    container = create_container(config, scan_mode="inline" if wait else "deferred")

    try:
        uc = container.ingest_uc()
        package = uc.execute(data=path.read_bytes(), manifest=manifest.read_text(encoding="utf-8"))

        if wait:
            # Re-read: the inline scan has written the verdict by now
            package = container.show_uc().execute(package_id=package.id)

        if json_output:
            body = package.public_view(config.api.public_base_url)
            if wait:
                body["verified"] = package.verified
                body["scanResults"] = package.scan_results
            typer.echo(json.dumps(body, ensure_ascii=False, indent=2))
        else:
            typer.echo(f"Ingested {package.manifest.name} {package.manifest.version} as {package.id}")
            typer.echo(f"Status: {package.status.value}")
            if wait:
                typer.echo(format_package(package))
    except AppVetError as e:
        raise _exit_for(e)
    finally:
        # Always shutdown resources to close file handles
        container.shutdown_resources()


@app.command()
def scan(
    package_id: str = typer.Argument(..., help="Package id"),
    json_output: bool = typer.Option(False, "--json", help="Output result as JSON"),
):
    """Run a full scan of a stored package now and record the verdict."""
    container = create_container(AppConfig(), scan_mode="deferred")

    try:
        verdict = container.scan_uc().execute(package_id=package_id)
        if json_output:
            typer.echo(json.dumps({"packageId": package_id, **verdict.to_dict()}, ensure_ascii=False, indent=2))
        else:
            typer.echo(format_verdict(package_id, verdict))
    except AppVetError as e:
        raise _exit_for(e)
    finally:
        container.shutdown_resources()


@app.command()
def show(
    package_id: str = typer.Argument(..., help="Package id"),
    json_output: bool = typer.Option(False, "--json", help="Output result as JSON"),
):
    """Show a package's metadata and trust state."""
    container = create_container(AppConfig(), scan_mode="deferred")

    try:
        package = container.show_uc().execute(package_id=package_id)
        if json_output:
            typer.echo(json.dumps(package.to_dict(), ensure_ascii=False, indent=2))
        else:
            typer.echo(format_package(package))
    except AppVetError as e:
        raise _exit_for(e)
    finally:
        container.shutdown_resources()


@app.command()
def threats(
    package_id: str = typer.Argument(None, help="Optional package id. If omitted, lists every threat log entry."),
    json_output: bool = typer.Option(False, "--json", help="Output result as JSON"),
):
    """List threat log entries."""
    container = create_container(AppConfig(), scan_mode="deferred")

    try:
        entries = container.threats_uc().execute(package_id=package_id)
        if json_output:
            items = [e.to_dict() for e in entries]
            typer.echo(json.dumps({"count": len(items), "threats": items}, ensure_ascii=False, indent=2))
        else:
            typer.echo(format_threat_logs(entries))
    finally:
        container.shutdown_resources()


@app.command()
def serve(
    host: str | None = typer.Option(None, "--host", help="Bind host (default from config)"),
    port: int | None = typer.Option(None, "--port", "-p", help="Bind port (default from config)"),
):
    """Run the HTTP intake API with the background scan queue."""
    import uvicorn

    from .api import create_app

    config = AppConfig()
    container = create_container(config, scan_mode="threaded")
    bind_host = host or config.api.host
    bind_port = port or config.api.port

    typer.echo(f"Serving appvet on http://{bind_host}:{bind_port}")
    typer.echo(f"Log file: {config.directories.logs_dir / 'appvet.jsonl'}")

    try:
        uvicorn.run(create_app(container), host=bind_host, port=bind_port)
    finally:
        container.shutdown_resources()


if __name__ == "__main__":
    app()
