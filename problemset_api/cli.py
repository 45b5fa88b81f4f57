"""
CLI entry point for Problemset API.
"""

import asyncio
from pathlib import Path
from typing import Optional

import structlog
import typer
import uvicorn

from .auth import sha512_hex
from .config import Settings, get_settings
from .kv import create_kv
from .main import app as api_app
from .store import ProblemStore

# Configure structlog
structlog.configure(
    processors=[
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.dev.ConsoleRenderer(),
    ]
)

app = typer.Typer(
    name="problemset",
    help="Problemset API server and admin tools",
    add_completion=False,
)


def _load_settings(config_path: Optional[Path]) -> Settings:
    """Load settings, optionally from a specific .env file."""
    return Settings(_env_file=config_path) if config_path else Settings()


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address (default: HOST)"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Bind port (default: PORT)"),
    config_path: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to .env configuration file",
    ),
) -> None:
    """
    Run the HTTP API.
    """
    settings = _load_settings(config_path)
    if config_path:
        # Handlers and startup resolve settings through this override
        api_app.dependency_overrides[get_settings] = lambda: settings

    uvicorn.run(
        api_app,
        host=host or settings.host,
        port=port or settings.port,
    )


@app.command()
def digest(
    secret: str = typer.Argument(..., help="Write password to hash"),
) -> None:
    """
    Print the SHA-512 digest of a password, for use as PASS_KEY.
    """
    typer.echo(sha512_hex(secret))


@app.command("list")
def list_problems(
    config_path: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to .env configuration file",
    ),
) -> None:
    """
    Print every stored problem id from the configured backend.
    """
    settings = _load_settings(config_path)

    async def _list() -> list[str]:
        store = ProblemStore(create_kv(settings))
        try:
            return await store.list_ids()
        finally:
            await store.close()

    ids = asyncio.run(_list())
    for problem_id in ids:
        typer.echo(problem_id)
    typer.echo(f"{len(ids)} problems ({settings.store_backend})")


def main() -> None:
    """Main entry point."""
    app()


if __name__ == "__main__":
    main()
