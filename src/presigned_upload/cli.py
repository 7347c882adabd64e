"""CLI entry point for presigned uploads.

Provides commands:
  - upload: Upload local files through presigned descriptors from an init endpoint
  - config: Manage the init endpoint token stored in the system keyring
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Annotated, Optional

import typer
from keyring.errors import KeyringError
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from presigned_upload.config import (
    SERVICE_NAME,
    TOKEN_ENV_VAR,
    bearer_headers,
    config_from_dict,
    delete_init_token,
    init_token_source,
    load_config,
    mask_token,
    optional_init_token,
    store_init_token,
)
from presigned_upload.models import (
    BackoffStrategy,
    FileRef,
    TransportKind,
    UploaderConfig,
    UploadManyResult,
)

logger = logging.getLogger(__name__)

app = typer.Typer(
    help="Upload files straight to an object store via presigned URLs",
    rich_markup_mode="rich",
)
console = Console()

config_app = typer.Typer(help="Manage configuration (init endpoint token)")
app.add_typer(config_app, name="config")


def _enable_debug_log() -> Path:
    debug_dir = Path.home() / ".presigned-upload"
    debug_dir.mkdir(exist_ok=True)
    log_path = debug_dir / "debug.log"
    fh = logging.FileHandler(log_path)
    fh.setLevel(logging.DEBUG)
    fh.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    pkg_logger = logging.getLogger("presigned_upload")
    pkg_logger.setLevel(logging.DEBUG)
    pkg_logger.addHandler(fh)
    return log_path


def _build_config(
    config_path: Path | None,
    init_url: str | None,
    method: str | None,
    transport: TransportKind | None,
    retries: int | None,
    backoff: BackoffStrategy | None,
    min_delay_ms: int | None,
    max_delay_ms: int | None,
    reinit: bool | None,
) -> UploaderConfig:
    overrides = {
        "init_url": init_url,
        "init_method": method,
        "transport": transport.value if transport else None,
        "retries": retries,
        "backoff": backoff.value if backoff else None,
        "min_delay_ms": min_delay_ms,
        "max_delay_ms": max_delay_ms,
        "reinit_on_auth_error": reinit,
    }
    if config_path is not None:
        config = load_config(config_path, **overrides)
    else:
        config = config_from_dict({}, **overrides)

    token_headers = bearer_headers(optional_init_token())
    if token_headers:
        static = config.init.resolve_headers()
        config.init.headers = {**token_headers, **static}
    return config


@app.command()
def upload(
    files: Annotated[
        list[Path],
        typer.Argument(help="Files to upload", exists=True, dir_okay=False, readable=True),
    ],
    init_url: Annotated[
        Optional[str],
        typer.Option("--init-url", "-u", help="Backend endpoint that mints descriptors"),
    ] = None,
    config_path: Annotated[
        Optional[Path],
        typer.Option("--config", "-c", help="JSON configuration file", exists=True),
    ] = None,
    method: Annotated[
        Optional[str],
        typer.Option("--method", help="Init request method (POST or GET)"),
    ] = None,
    concurrency: Annotated[
        int,
        typer.Option("--concurrency", "-n", help="Max concurrent uploads"),
    ] = 3,
    transport: Annotated[
        Optional[TransportKind],
        typer.Option("--transport", "-t", help="streaming (byte progress) or plain"),
    ] = None,
    retries: Annotated[
        Optional[int],
        typer.Option("--retries", "-r", help="Extra attempts per file"),
    ] = None,
    backoff: Annotated[
        Optional[BackoffStrategy],
        typer.Option("--backoff", help="Delay growth between attempts"),
    ] = None,
    min_delay_ms: Annotated[
        Optional[int],
        typer.Option("--min-delay-ms", help="Base retry delay in milliseconds"),
    ] = None,
    max_delay_ms: Annotated[
        Optional[int],
        typer.Option("--max-delay-ms", help="Retry delay cap in milliseconds"),
    ] = None,
    reinit: Annotated[
        Optional[bool],
        typer.Option("--reinit/--no-reinit", help="Re-initialize expired descriptors"),
    ] = None,
    debug: Annotated[
        bool,
        typer.Option("--debug", help="Write a debug log to ~/.presigned-upload/debug.log"),
    ] = False,
) -> None:
    """Upload files to the object store with per-file and overall progress.

    The init endpoint token is read from the system keyring
    (service: presigned-upload) or the PRESIGNED_UPLOAD_TOKEN env var.
    """
    if debug:
        log_path = _enable_debug_log()
        console.print(f"[dim]Debug log: {log_path}[/dim]")

    try:
        config = _build_config(
            config_path,
            init_url,
            method,
            transport,
            retries,
            backoff,
            min_delay_ms,
            max_delay_ms,
            reinit,
        )
    except ValueError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1)

    from presigned_upload.upload.progress import UploadProgressTracker
    from presigned_upload.uploader import PresignedUploader

    refs = [FileRef.from_path(p) for p in files]
    console.print(
        Panel(
            f"Uploading [bold]{len(refs)}[/bold] file(s) via "
            f"[bold]{config.init.url}[/bold]\n"
            f"Transport: {config.transport.value} | Concurrency: {concurrency} | "
            f"Retries: {config.retry.retries} ({config.retry.backoff.value})",
            title="Presigned Upload",
        )
    )

    async def _run() -> UploadManyResult:
        async with PresignedUploader(config) as uploader:
            with UploadProgressTracker(refs) as tracker:
                outcome = await uploader.upload_many(
                    refs,
                    concurrency=concurrency,
                    on_each_progress=tracker.file_progress,
                    on_overall_progress=tracker.overall_progress,
                )
                for settled in outcome.failed:
                    tracker.file_failed(settled.index, settled.error.kind.value)
                return outcome

    try:
        outcome = asyncio.run(_run())
    except ValueError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1)

    summary_table = Table(title="Upload Summary")
    summary_table.add_column("File", style="cyan", no_wrap=True)
    summary_table.add_column("Status")
    summary_table.add_column("Key / Error")
    summary_table.add_column("ETag", style="dim")

    for settled in outcome.results:
        if settled.ok:
            summary_table.add_row(
                settled.file.name,
                "[green]uploaded[/green]",
                settled.result.key,
                settled.result.etag or "",
            )
        else:
            error = settled.error
            status = f" {error.status}" if error.status else ""
            summary_table.add_row(
                settled.file.name,
                "[red]failed[/red]",
                f"{error.kind.value}{status} ({error.phase.value}): {error.message}",
                "",
            )

    console.print(Panel(summary_table, title="Upload Complete"))
    if outcome.failed:
        raise typer.Exit(code=1)


def _keyring_failure(action: str, exc: Exception) -> typer.Exit:
    console.print(f"[red]Keyring error while {action}:[/red] {exc}")
    return typer.Exit(code=1)


@config_app.command("set-token")
def set_token(
    token: Annotated[
        Optional[str],
        typer.Argument(help="Bearer token for the init endpoint (prompted when omitted)"),
    ] = None,
) -> None:
    """Save the init endpoint bearer token to the system keyring."""
    if token is None:
        token = typer.prompt("Init endpoint token", hide_input=True)

    try:
        saved = store_init_token(token)
    except ValueError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1)
    except KeyringError as e:
        raise _keyring_failure("saving the token", e)

    console.print(f"Saved {mask_token(saved)} under keyring service [bold]{SERVICE_NAME}[/bold]")


@config_app.command("get-token")
def show_token() -> None:
    """Show which token uploads will send, masked, and where it comes from."""
    token, source = init_token_source()
    if token is None:
        console.print(
            "[yellow]No init endpoint token configured.[/yellow] Uploads will be sent "
            "without an Authorization header.\n"
            f"Save one with [bold]presigned-upload config set-token[/bold] or set {TOKEN_ENV_VAR}."
        )
        raise typer.Exit(code=1)

    where = f"keyring service {SERVICE_NAME}" if source == "keyring" else f"${TOKEN_ENV_VAR}"
    console.print(f"{mask_token(token)} [dim](from {where})[/dim]")


@config_app.command("remove-token")
def remove_token() -> None:
    """Forget the token saved in the system keyring."""
    try:
        removed = delete_init_token()
    except KeyringError as e:
        raise _keyring_failure("removing the token", e)

    if removed:
        console.print(f"Removed the token from keyring service [bold]{SERVICE_NAME}[/bold]")
    else:
        console.print("[dim]No token saved in the keyring; nothing to remove.[/dim]")


if __name__ == "__main__":
    app()
