"""
branchdesk command line.

Usage:
    branchdesk preview roster.csv --dataset roster
    branchdesk upload roster.csv --tenant acme --dataset roster --branch north --user <uuid>
    branchdesk artifacts --tenant acme --dataset roster

Exit Codes:
    0 - Success
    1 - Intake or store failure
    2 - Required columns missing or no usable values (nothing persisted)
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path

import click

from .core_config import configure_logging, get_settings
from .errors import IntakeError, StructuralError
from .ingest.preview import FilePreview, preview_bytes
from .ingest.schemas import DatasetKind
from .storage.artifacts import list_artifacts
from .storage.audit import MonitoringSink
from .storage.pipeline import commit_upload
from .storage.stores import (
    AuthProvider,
    StaticAuthProvider,
    SupabaseAuthProvider,
    SupabaseObjectStore,
    SupabaseRelationalStore,
)
from .storage.uploader import ContentAddressedUploader
from .supabase_client import create_supabase_client

logger = logging.getLogger(__name__)

DATASET_CHOICE = click.Choice([kind.value for kind in DatasetKind])


def _echo_preview(preview: FilePreview) -> None:
    parsed = preview.parse_result
    click.echo(f"Dataset:  {preview.dataset_kind.value}" + (" (matrix)" if preview.is_matrix else ""))
    click.echo(f"Rows:     {parsed.row_count}")
    click.echo(f"Columns:  {', '.join(parsed.headers)}")
    if parsed.unmapped:
        click.echo(f"Unmapped: {', '.join(parsed.unmapped)}")
    if parsed.missing:
        click.echo(f"Missing:  {', '.join(parsed.missing)}", err=True)
    for error in parsed.errors:
        click.echo(f"  ! {error}")
    if preview.totals:
        click.echo("Totals:")
        click.echo(json.dumps(preview.totals, indent=2, default=str))


@click.group()
def cli() -> None:
    """Heuristic CSV intake for branch back-office exports."""
    configure_logging()


@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--dataset", "dataset", required=True, type=DATASET_CHOICE, help="Dataset kind")
def preview(file: Path, dataset: str) -> None:
    """Parse FILE and show what would be saved."""
    try:
        result = preview_bytes(file.read_bytes(), dataset)
    except IntakeError as exc:
        click.echo(f"Error [{exc.error_code}]: {exc.message}", err=True)
        raise SystemExit(1)

    _echo_preview(result)
    if not result.can_persist:
        raise SystemExit(2)


@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--tenant", required=True, help="Tenant identifier")
@click.option("--dataset", "dataset", required=True, type=DATASET_CHOICE, help="Dataset kind")
@click.option("--branch", default=None, help="Branch identifier (defaults to the tenant)")
@click.option("--user", "user_id", default=None, help="Uploader id for service-account runs")
@click.option(
    "--access-token",
    envvar="BRANCHDESK_ACCESS_TOKEN",
    default=None,
    help="User access token resolved through Supabase Auth",
)
@click.option("--timeout", type=float, default=None, help="Per-call deadline in seconds")
def upload(
    file: Path,
    tenant: str,
    dataset: str,
    branch: str | None,
    user_id: str | None,
    access_token: str | None,
    timeout: float | None,
) -> None:
    """Save FILE: domain rows, raw artifact and manifest."""
    content = file.read_bytes()
    try:
        result_preview = preview_bytes(content, dataset)
    except IntakeError as exc:
        click.echo(f"Error [{exc.error_code}]: {exc.message}", err=True)
        raise SystemExit(1)

    settings = get_settings()
    client = create_supabase_client(settings)
    relational = SupabaseRelationalStore(client)
    auth: AuthProvider
    if user_id:
        auth = StaticAuthProvider(user_id)
    else:
        auth = SupabaseAuthProvider(client, access_token)
    sink = MonitoringSink.from_settings()
    uploader = ContentAddressedUploader(
        relational,
        SupabaseObjectStore(client, settings.uploads_bucket),
        auth,
        io_timeout=settings.upload_io_timeout,
        sink=sink,
    )

    try:
        result = asyncio.run(
            commit_upload(
                uploader,
                relational,
                result_preview,
                content,
                tenant,
                file.name,
                branch_id=branch,
                sink=sink,
                timeout=timeout,
            )
        )
    except StructuralError as exc:
        click.echo(f"Error [{exc.error_code}]: {exc.message}", err=True)
        raise SystemExit(2)
    except IntakeError as exc:
        click.echo(f"Error [{exc.error_code}]: {exc.message}", err=True)
        raise SystemExit(1)

    click.echo(f"Artifact: {result.artifact_path}")
    click.echo(f"Manifest: {result.manifest_path}")
    click.echo(f"SHA-256:  {result.content_hash}")
    click.echo(f"Rows:     {result.rows_upserted}")
    if result.duplicate_of:
        click.echo(f"Note: identical file already uploaded as {result.duplicate_of}")


@cli.command()
@click.option("--tenant", required=True, help="Tenant identifier")
@click.option("--dataset", "dataset", required=True, type=DATASET_CHOICE, help="Dataset kind")
def artifacts(tenant: str, dataset: str) -> None:
    """List uploaded artifacts, newest first."""
    settings = get_settings()
    client = create_supabase_client(settings)
    store = SupabaseObjectStore(client, settings.uploads_bucket)
    items = list_artifacts(store, tenant, dataset)
    if not items:
        click.echo("No artifacts found")
        return
    for item in items:
        click.echo(f"{item.path}\t{item.size}\t{item.updated_at}")


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
