"""Project operator CLI (projop).

Usage:
    projop validate project.yaml      # Load and validate a project file
    projop reconcile project.yaml     # Run one cycle against the remote API
    projop show-owned project.yaml    # Print the recorded ownership snapshot
    projop run                        # Run the controller loop
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path

import click
from azure.core.exceptions import AzureError

from .client import AtlasClient
from .config import DEFAULT_ATLAS_BASE_URL, DEFAULT_MAX_PARALLEL_CALLS
from .context import ReconcileContext
from .models import ManagedProject, ResourceRef
from .ownership import OwnershipSnapshotError, owned
from .reconciler import ProjectReconciler
from .secret_store import DirectorySecretStore, SecretError
from .security import InlineCredentialError, load_api_credential
from .spec_loader import SpecLoadError, load_project
from .store import ProjectStore, StateStoreError

# Deadline of a single CLI-driven cycle (seconds)
CLI_RECONCILE_TIMEOUT_SECONDS = 600

STATUS_SYMBOLS = {"True": "✓", "False": "✗"}


def _load(path: Path, state_dir: Path | None) -> ManagedProject:
    try:
        if state_dir is None:
            return load_project(path)
        return ProjectStore(path.parent, state_dir).load(path)
    except (SpecLoadError, StateStoreError) as e:
        raise click.ClickException(str(e)) from e


def _parse_secret_ref(value: str) -> ResourceRef:
    namespace, _, name = value.partition("/")
    if not namespace or not name:
        raise click.BadParameter(f"expected namespace/name, got {value!r}")
    return ResourceRef(name=name, namespace=namespace)


# =============================================================================
# Main CLI Group
# =============================================================================


@click.group()
@click.version_option(version="0.1.0", prog_name="projop")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
def cli(verbose: bool) -> None:
    """Project operator CLI (projop).

    Validate project files, run single reconciliation cycles and inspect
    ownership snapshots.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


@cli.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def validate(path: Path) -> None:
    """Load and validate a project file."""
    project = _load(path, None)
    spec = project.spec
    click.secho(f"✓ {project.metadata.key} is valid", fg="green")
    counts = {
        "privateEndpoints": len(spec.private_endpoints),
        "cloudProviderIntegrations": len(spec.cloud_provider_integrations),
        "networkPeers": len(spec.network_peers),
        "alertConfigurations": len(spec.alert_configurations),
        "integrations": len(spec.integrations),
        "customRoles": len(spec.custom_roles),
        "teams": len(spec.teams),
    }
    for name, count in counts.items():
        click.echo(f"  {name}: {count}")


@cli.command("show-owned")
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--state-dir",
    type=click.Path(file_okay=False, path_type=Path),
    envvar="STATE_DIR",
    default=None,
    help="Directory of persisted project state.",
)
def show_owned(path: Path, state_dir: Path | None) -> None:
    """Print the ownership snapshot recorded for a project."""
    project = _load(path, state_dir)
    try:
        spec = owned(project.metadata.annotations)
    except OwnershipSnapshotError as e:
        raise click.ClickException(str(e)) from e
    click.echo(
        json.dumps(
            spec.model_dump(mode="json", by_alias=True, exclude_defaults=True),
            indent=2,
            sort_keys=True,
        )
    )


@cli.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--base-url", envvar="ATLAS_BASE_URL", default=DEFAULT_ATLAS_BASE_URL)
@click.option(
    "--secrets-dir",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    envvar="SECRETS_DIR",
    required=True,
    help="Directory of mounted secrets.",
)
@click.option(
    "--credentials-secret",
    envvar="CREDENTIALS_SECRET",
    required=True,
    help="namespace/name of the API token secret.",
)
@click.option(
    "--state-dir",
    type=click.Path(file_okay=False, path_type=Path),
    envvar="STATE_DIR",
    required=True,
    help="Directory of persisted project state.",
)
@click.option("--max-parallel-calls", type=int, default=DEFAULT_MAX_PARALLEL_CALLS)
def reconcile(
    path: Path,
    base_url: str,
    secrets_dir: Path,
    credentials_secret: str,
    state_dir: Path,
    max_parallel_calls: int,
) -> None:
    """Run one reconciliation cycle of a project and persist its state."""
    store = ProjectStore(path.parent, state_dir)
    project = _load(path, state_dir)
    secret_store = DirectorySecretStore(secrets_dir)

    try:
        credential = load_api_credential(secret_store, _parse_secret_ref(credentials_secret))
    except (InlineCredentialError, SecretError) as e:
        raise click.ClickException(str(e)) from e

    async def cycle() -> None:
        with AtlasClient(base_url, credential) as client:
            reconciler = ProjectReconciler(
                client, secret_store, max_parallel_calls=max_parallel_calls
            )
            ctx = ReconcileContext.for_project(
                project, logging.getLogger("projop"), CLI_RECONCILE_TIMEOUT_SECONDS
            )
            result = await reconciler.reconcile(ctx)
        if result.error is not None:
            raise click.ClickException(f"reconciliation failed: {result.error}")
        click.echo(f"action: {result.decision.action.value}")
        if result.decision.delay_seconds is not None:
            click.echo(f"requeue after: {result.decision.delay_seconds:.0f}s")

    try:
        asyncio.run(cycle())
    except AzureError as e:
        raise click.ClickException(f"remote API error: {e}") from e
    finally:
        try:
            store.persist(project)
        except StateStoreError as e:
            click.secho(f"failed to persist state: {e}", fg="red", err=True)

    for condition in project.status.conditions:
        symbol = STATUS_SYMBOLS.get(condition.status.value, "?")
        line = f"{symbol} {condition.type.value}"
        if condition.message:
            line += f": {condition.message}"
        click.echo(line)


@cli.command()
def run() -> None:
    """Run the controller loop (configured from the environment)."""
    from .main import run as run_operator

    run_operator()


if __name__ == "__main__":
    cli()
