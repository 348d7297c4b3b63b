"""Operator CLI: publish deploy and unlock signals, inspect root workflows."""

import json as json_lib
from pathlib import Path
import uuid

import redis
from rich.console import Console
from rich.table import Table
import typer
import yaml

from tfdeploy.config import get_settings
from tfdeploy.contracts.signals import (
    NewRevisionRequest,
    NewRevisionSignal,
    UnlockRequest,
    UnlockSignal,
    root_key,
)
from tfdeploy.models import Repo, Root, TriggerInfo, TriggerType, User
from tfdeploy.workflow.state import WORKFLOW_KEY_PREFIX, WorkflowSnapshot

app = typer.Typer(
    name="tfdeploy",
    help="Publish signals to Terraform root workflows",
    add_completion=False,
)
console = Console()


def _get_redis():
    return redis.from_url(get_settings().redis_url, decode_responses=True)


def _publish(message) -> str:
    r = _get_redis()
    return r.xadd(get_settings().signal_stream, {"data": message.model_dump_json()})


def _load_root(path: Path, trigger: TriggerInfo) -> Root:
    with open(path) as f:
        raw = yaml.safe_load(f) or {}
    return Root.model_validate({**raw, "trigger_info": trigger.model_dump()})


@app.command()
def deploy(
    owner: str,
    repo: str,
    revision: str,
    root_config: Path = typer.Option(..., "--root", help="YAML file describing the root"),
    branch: str = typer.Option("main", help="Branch the revision belongs to"),
    default_branch: str = typer.Option("main", help="Default branch of the repository"),
    url: str = typer.Option("", help="Clone URL, defaults to the GitHub https URL"),
    installation_id: int = typer.Option(0, help="GitHub App installation id"),
    user: str = typer.Option("", help="User requesting the deploy"),
    manual: bool = typer.Option(False, "--manual", help="Manual deploy, locks the queue for merges"),
    force: bool = typer.Option(False, "--force", help="Skip overrideable requirements"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """Request a deployment of a root at a revision."""
    try:
        trigger = TriggerInfo(type=TriggerType.MANUAL if manual else TriggerType.MERGE, force=force)
        root = _load_root(root_config, trigger)
        target = Repo(
            owner=owner,
            name=repo,
            url=url or f"https://github.com/{owner}/{repo}.git",
            default_branch=default_branch,
            installation_token=installation_id,
        )
        request = NewRevisionRequest(
            request_id=str(uuid.uuid4()),
            revision=revision,
            branch=branch,
            repo=target,
            root=root,
            user=User(username=user),
        )
        message_id = _publish(NewRevisionSignal(root_key=root_key(target, root.name), payload=request))
    except Exception as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1) from e

    if json_output:
        typer.echo(json_lib.dumps({"message_id": message_id, "request_id": request.request_id}, indent=2))
        return

    console.print("[green]✓[/green] Deploy requested")
    console.print(f"Root: [cyan]{root.name}[/cyan] Revision: [cyan]{revision}[/cyan]")


@app.command()
def unlock(
    owner: str,
    repo: str,
    root: str,
    user: str = typer.Option("", help="User unlocking the root"),
):
    """Unlock a root held by a manual deploy or a diverged revision."""
    try:
        key = root_key(Repo(owner=owner, name=repo), root)
        _publish(UnlockSignal(root_key=key, payload=UnlockRequest(user=User(username=user))))
    except Exception as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1) from e

    console.print(f"[green]✓[/green] Unlock sent to [cyan]{key}[/cyan]")


@app.command()
def status(owner: str, repo: str, root: str):
    """Show the persisted queue of a root workflow."""
    key = root_key(Repo(owner=owner, name=repo), root)
    raw = _get_redis().get(f"{WORKFLOW_KEY_PREFIX}:{key}")
    if raw is None:
        console.print(f"[yellow]No active workflow for[/yellow] {key}")
        return

    snapshot = WorkflowSnapshot.model_validate_json(raw)
    lock = snapshot.queue.lock
    console.print(f"Lock: [cyan]{lock.status.value}[/cyan] {lock.revision}")
    if snapshot.current:
        console.print(f"Current: [cyan]{snapshot.current.deployment.revision}[/cyan] ({snapshot.current.status.value})")
    if snapshot.latest:
        console.print(f"Latest: [cyan]{snapshot.latest.revision}[/cyan]")

    table = Table(title=f"Queue for {key}")
    table.add_column("Lane")
    table.add_column("Revision")
    table.add_column("Deployment ID")
    table.add_column("User")
    for lane, items in (("manual", snapshot.queue.high), ("merge", snapshot.queue.low)):
        for info in items:
            table.add_row(lane, info.revision, str(info.id), info.user.username)
    console.print(table)


if __name__ == "__main__":
    app()
