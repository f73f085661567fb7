from __future__ import annotations

import json

import typer

from .client import ClusterClient, DEFAULT_AUTHTYPE
from .utils import secret_from_env

app = typer.Typer(help="ppstats_client operational CLI")

# ---------------------------
# Common options
# ---------------------------


def hostname_opt() -> str:
    return typer.Option(..., "--hostname", envvar="PPSTATS_HOSTNAME", help="Cluster hostname")


def username_opt() -> str:
    return typer.Option(..., "--username", envvar="PPSTATS_USERNAME", help="API user")


def password_opt() -> str:
    return typer.Option(
        ..., "--password", envvar="PPSTATS_PASSWORD", help="API password or $env:NAME"
    )


def port_opt() -> int:
    return typer.Option(8080, "--port", help="API port")


def authtype_opt() -> str:
    return typer.Option(DEFAULT_AUTHTYPE, "--auth-type", help="session or basic-auth")


def verify_opt() -> bool:
    return typer.Option(False, "--verify-ssl/--no-verify-ssl", help="Verify the TLS certificate")


def _client(hostname, username, password, port, auth_type, verify_ssl) -> ClusterClient:
    # connects on __enter__
    return ClusterClient(
        {
            "hostname": hostname,
            "username": username,
            "password": secret_from_env(password),
            "port": port,
            "auth_type": auth_type,
            "verify_ssl": verify_ssl,
        }
    )


# ---------------------------
# Read commands
# ---------------------------


@app.command("config")
def config(
    hostname: str = hostname_opt(),
    username: str = username_opt(),
    password: str = password_opt(),
    port: int = port_opt(),
    auth_type: str = authtype_opt(),
    verify_ssl: bool = verify_opt(),
):
    with _client(hostname, username, password, port, auth_type, verify_ssl) as client:
        typer.echo(
            json.dumps({"cluster": client.cluster_name, "version": client.os_version}, indent=2)
        )


@app.command("datasets")
def datasets(
    hostname: str = hostname_opt(),
    username: str = username_opt(),
    password: str = password_opt(),
    port: int = port_opt(),
    auth_type: str = authtype_opt(),
    verify_ssl: bool = verify_opt(),
):
    with _client(hostname, username, password, port, auth_type, verify_ssl) as client:
        info = client.get_dataset_info()
        for ds in info.datasets:
            typer.echo(json.dumps(ds.model_dump()))


@app.command("workloads")
def workloads(
    dataset: str = typer.Argument(..., help="Dataset name"),
    hostname: str = hostname_opt(),
    username: str = username_opt(),
    password: str = password_opt(),
    port: int = port_opt(),
    auth_type: str = authtype_opt(),
    verify_ssl: bool = verify_opt(),
):
    with _client(hostname, username, password, port, auth_type, verify_ssl) as client:
        for w in client.get_workloads(dataset):
            typer.echo(json.dumps(w.model_dump(exclude_none=True)))


if __name__ == "__main__":
    app()
