"""Command-line interface for Beltic credential and request signing.

Example:
    >>> # From terminal:
    >>> # beltic --version
    >>> # beltic keygen --alg EdDSA --out keys/agent.pem
    >>> # beltic sign --key keys/agent.pem --payload agent.json --kid agent-key-1
    >>> # beltic verify --key keys/agent.pub.pem --token agent.jwt
    >>> # beltic http-sign --method GET --url https://api.example/v1 \\
    >>> #     --key keys/agent.pem --key-directory https://agent.example/.well-known/http-message-signatures-directory
    >>> # beltic directory generate --public-key keys/agent.pub.pem --out directory.json
    >>> # beltic directory thumbprint --public-key keys/agent.pub.pem
    >>> # beltic schema validate agent.json
"""

import json
from pathlib import Path
from typing import Annotated, Any, NoReturn, Optional

import typer

from beltic import __version__
from beltic.config import BelticSettings
from beltic.credentials import (
    CredentialKind,
    SignOverrides,
    VerifyExpectations,
    detect_kind,
)
from beltic.credentials import sign as sign_credential
from beltic.credentials import verify as verify_credential
from beltic.crypto.algorithms import Algorithm
from beltic.crypto.keys import (
    generate_keypair,
    load_private_key_file,
    load_public_key_file,
    write_private_key,
    write_public_key,
)
from beltic.crypto.thumbprint import thumbprint
from beltic.discovery import build as build_directory
from beltic.discovery import sign_response
from beltic.errors import BelticError
from beltic.http_signatures import sign as sign_request
from beltic.observability import (
    bind_context,
    configure_logging,
    get_logger,
    sanitize_for_logging,
)
from beltic.schemas import SchemaId, SchemaValidator, export_all_schemas, list_schema_entries

logger = get_logger(__name__)

app = typer.Typer(help="Beltic credential and HTTP message signing CLI.")

directory_app = typer.Typer(help="HTTP message signatures key directories.")
app.add_typer(directory_app, name="directory")

schema_app = typer.Typer(help="Credential JSON schemas (validate, list, export).")
app.add_typer(schema_app, name="schema")

# Default directory for schema export
DEFAULT_SCHEMAS_DIR = Path("schemas")

OUTPUT_FORMATS = ("headers", "curl")


def _fail(exc: BelticError) -> NoReturn:
    logger.debug("beltic.cli.failed", **sanitize_for_logging(exc.to_dict()))
    typer.secho(f"Error: {exc.message}", fg=typer.colors.RED, err=True)
    raise typer.Exit(1) from exc


def _settings() -> BelticSettings:
    try:
        return BelticSettings.from_env()
    except BelticError as e:
        _fail(e)


def _parse_algorithm(value: Optional[str]) -> Optional[Algorithm]:
    if value is None:
        return None
    try:
        return Algorithm.from_label(value)
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc


def _parse_kind(value: Optional[str]) -> Optional[CredentialKind]:
    if value is None:
        return None
    try:
        return CredentialKind.parse(value)
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc


def _read_json(path: Path, what: str) -> Any:
    if not path.exists():
        raise typer.BadParameter(f"{what} file not found: {path}")
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise typer.BadParameter(f"Invalid JSON in {what.lower()}: {exc}") from exc


def _require_file(path: Path, what: str) -> None:
    if not path.exists():
        raise typer.BadParameter(f"{what} not found: {path}")


def _default_public_path(private_path: Path) -> Path:
    return private_path.with_name(f"{private_path.stem}.pub{private_path.suffix or '.pem'}")


def _version_callback(value: bool) -> None:
    """Print the version and exit when requested."""
    if value:
        typer.echo(__version__)
        raise typer.Exit()


VERSION_OPTION = typer.Option(
    False,
    "--version",
    help="Show Beltic version and exit.",
    callback=_version_callback,
    is_eager=True,
)


@app.callback()
def cli(ctx: typer.Context, version: bool = VERSION_OPTION) -> None:
    """Beltic CLI entrypoint."""
    configure_logging()
    bind_context(command=ctx.invoked_subcommand)


@app.command("keygen")
def keygen(
    out: Annotated[
        Path,
        typer.Option(..., "--out", "-o", help="Output path for the private key PEM file."),
    ],
    pub: Annotated[
        Optional[Path],
        typer.Option("--pub", help="Output path for the public key PEM (default: <out>.pub.pem)."),
    ] = None,
    alg: Annotated[
        Optional[str],
        typer.Option("--alg", help="EdDSA or ES256 (default: BELTIC_DEFAULT_ALG or EdDSA)."),
    ] = None,
    force: Annotated[
        bool, typer.Option("--force", help="Overwrite existing key files.")
    ] = False,
) -> None:
    """Write a new key pair: private key PKCS#8 PEM (mode 0600) and public key SPKI PEM."""
    algorithm = _parse_algorithm(alg) or _settings().default_algorithm
    if out.exists() and out.is_dir():
        raise typer.BadParameter(f"Output path is a directory: {out}")
    pub_path = pub or _default_public_path(out)
    for path in (out, pub_path):
        if path.exists() and not force:
            raise typer.BadParameter(f"File exists (use --force to overwrite): {path}")

    signing_key, verification_key = generate_keypair(algorithm)
    with signing_key:
        write_private_key(out, signing_key)
    write_public_key(pub_path, verification_key)
    typer.echo(f"Private key written to {out}")
    typer.echo(f"Public key written to {pub_path}")
    typer.echo(f"Algorithm: {algorithm.value} ({algorithm.describe_key()})")
    typer.echo(f"Key ID (JWK thumbprint): {thumbprint(verification_key)}")


@app.command("sign")
def sign(
    key: Annotated[
        Path, typer.Option(..., "--key", "-k", help="Path to the private key PEM file.")
    ],
    payload: Annotated[
        Path, typer.Option(..., "--payload", "-p", help="Path to the credential JSON file.")
    ],
    kid: Annotated[
        str, typer.Option(..., "--kid", help="Key identifier for the token header.")
    ],
    out: Annotated[
        Optional[Path],
        typer.Option("--out", "-o", help="Output path for the token (default: stdout)."),
    ] = None,
    alg: Annotated[
        Optional[str], typer.Option("--alg", help="Declared algorithm (default: the key's).")
    ] = None,
    issuer: Annotated[Optional[str], typer.Option("--issuer", help="Override iss.")] = None,
    subject: Annotated[Optional[str], typer.Option("--subject", help="Override sub.")] = None,
    audience: Annotated[
        Optional[list[str]], typer.Option("--audience", help="Audience (repeatable).")
    ] = None,
    credential_type: Annotated[
        Optional[str],
        typer.Option("--credential-type", help="agent or developer (default: detected)."),
    ] = None,
    skip_schema: Annotated[
        bool, typer.Option("--skip-schema", help="Do not validate against the schema.")
    ] = False,
) -> None:
    """Sign a credential JSON file into a compact JWS token."""
    _require_file(key, "Key file")
    document = _read_json(payload, "Payload")
    overrides = SignOverrides(
        issuer=issuer,
        subject=subject,
        audience=audience or [],
        credential_type=_parse_kind(credential_type),
        skip_schema=skip_schema,
    )
    try:
        with load_private_key_file(
            key, max_age_days=_settings().key_rotation_days
        ) as signing_key:
            token = sign_credential(
                document, signing_key, _parse_algorithm(alg), kid, overrides=overrides
            )
    except BelticError as e:
        _fail(e)
    if out is not None:
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text(str(token) + "\n", encoding="utf-8")
        typer.echo(f"Token written to {out}")
    else:
        typer.echo(str(token))


@app.command("verify")
def verify(
    key: Annotated[
        Path,
        typer.Option(..., "--key", "-k", help="Path to the public (or private) key PEM file."),
    ],
    token: Annotated[
        Path, typer.Option(..., "--token", "-t", help="Path to the token file.")
    ],
    issuer: Annotated[Optional[str], typer.Option("--issuer", help="Expected iss.")] = None,
    audience: Annotated[
        Optional[list[str]],
        typer.Option("--audience", help="Audience the token must include (repeatable)."),
    ] = None,
    credential_type: Annotated[
        Optional[str], typer.Option("--credential-type", help="Expected agent or developer.")
    ] = None,
    skip_schema: Annotated[
        bool, typer.Option("--skip-schema", help="Do not validate the embedded credential.")
    ] = False,
    leeway: Annotated[
        Optional[int],
        typer.Option("--leeway", help="Clock skew in seconds (default: BELTIC_CLOCK_LEEWAY)."),
    ] = None,
) -> None:
    """Verify a token; prints the result as JSON and exits 1 when invalid."""
    _require_file(key, "Key file")
    _require_file(token, "Token file")
    if leeway is not None and leeway < 0:
        raise typer.BadParameter("--leeway must not be negative")
    expectations = VerifyExpectations(
        issuer=issuer,
        audience=audience or [],
        credential_type=_parse_kind(credential_type),
        skip_schema=skip_schema,
        leeway=_settings().clock_leeway if leeway is None else leeway,
    )
    try:
        verification_key = load_public_key_file(key)
        result = verify_credential(
            token.read_text(encoding="utf-8").strip(), verification_key, expectations
        )
    except BelticError as e:
        typer.echo(json.dumps({"valid": False, "error": e.to_dict()}, indent=2))
        _fail(e)
    typer.echo(json.dumps(result.to_dict(), indent=2))
    if not result.valid:
        for failure in result.failures:
            typer.secho(f"Failed: {failure.message}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)


def _parse_header(value: str) -> tuple[str, str]:
    name, sep, header_value = value.partition(":")
    if not sep or not name.strip():
        raise typer.BadParameter(f"Invalid header format '{value}': use 'Name: Value'")
    return name.strip(), header_value.strip()


@app.command("http-sign")
def http_sign(
    method: Annotated[str, typer.Option(..., "--method", help="HTTP method.")],
    url: Annotated[str, typer.Option(..., "--url", help="Target URL.")],
    key: Annotated[Path, typer.Option(..., "--key", "-k", help="Private key PEM file.")],
    key_directory: Annotated[
        str, typer.Option(..., "--key-directory", help="HTTPS URL of the key directory.")
    ],
    header: Annotated[
        Optional[list[str]], typer.Option("--header", help="'Name: Value' (repeatable).")
    ] = None,
    component: Annotated[
        Optional[list[str]], typer.Option("--component", help="Covered component (repeatable).")
    ] = None,
    body: Annotated[Optional[str], typer.Option("--body", help="Request body.")] = None,
    body_file: Annotated[
        Optional[Path], typer.Option("--body-file", help="File holding the request body.")
    ] = None,
    ttl: Annotated[
        Optional[int],
        typer.Option("--expires-in", help="Validity in seconds (default: BELTIC_HTTP_SIGNATURE_TTL)."),
    ] = None,
    output_format: Annotated[
        str, typer.Option("--format", help="Output format: headers or curl.")
    ] = "headers",
) -> None:
    """Sign an HTTP request (RFC 9421, Web Bot Auth) and print the headers."""
    if output_format not in OUTPUT_FORMATS:
        raise typer.BadParameter(f"--format must be one of: {', '.join(OUTPUT_FORMATS)}")
    if body is not None and body_file is not None:
        raise typer.BadParameter("Use either --body or --body-file, not both")
    _require_file(key, "Key file")
    request_body: Optional[bytes] = body.encode("utf-8") if body is not None else None
    if body_file is not None:
        _require_file(body_file, "Body file")
        request_body = body_file.read_bytes()
    headers = dict(_parse_header(h) for h in header or [])

    try:
        with load_private_key_file(key) as signing_key:
            signed = sign_request(
                method,
                url,
                headers,
                request_body,
                signing_key,
                key_directory,
                components=component or None,
                ttl=_settings().http_signature_ttl if ttl is None else ttl,
            )
    except BelticError as e:
        _fail(e)

    if output_format == "curl":
        typer.echo(signed.to_curl())
    else:
        for line in signed.to_lines():
            typer.echo(line)
    typer.echo(f"Key ID (JWK thumbprint): {signed.keyid}", err=True)
    typer.echo(f"Signature expires at {signed.expires}", err=True)


@directory_app.command("generate")
def directory_generate(
    public_key: Annotated[
        list[Path], typer.Option(..., "--public-key", help="Public key PEM (repeatable).")
    ],
    out: Annotated[
        Optional[Path],
        typer.Option("--out", "-o", help="Output path for the directory JSON (default: stdout)."),
    ] = None,
    credential_url: Annotated[
        Optional[str], typer.Option("--credential-url", help="URL of the agent credential.")
    ] = None,
    agent_metadata: Annotated[
        Optional[str], typer.Option("--agent-metadata", help="Agent metadata JSON object.")
    ] = None,
    sign_with: Annotated[
        Optional[Path],
        typer.Option("--sign-with", help="Private key PEM; also print signed response headers."),
    ] = None,
    authority: Annotated[
        Optional[str], typer.Option("--authority", help="Host[:port] serving the directory.")
    ] = None,
) -> None:
    """Build a key directory document and print each key's thumbprint."""
    metadata: Optional[dict[str, Any]] = None
    if agent_metadata is not None:
        try:
            metadata = json.loads(agent_metadata)
        except json.JSONDecodeError as exc:
            raise typer.BadParameter(f"Invalid agent metadata JSON: {exc}") from exc
    if sign_with is not None and authority is None:
        raise typer.BadParameter("--authority is required with --sign-with")
    for path in public_key:
        _require_file(path, "Public key file")

    try:
        keys = [load_public_key_file(path) for path in public_key]
        directory = build_directory(keys, credential_url=credential_url, agent_metadata=metadata)
        document = directory.to_json()
        if out is not None:
            out.parent.mkdir(parents=True, exist_ok=True)
            out.write_text(document + "\n", encoding="utf-8")
            typer.echo(f"Key directory written to {out}")
        else:
            typer.echo(document)
        for path, key in zip(public_key, keys):
            typer.echo(f"{path}: {thumbprint(key)}", err=out is None)

        if sign_with is not None and authority is not None:
            with load_private_key_file(sign_with) as signing_key:
                response = sign_response(
                    document.encode("utf-8"),
                    signing_key,
                    authority,
                    ttl=_settings().directory_ttl,
                )
            for name, value in response.headers.items():
                typer.echo(f"{name}: {value}", err=out is None)
    except BelticError as e:
        _fail(e)


@directory_app.command("thumbprint")
def directory_thumbprint(
    public_key: Annotated[
        Path, typer.Option(..., "--public-key", help="Public (or private) key PEM file.")
    ],
) -> None:
    """Print the RFC 7638 JWK thumbprint of a key."""
    _require_file(public_key, "Public key file")
    try:
        typer.echo(thumbprint(load_public_key_file(public_key)))
    except BelticError as e:
        _fail(e)


@schema_app.command("validate")
def schema_validate(
    credential_file: Annotated[Path, typer.Argument(help="Credential JSON file.")],
    schema_id: Annotated[
        Optional[str],
        typer.Option("--schema", help="Schema id (default: detected from the credential)."),
    ] = None,
) -> None:
    """Validate a credential JSON file against its schema."""
    document = _read_json(credential_file, "Credential")
    try:
        if schema_id is not None:
            sid = SchemaId.parse(schema_id)
        else:
            if not isinstance(document, dict):
                raise typer.BadParameter("Credential must be a JSON object")
            sid = detect_kind(document).schema_for(document)
        violations = SchemaValidator().validate(document, sid)
    except BelticError as e:
        _fail(e)
    if not violations:
        typer.echo(f"Valid {sid.value}")
        return
    typer.echo(f"Invalid {sid.value}: {len(violations)} violation(s)")
    for violation in violations:
        typer.echo(f"  {violation.pointer or '/'}: {violation.message}")
    raise typer.Exit(1)


@schema_app.command("list")
def schema_list(
    output_dir: Annotated[
        Path, typer.Option("--output-dir", help="Directory schemas are exported to.")
    ] = DEFAULT_SCHEMAS_DIR,
) -> None:
    """List bundled schema ids and their export paths."""
    for name, path in list_schema_entries(output_dir):
        typer.echo(f"{name}\t{path}")


@schema_app.command("export")
def schema_export(
    output_dir: Annotated[
        Path, typer.Option("--output-dir", help="Directory where schemas will be written.")
    ] = DEFAULT_SCHEMAS_DIR,
) -> None:
    """Export all bundled schemas to the output directory."""
    try:
        written = export_all_schemas(output_dir)
    except OSError as exc:
        raise typer.BadParameter(f"Failed to export schemas: {exc}") from exc
    typer.echo(f"Exported {len(written)} schemas to {output_dir}")


def main() -> None:
    """Run the Beltic CLI."""
    app()


if __name__ == "__main__":
    main()
