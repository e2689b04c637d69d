"""
Admin Reports — Command-line entry point

Usage:
    python -m admin_reports users --profile contoso-prod
    python -m admin_reports mailboxes --tenant-id <GUID> --client-id <GUID> --cert-path cert.pfx
    python -m admin_reports teams --delegated --tenant-id <GUID> --client-id <GUID>
    python -m admin_reports ad --server dc01.corp.local
    python -m admin_reports ad --input ./ad_export
    python -m admin_reports pki --input ./CertEnroll --check-cdp
    python -m admin_reports pools --input ./pools.csv
    python -m admin_reports shares \\\\fs01\\Finance \\\\fs01\\HR --max-depth 3

Profile management:
    python -m admin_reports profile add <name> --tenant-id ... --client-id ...
    python -m admin_reports profile list
    python -m admin_reports profile remove <name>
    python -m admin_reports profile set-default <name>

Exit codes: 0 success, 1 runtime failure, 2 invalid parameters.

This tool is STRICTLY READ-ONLY. It never modifies what it reports on.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Any, Optional

from rich.table import Table

from . import __version__
from .analyzers import SEVERITY_ORDER
from .auth.authenticator import AuthenticationError, Authenticator
from .cache.store import ReportCache
from .collectors import PowerShellError
from .collectors.active_directory import find_powershell
from .config import (
    OUTPUT_FORMATS,
    CertificateAuth,
    ConfigError,
    DelegatedAuth,
    SecretAuth,
    ToolkitConfig,
)
from .console import Narrator, configure_logging
from .graph.client import GraphAPIError, GraphClient
from .profiles import ProfileStore, TenantProfile, resolve_profile
from .reporting import export_csv, export_json, export_text, export_workbook
from .reports import GRAPH_REPORTS, REPORTS, ReportDefinition
from .safety.guardian import ReadOnlyGuard, SafetyViolation
from .scoring import compute_health

logger = logging.getLogger("admin_reports.cli")

EXIT_OK = 0
EXIT_RUNTIME = 1
EXIT_USAGE = 2

TOTAL_STEPS = 6


# ---------------------------------------------------------------------------
# Profile management sub-commands
# ---------------------------------------------------------------------------

def _cmd_profile(args: argparse.Namespace, narrator: Narrator) -> int:
    """Handle `profile add|list|remove|set-default` sub-commands."""
    action = args.profile_action

    if action == "list":
        return _profile_list(narrator)
    elif action == "add":
        return _profile_add(args, narrator)
    elif action == "remove":
        return _profile_remove(args, narrator)
    elif action == "set-default":
        return _profile_set_default(args, narrator)
    narrator.error("Usage: admin-reports profile {add|list|remove|set-default}")
    return EXIT_USAGE


def _profile_list(narrator: Narrator) -> int:
    store = ProfileStore.load()
    profiles = store.list_profiles()
    if not profiles:
        narrator.info("No profiles configured. Add one with:")
        narrator.info("  admin-reports profile add <name> --tenant-id <GUID> --client-id <GUID>")
        return EXIT_OK

    table = Table(title="Tenant profiles", title_justify="left")
    for column in ("Name", "Display name", "Tenant ID", "Client ID", "Cert path", "AD server", "Default"):
        table.add_column(column)
    for p in profiles:
        table.add_row(
            p.name,
            p.tenant_display_name,
            p.tenant_id,
            p.client_id,
            p.cert_path,
            p.ad_server,
            "✓" if p.name == store.default_profile else "",
        )
    narrator.console.print(table)
    return EXIT_OK


def _profile_add(args: argparse.Namespace, narrator: Narrator) -> int:
    store = ProfileStore.load()
    name = args.profile_name
    if store.get(name):
        narrator.warning(f"Profile '{name}' already exists. It will be overwritten.")

    profile = TenantProfile(
        name=name,
        tenant_id=args.tenant_id,
        client_id=args.client_id,
        cert_path=args.cert_path or "./cert.pfx",
        tenant_display_name=args.display_name or "",
        ad_server=args.ad_server or "",
        notes=args.notes or "",
    )
    set_as_default = args.set_default or not store.profiles
    store.add(profile, set_default=set_as_default)
    narrator.success(f"Profile '{name}' saved.")
    if set_as_default:
        narrator.success("Set as default profile.")
    return EXIT_OK


def _profile_remove(args: argparse.Namespace, narrator: Narrator) -> int:
    store = ProfileStore.load()
    if store.remove(args.profile_name):
        narrator.success(f"Profile '{args.profile_name}' removed.")
        return EXIT_OK
    narrator.error(f"Profile '{args.profile_name}' not found.")
    return EXIT_USAGE


def _profile_set_default(args: argparse.Namespace, narrator: Narrator) -> int:
    store = ProfileStore.load()
    if store.set_default(args.profile_name):
        narrator.success(f"Default profile set to '{args.profile_name}'.")
        return EXIT_OK
    narrator.error(f"Profile '{args.profile_name}' not found.")
    return EXIT_USAGE


# ---------------------------------------------------------------------------
# Argument parsing
# ---------------------------------------------------------------------------

def _positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"{value!r} is not an integer")
    if number < 1:
        raise argparse.ArgumentTypeError(f"{value} must be a positive integer")
    return number


def _non_negative_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"{value!r} is not an integer")
    if number < 0:
        raise argparse.ArgumentTypeError(f"{value} must not be negative")
    return number


class _Parser(argparse.ArgumentParser):
    """ArgumentParser that reports usage errors in red and exits with code 2."""

    narrator: Optional[Narrator] = None

    def error(self, message: str):
        self.print_usage(sys.stderr)
        (self.narrator or Narrator()).error(message)
        raise SystemExit(EXIT_USAGE)


def build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--config", "-c", type=Path, help="Path to JSON configuration file")
    common.add_argument(
        "--output-dir", "-o", type=Path, default=None,
        help="Output directory for reports (default: ./admin_reports_output)",
    )
    common.add_argument(
        "--formats", nargs="+", choices=OUTPUT_FORMATS, default=None,
        help="Output formats to generate (default: all)",
    )
    common.add_argument("--no-cache", action="store_true", help="Disable the Graph response cache")
    common.add_argument("--verbose", "-v", action="store_true", help="Debug logging on the console")
    common.add_argument("--tenant-name", default=None, help="Tenant / environment name shown in reports")

    graph = argparse.ArgumentParser(add_help=False)
    graph.add_argument("--profile", "-p", default=None, help="Tenant profile name (see 'profile list')")
    graph.add_argument("--tenant-id", default=None, help="Tenant ID (overrides profile)")
    graph.add_argument("--client-id", default=None, help="App registration client ID (overrides profile)")
    graph.add_argument("--cert-path", type=Path, default=None, help="PFX file, raw or base64 (overrides profile)")
    mode = graph.add_mutually_exclusive_group()
    mode.add_argument("--delegated", action="store_true", help="Use device-code sign-in instead of a certificate")
    mode.add_argument("--secret", action="store_true",
                      help="Use a client secret from ADMIN_REPORTS_CLIENT_SECRET instead of a certificate")

    parser = _Parser(
        prog="admin-reports",
        description=f"Microsoft 365 and on-premises admin reports v{__version__} (READ-ONLY)",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND", parser_class=_Parser)

    for name in GRAPH_REPORTS:
        subparsers.add_parser(name, parents=[common, graph], help=REPORTS[name].title)

    ad_p = subparsers.add_parser("ad", parents=[common], help=REPORTS["ad"].title)
    ad_p.add_argument("--input", "-i", type=Path, help="Folder with an offline JSON export")
    ad_p.add_argument("--server", help="Domain controller to query")
    ad_p.add_argument("--profile", "-p", default=None, help="Profile supplying the AD server")

    pki_p = subparsers.add_parser("pki", parents=[common], help=REPORTS["pki"].title)
    pki_p.add_argument("--input", "-i", type=Path, required=True,
                       help="Folder (or file) with CA certificates and CRLs")
    pki_p.add_argument("--check-cdp", action="store_true", help="Probe HTTP CRL distribution points")

    pools_p = subparsers.add_parser("pools", parents=[common], help=REPORTS["pools"].title)
    pools_p.add_argument("--input", "-i", type=Path, required=True,
                         help="Get-CsPool export (.csv or .json)")

    shares_p = subparsers.add_parser("shares", parents=[common], help=REPORTS["shares"].title)
    shares_p.add_argument("roots", nargs="+", type=Path, help="Share or folder paths to scan")
    shares_p.add_argument("--max-depth", type=_non_negative_int, default=None,
                          help="Folder levels below each root (default: 5)")
    shares_p.add_argument("--workers", type=_positive_int, default=None,
                          help="Parallel ACL readers (default: 8)")

    # --- Sub-commands: profile management ---
    prof_parser = subparsers.add_parser("profile", help="Manage tenant profiles")
    prof_sub = prof_parser.add_subparsers(dest="profile_action", parser_class=_Parser)

    add_p = prof_sub.add_parser("add", help="Add or update a tenant profile")
    add_p.add_argument("profile_name", help="Short name for the profile (e.g. 'contoso-prod')")
    add_p.add_argument("--tenant-id", required=True, help="Tenant ID (GUID)")
    add_p.add_argument("--client-id", required=True, help="App registration client ID (GUID)")
    add_p.add_argument("--cert-path", default="./cert.pfx", help="Path to PFX, raw or base64 (default: ./cert.pfx)")
    add_p.add_argument("--display-name", help="Friendly tenant display name for reports")
    add_p.add_argument("--ad-server", help="Domain controller for the AD report")
    add_p.add_argument("--notes", help="Optional admin notes")
    add_p.add_argument("--set-default", action="store_true", help="Set as default profile")

    prof_sub.add_parser("list", help="List all configured profiles")

    rm_p = prof_sub.add_parser("remove", help="Remove a profile")
    rm_p.add_argument("profile_name", help="Name of the profile to remove")

    sd_p = prof_sub.add_parser("set-default", help="Set the default profile")
    sd_p.add_argument("profile_name", help="Name of the profile to set as default")

    return parser


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

def build_config(args: argparse.Namespace) -> ToolkitConfig:
    """Config file first, then CLI overrides. Raises ConfigError."""
    config = ToolkitConfig.from_file(args.config) if args.config else ToolkitConfig()

    if args.output_dir:
        config.output.base_dir = str(args.output_dir)
    if args.formats:
        config.output.formats = list(dict.fromkeys(args.formats))
    if args.no_cache:
        config.cache_enabled = False
    if args.verbose:
        config.verbose = True

    if getattr(args, "max_depth", None) is not None:
        config.collection.share_scan_max_depth = args.max_depth
    if getattr(args, "workers", None) is not None:
        config.collection.share_scan_workers = args.workers

    config.collection.validate()
    return config


def resolve_graph_auth(args: argparse.Namespace, config: ToolkitConfig) -> Optional[TenantProfile]:
    """
    Fill config.auth from profile, CLI flags or config file.
    Returns the profile used, if any. Raises ConfigError when no credentials exist.
    """
    profile = None
    if args.profile:
        profile = resolve_profile(args.profile)
        if not profile:
            raise ConfigError(f"Profile '{args.profile}' not found. Use 'profile list' to see available profiles.")
    elif not args.config and not args.tenant_id:
        profile = resolve_profile()

    if args.delegated:
        config.auth.mode = "delegated"
    elif args.secret:
        config.auth.mode = "secret"

    existing = config.auth.certificate or config.auth.delegated or config.auth.secret
    if profile:
        tenant_id = args.tenant_id or profile.tenant_id
        client_id = args.client_id or profile.client_id
        cert_path = str(args.cert_path) if args.cert_path else profile.resolve_cert_path()
    elif args.tenant_id and args.client_id:
        tenant_id = args.tenant_id
        client_id = args.client_id
        cert_path = str(args.cert_path) if args.cert_path else "./cert.pfx"
    elif existing:
        tenant_id = args.tenant_id or existing.tenant_id
        client_id = args.client_id or existing.client_id
        cert_path = str(args.cert_path) if args.cert_path else (
            config.auth.certificate.certificate_path if config.auth.certificate else "./cert.pfx"
        )
    else:
        raise ConfigError(
            "No tenant credentials found. Use --profile <name>, "
            "--tenant-id X --client-id Y, or --config config.json"
        )

    if config.auth.mode == "certificate":
        password = config.auth.certificate.certificate_password if config.auth.certificate else ""
        config.auth.certificate = CertificateAuth(
            tenant_id=tenant_id,
            client_id=client_id,
            certificate_path=cert_path,
            certificate_password=password,
        )
        if not Path(cert_path).exists():
            raise ConfigError(f"Certificate file not found: {cert_path}")
    elif config.auth.mode == "delegated":
        scopes = config.auth.delegated.scopes if config.auth.delegated else None
        config.auth.delegated = DelegatedAuth(tenant_id=tenant_id, client_id=client_id)
        if scopes:
            config.auth.delegated.scopes = scopes
    elif config.auth.mode == "secret":
        secret = config.auth.secret.client_secret if config.auth.secret else ""
        config.auth.secret = SecretAuth(tenant_id=tenant_id, client_id=client_id, client_secret=secret)
    else:
        raise ConfigError(f"Unknown auth mode: {config.auth.mode}")

    return profile


def collector_options(args: argparse.Namespace) -> dict[str, Any]:
    """Validate the on-premises inputs and turn them into collector options."""
    command = args.command
    if command == "ad":
        options: dict[str, Any] = {}
        if args.input:
            if not args.input.is_dir():
                raise ConfigError(f"AD export folder not found: {args.input}")
            options["input"] = args.input
        else:
            server = args.server
            if not server and args.profile:
                profile = resolve_profile(args.profile)
                if not profile:
                    raise ConfigError(f"Profile '{args.profile}' not found.")
                server = profile.ad_server
            if not find_powershell():
                raise ConfigError(
                    "PowerShell was not found; run on a machine with RSAT or pass --input"
                )
            if server:
                options["server"] = server
        return options
    if command == "pki":
        if not args.input.exists():
            raise ConfigError(f"PKI input not found: {args.input}")
        return {"input": args.input, "check_cdp": args.check_cdp}
    if command == "pools":
        if not args.input.is_file():
            raise ConfigError(f"Topology export not found: {args.input}")
        return {"input": args.input}
    if command == "shares":
        missing = [str(r) for r in args.roots if not r.is_dir()]
        if missing:
            raise ConfigError(f"Share root not found or not a folder: {', '.join(missing)}")
        return {"roots": args.roots}
    return {}


# ---------------------------------------------------------------------------
# Report run
# ---------------------------------------------------------------------------

def generate_reports(
    report: ReportDefinition,
    result: Any,
    findings: list,
    health: Any,
    output_dir: Path,
    run_id: str,
    tenant_name: str,
    formats: list[str],
) -> list[Path]:
    """Generate all requested output formats."""
    created: list[Path] = []

    if "csv" in formats:
        created.extend(export_csv(result, findings, output_dir, run_id))
    if "xlsx" in formats:
        created.append(export_workbook(result, findings, health, output_dir, run_id,
                                       title=report.title, tenant_name=tenant_name))
    if "json" in formats:
        created.append(export_json(result, findings, health, output_dir, run_id,
                                   title=report.title, tenant_name=tenant_name))
    # Last, so it can list the other files
    if "txt" in formats:
        created.append(export_text(result, findings, health, output_dir, run_id,
                                   title=report.title, tenant_name=tenant_name, files=created))
    return created


def collected_rows(report: ReportDefinition, datasets: dict[str, list]) -> list[tuple[str, str]]:
    """Row counts in the report's dataset order; missing datasets show as not collected."""
    names = list(report.datasets) + [n for n in datasets if n not in report.datasets]
    return [
        (name, f"{len(datasets[name])} rows" if name in datasets else "not collected")
        for name in names
    ]


def _sorted_findings(findings: list) -> list:
    rank = {sev: i for i, sev in enumerate(SEVERITY_ORDER)}
    return sorted(findings, key=lambda f: (rank.get(f.severity, len(rank)), -f.deduction))


async def run_report(args: argparse.Namespace, narrator: Narrator) -> int:
    report = REPORTS[args.command]
    narrator.banner(report.title)

    # --- Step 1: validate ---
    narrator.step(1, TOTAL_STEPS, "Validating parameters")
    config = build_config(args)
    profile = resolve_graph_auth(args, config) if report.needs_graph else None
    options = collector_options(args)
    if report.needs_graph:
        auth = getattr(config.auth, config.auth.mode)
        options["tenant_id"] = auth.tenant_id

    tenant_name = (
        args.tenant_name
        or (profile.tenant_display_name if profile else "")
        or (profile.name if profile else "")
    )
    run_id = config.output.timestamp
    output_dir = config.output.run_dir(report.name)
    configure_logging(config.verbose, output_dir / "run.log")
    logger.info(f"Starting {report.name} report, run {run_id}")
    narrator.info(f"Run ID: {run_id}")
    narrator.info(f"Output: {output_dir.resolve()}")
    if tenant_name:
        narrator.info(f"Tenant: {tenant_name}" + (f" (profile: {profile.name})" if profile else ""))

    guard = ReadOnlyGuard()
    cache = None
    client = None
    run_status = "failed"
    try:
        # --- Step 2: connect ---
        narrator.step(2, TOTAL_STEPS, "Connecting")
        if report.needs_graph:
            token = await Authenticator(config.auth).acquire_token()
            narrator.success(f"Authenticated ({config.auth.mode})")
            client = GraphClient(access_token=token, guard=guard)
            await client.__aenter__()
            if config.cache_enabled:
                cache = ReportCache(Path(config.output.base_dir) / ".cache", config.cache_ttl_hours)
                cache.clear_expired()
                cache.start_run(run_id, report.name)
        elif report.name == "ad" and "input" not in options:
            target = options.get("server", "the current domain")
            narrator.success(f"Using the PowerShell ActiveDirectory module against {target}")
        else:
            narrator.success("Using local files")

        # --- Step 3: collect ---
        narrator.step(3, TOTAL_STEPS, f"Collecting ({report.collector.description})")
        collector = report.collector(
            config=config.collection, graph=client, cache=cache, run_id=run_id, options=options
        )
        result = await collector.execute()
        if report.needs_graph:
            result.metadata["safety"] = guard.audit_record()
            result.metadata["graph"] = client.get_stats()

        datasets = result.datasets()
        narrator.summary_table("Collected", collected_rows(report, datasets))
        for warning in result.metadata["warnings"]:
            narrator.warning(warning)
        for error in result.metadata["errors"]:
            narrator.error(error)
        if result.metadata.get("permission_gaps"):
            narrator.warning("Some endpoints were denied. The app registration needs these read-only permissions:")
            for permission, purpose in Authenticator.list_required_permissions().items():
                narrator.info(f"  {permission}: {purpose}")
        if result.metadata["errors"] and not any(datasets.values()):
            narrator.error("Nothing was collected; no report written.")
            return EXIT_RUNTIME

        # --- Step 4: analyze ---
        narrator.step(4, TOTAL_STEPS, "Analyzing")
        findings = report.analyzer(config.collection).analyze(result.data)
        narrator.findings(_sorted_findings(findings))

        # --- Step 5: score ---
        narrator.step(5, TOTAL_STEPS, "Scoring")
        health = compute_health(findings)
        narrator.summary_table(
            "Findings by severity",
            [(sev, n) for sev, n in health.severity_counts.items() if n],
        )
        narrator.health(health)

        # --- Step 6: write ---
        narrator.step(6, TOTAL_STEPS, "Writing reports")
        created = generate_reports(
            report, result, findings, health, output_dir, run_id, tenant_name,
            config.output.formats,
        )
        narrator.files(created)

        run_status = "completed" if not result.metadata["errors"] else "partial"
    finally:
        if cache:
            cache.complete_run(run_id, run_status)
        if client:
            await client.__aexit__(None, None, None)

    narrator.success(f"Done: {health.score:.0f}/100 ({health.rating}), {len(created)} files")
    return EXIT_OK


def main(argv: Optional[list[str]] = None) -> int:
    """Entry point for `python -m admin_reports` and the `admin-reports` script."""
    narrator = Narrator()
    _Parser.narrator = narrator
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return EXIT_USAGE

    configure_logging(getattr(args, "verbose", False))

    if args.command == "profile":
        return _cmd_profile(args, narrator)

    try:
        return asyncio.run(run_report(args, narrator))
    except ConfigError as e:
        narrator.error(str(e))
        return EXIT_USAGE
    except SafetyViolation as e:
        narrator.error(f"Safety guard stopped the run: {e}")
        return EXIT_RUNTIME
    except (AuthenticationError, GraphAPIError, PowerShellError) as e:
        narrator.error(f"{type(e).__name__}: {e}")
        return EXIT_RUNTIME
    except KeyboardInterrupt:
        narrator.error("Interrupted")
        return EXIT_RUNTIME


if __name__ == "__main__":
    sys.exit(main())
