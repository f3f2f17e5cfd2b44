"""Command-line front end for the Compass portal.

Drives the same dialogs and flows the web portal uses, against the
Compass API configured in the environment (see ``COMPASS_`` settings).

Usage:
    compass-portal [--json] [--verbose] <command> <action> [options]

Commands:
    login TOKEN | logout
    clients list | create
    envs list | add | delete | test
    oauth setup | revoke
    assess start | show | export | watch
    mfa status | enable | disable | regenerate | verify

Exit Codes:
    0   Success
    1   The operation failed (validation or API error)
    2   Invalid arguments or internal error

Examples:
    # List clients as JSON
    compass-portal --json clients list

    # Grant delegated access through the browser
    compass-portal oauth setup --client 3f2c...

    # Start naming and tagging assessments and follow progress
    compass-portal assess start --client 3f2c... --environment 9a1b... --type 0 --type 1
    compass-portal assess watch 5d7e...
"""

import argparse
import asyncio
import getpass
import json
import logging
import sys
from pathlib import Path
from typing import Any

import uvicorn

from compass_portal.api.services.assessment_service import ExportFormat
from compass_portal.core.auth import TokenStore
from compass_portal.core.config import get_settings
from compass_portal.core.context import PortalContext
from compass_portal.core.errors import CompassError, describe_error
from compass_portal.schemas.assessment import AssessmentCategory, AssessmentStatus, AssessmentType
from compass_portal.schemas.environment import ConnectionMethod
from compass_portal.ui.client_form import AddClientForm
from compass_portal.ui.detail_viewer import AssessmentDetailViewer, AssessmentStatusWatcher
from compass_portal.ui.environments import ManageEnvironmentsModal
from compass_portal.ui.exports import Exporter
from compass_portal.ui.mfa import MfaSettingsPanel, MfaVerificationPrompt
from compass_portal.ui.popup import BrowserPopupLauncher, PopupRegistry
from compass_portal.ui.wizard import AssessmentWizard, WizardStep

# Configure logging
logging.basicConfig(
    level=logging.WARNING,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

CLIENT_FIELD_ARGS = {
    "name": "name",
    "description": "description",
    "industry": "industry",
    "contact_name": "contact_name",
    "contact_email": "contact_email",
    "contact_phone": "contact_phone",
    "address": "address",
    "city": "city",
    "state": "state",
    "country": "country",
    "postal_code": "postal_code",
    "time_zone": "time_zone",
    "contract_start": "contract_start_date",
    "contract_end": "contract_end_date",
}


# =============================================================================
# Argument parsing
# =============================================================================


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="compass-portal",
        description="Manage Compass clients, Azure environments and assessments",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--json", action="store_true", help="Output results in JSON format")
    parser.add_argument("--verbose", action="store_true", help="Enable verbose logging")
    commands = parser.add_subparsers(dest="command", required=True)

    login = commands.add_parser("login", help="Store a bearer token")
    login.add_argument("token", help="Bearer token issued by the Compass API")
    commands.add_parser("logout", help="Remove the stored bearer token")

    # clients
    clients = commands.add_parser("clients", help="Client organizations").add_subparsers(dest="action", required=True)
    clients.add_parser("list", help="List clients")
    create = clients.add_parser("create", help="Create a client")
    create.add_argument("--name", default="")
    for option in CLIENT_FIELD_ARGS:
        if option != "name":
            create.add_argument(f"--{option.replace('_', '-')}", dest=option, default="")

    # envs
    envs = commands.add_parser("envs", help="Azure environments").add_subparsers(dest="action", required=True)
    envs_list = envs.add_parser("list", help="List a client's environments")
    envs_list.add_argument("--client", required=True)
    envs_add = envs.add_parser("add", help="Register an environment")
    envs_add.add_argument("--client", required=True)
    envs_add.add_argument("--name", default="")
    envs_add.add_argument("--description", default="")
    envs_add.add_argument("--tenant", dest="tenant_id", default="")
    envs_add.add_argument("--subscription", dest="subscriptions", action="append", default=[])
    envs_add.add_argument("--sp-id", dest="service_principal_id", default="")
    envs_add.add_argument("--sp-name", dest="service_principal_name", default="")
    envs_add.add_argument("--oauth", action="store_true", help="Connect with OAuth instead of a service principal")
    envs_delete = envs.add_parser("delete", help="Delete an environment")
    envs_delete.add_argument("environment")
    envs_delete.add_argument("--client", required=True)
    envs_delete.add_argument("--yes", action="store_true", help="Do not ask for confirmation")
    envs_test = envs.add_parser("test", help="Test an environment's connection")
    envs_test.add_argument("environment")
    envs_test.add_argument("--client", required=True)

    # oauth
    oauth = commands.add_parser("oauth", help="Delegated OAuth access").add_subparsers(dest="action", required=True)
    oauth_setup = oauth.add_parser("setup", help="Authorize Compass in the browser")
    oauth_setup.add_argument("--client", required=True)
    oauth_revoke = oauth.add_parser("revoke", help="Revoke delegated access for an environment")
    oauth_revoke.add_argument("environment")
    oauth_revoke.add_argument("--client", required=True)
    oauth_revoke.add_argument("--yes", action="store_true", help="Do not ask for confirmation")

    # assess
    assess = commands.add_parser("assess", help="Assessments").add_subparsers(dest="action", required=True)
    start = assess.add_parser("start", help="Start one assessment per selected type")
    start.add_argument("--client", required=True)
    start.add_argument("--environment", required=True)
    start.add_argument("--category", default=AssessmentCategory.RESOURCE_GOVERNANCE.value)
    start.add_argument("--type", dest="types", action="append", default=[], help="Type code or name (repeatable)")
    start.add_argument("--name", default=None)
    start.add_argument("--use-client-preferences", action="store_true")
    show = assess.add_parser("show", help="Show findings and recommendations")
    show.add_argument("assessment")
    export = assess.add_parser("export", help="Download resources or the PDF report")
    export.add_argument("assessment")
    export.add_argument("--format", choices=[f.value for f in ExportFormat], default=ExportFormat.CSV.value)
    export.add_argument("--output", type=Path, default=None, help="Download directory")
    watch = assess.add_parser("watch", help="Poll an assessment until it finishes")
    watch.add_argument("assessment")
    watch.add_argument("--interval", type=float, default=None)

    # mfa
    mfa = commands.add_parser("mfa", help="Multi-factor authentication").add_subparsers(dest="action", required=True)
    mfa.add_parser("status", help="Show MFA status")
    enable = mfa.add_parser("enable", help="Enable MFA with an authenticator app")
    enable.add_argument("--code", default=None)
    enable.add_argument("--save-codes", type=Path, default=None, help="Directory for the backup codes file")
    disable = mfa.add_parser("disable", help="Disable MFA")
    disable.add_argument("--password", default=None)
    disable.add_argument("--code", default="")
    regenerate = mfa.add_parser("regenerate", help="Regenerate backup codes")
    regenerate.add_argument("--code", default="")
    regenerate.add_argument("--save-codes", type=Path, default=None, help="Directory for the backup codes file")
    verify = mfa.add_parser("verify", help="Verify a second-factor code")
    verify.add_argument("code")
    verify.add_argument("--backup", action="store_true", help="The code is a backup code")

    return parser


# =============================================================================
# Output helpers
# =============================================================================


def _dump(value: Any) -> Any:
    if hasattr(value, "model_dump"):
        return value.model_dump(mode="json")
    if isinstance(value, list):
        return [_dump(item) for item in value]
    if isinstance(value, dict):
        return {key: _dump(item) for key, item in value.items()}
    if isinstance(value, Path):
        return str(value)
    return value


def emit(args: argparse.Namespace, data: Any, lines: list[str]) -> None:
    if args.json:
        print(json.dumps(_dump(data), indent=2, default=str))
    else:
        for line in lines:
            print(line)


def fail(message: str) -> int:
    print(f"Error: {message}", file=sys.stderr)
    return 1


def _confirm(args: argparse.Namespace):
    def confirm(message: str) -> bool:
        if getattr(args, "yes", False):
            return True
        return input(f"{message} [y/N] ").strip().lower().startswith("y")

    return confirm


def _alert(message: str) -> None:
    print(message, file=sys.stderr)


def _badges(row) -> str:
    return ", ".join(row.badges) or "No credentials"


# =============================================================================
# Commands
# =============================================================================


async def cmd_clients(ctx: PortalContext, args: argparse.Namespace) -> int:
    if args.action == "list":
        clients = await ctx.services.clients.list_clients()
        emit(args, clients, [
            f"{c.id:<38} {c.name:<30} {c.status or '':<10} envs={c.environment_count}"
            for c in clients
        ] or ["No clients found"])
        return 0

    form = AddClientForm(ctx.services.clients)
    for option, field_name in CLIENT_FIELD_ARGS.items():
        form.set_field(field_name, getattr(args, option) or "")
    client = await form.submit()
    if client is None:
        for field_name, message in form.errors.items():
            print(f"  {field_name}: {message}", file=sys.stderr)
        return fail(form.error or "Client was not created")
    emit(args, client, [f"Created client {client.name} ({client.id})"])
    return 0


async def _client_modal(ctx: PortalContext, args: argparse.Namespace) -> ManageEnvironmentsModal:
    client = await ctx.services.clients.get_client(args.client)
    registry = PopupRegistry()
    return ManageEnvironmentsModal(ctx, client, BrowserPopupLauncher(registry), _confirm(args))


async def cmd_envs(ctx: PortalContext, args: argparse.Namespace) -> int:
    modal = await _client_modal(ctx, args)
    await modal.load()
    if modal.error:
        return fail(modal.error)

    try:
        if args.action == "list":
            rows = modal.rows
            emit(args, [row.environment for row in rows], [
                f"{row.environment.id:<38} {row.environment.name:<30} [{_badges(row)}] "
                f"subscriptions={len(row.environment.subscription_ids)}"
                for row in rows
            ] or [f"No Azure environments for {modal.client.name}"])
            return 0

        if args.action == "add":
            method = ConnectionMethod.OAUTH if args.oauth else ConnectionMethod.SERVICE_PRINCIPAL
            form = modal.start_add(method)
            for name in form.fields:
                form.set_field(name, getattr(args, name) or "")
            for index, subscription in enumerate(args.subscriptions):
                if index:
                    form.add_subscription()
                form.set_subscription(index, subscription)
            if not await modal.save():
                for field_name, message in form.errors.items():
                    print(f"  {field_name}: {message}", file=sys.stderr)
                return fail(modal.error or "Environment was not saved")
            emit(args, modal.environments, [f"Saved environment {args.name} for {modal.client.name}"])
            return 0

        if args.action == "delete":
            if not await modal.delete(args.environment):
                return fail(modal.error) if modal.error else 1
            emit(args, {"deleted": args.environment}, [f"Deleted environment {args.environment}"])
            return 0

        result = await modal.test_connection(args.environment)
        emit(args, result, [("Connection succeeded" if result.success else "Connection failed") + (
            f": {result.message}" if result.message else ""
        )])
        return 0 if result.success else 1
    finally:
        await modal.close()


async def cmd_oauth(ctx: PortalContext, args: argparse.Namespace) -> int:
    if args.action == "revoke":
        modal = await _client_modal(ctx, args)
        try:
            if not await modal.revoke_oauth(args.environment):
                return fail(modal.error) if modal.error else 1
            emit(args, modal.environments, [f"Revoked OAuth access for environment {args.environment}"])
            return 0
        finally:
            await modal.close()

    from compass_portal.main import create_app

    settings = ctx.settings
    registry = PopupRegistry()
    server = uvicorn.Server(
        uvicorn.Config(
            create_app(registry, settings),
            host=settings.landing_host,
            port=settings.landing_port,
            log_level="warning",
        )
    )
    client = await ctx.services.clients.get_client(args.client)
    server_task = asyncio.create_task(server.serve())
    modal = ManageEnvironmentsModal(ctx, client, BrowserPopupLauncher(registry), _confirm(args))
    try:
        if not await modal.setup_oauth():
            return fail(modal.error)
        print("Complete the authorization in your browser; waiting for it to finish...", file=sys.stderr)
        await modal.oauth.poller.wait()
        connected = [env for env in modal.environments if env.has_oauth_credentials]
        emit(args, modal.environments, [
            f"{len(connected)} environment(s) for {client.name} now have OAuth credentials"
        ])
        return 0
    finally:
        await modal.close()
        server.should_exit = True
        await server_task


def _select_types(wizard: AssessmentWizard, requested: list[str]) -> None:
    wanted = {AssessmentType(value) for value in requested}
    for option in wizard.catalog.options:
        if (option.type in wanted) != (option.type in wizard.state.selected_types):
            wizard.toggle_type(option.type)


async def cmd_assess(ctx: PortalContext, args: argparse.Namespace) -> int:
    service = ctx.services.assessments

    if args.action == "start":
        category = AssessmentCategory(args.category)
        wizard = AssessmentWizard(ctx.with_client(args.client), category)
        await wizard.open()
        if wizard.selector.error:
            return fail(wizard.selector.error)
        if args.name is not None:
            wizard.set_name(args.name)
        if args.types:
            _select_types(wizard, args.types)
        if wizard.next() != WizardStep.ENVIRONMENT:
            return fail(wizard.error)
        wizard.select_environment(args.environment)
        wizard.set_use_client_preferences(args.use_client_preferences)
        if wizard.next() != WizardStep.REVIEW:
            return fail(wizard.error)

        names = [name for _, name in wizard.state.assessment_names()]
        responses = await wizard.submit()
        if responses is None:
            return fail(wizard.error)
        emit(args, responses, [f"Started {name} ({r.id})" for name, r in zip(names, responses)])
        return 0

    if args.action == "show":
        viewer = AssessmentDetailViewer(ctx, _alert)
        try:
            await viewer.open(await service.get(args.assessment))
            errors = list(viewer.tab_errors.values())
            if errors:
                return fail(errors[0])
            overview = viewer.overview
            lines = [
                f"{viewer.assessment.name} [{viewer.assessment.status.value}]",
                f"Score: {overview.score if overview.score is not None else 'n/a'}  "
                f"Findings: {overview.total_findings}  "
                f"Resources with issues: {overview.resources_with_issues}/{overview.total_resources}",
            ]
            for entry in viewer.recommendations:
                lines.append(f"\n{entry.category} ({entry.priority.value}, {entry.issue_count} issues)")
                lines.extend(f"  - {text}" for text in entry.recommendations)
            emit(args, {
                "assessment": viewer.assessment,
                "findings": viewer.findings,
                "overview": {
                    "total_findings": overview.total_findings,
                    "resources_with_issues": overview.resources_with_issues,
                    "total_resources": overview.total_resources,
                    "compliance_rate": overview.compliance_rate,
                    "score": overview.score,
                },
            }, lines)
            return 0
        finally:
            await viewer.close()

    if args.action == "export":
        exporter = Exporter(service, args.output or ctx.settings.download_dir, _alert)
        path = await exporter.export(args.assessment, args.format)
        if path is None:
            return 1
        emit(args, {"path": path}, [f"Saved {path}"])
        return 0

    assessment = await service.get(args.assessment)
    if not assessment.status.is_terminal:
        watcher = AssessmentStatusWatcher(
            service,
            args.assessment,
            args.interval or ctx.settings.assessment_poll_interval_seconds,
            on_update=lambda a: print(f"{a.status.value} {a.progress}%", file=sys.stderr),
        )
        watcher.start()
        assessment = await watcher.wait() or assessment
    emit(args, assessment, [f"{assessment.name or assessment.id}: {assessment.status.value}"])
    return 0 if assessment.status == AssessmentStatus.COMPLETED else 1


async def cmd_mfa(ctx: PortalContext, args: argparse.Namespace) -> int:
    if args.action == "verify":
        prompt = MfaVerificationPrompt(ctx.services.mfa)
        if args.backup:
            prompt.toggle_backup_code()
        prompt.set_code(args.code)
        result = await prompt.submit()
        if result is None:
            return fail(prompt.error)
        emit(args, result, ["Code accepted"])
        return 0

    panel = MfaSettingsPanel(ctx.services.mfa)
    await panel.load_status()
    if panel.error:
        return fail(panel.error)

    if args.action == "status":
        status = panel.status
        emit(args, status, [
            f"MFA: {'enabled' if status.is_enabled else 'disabled'}",
            f"Backup codes remaining: {status.backup_codes_remaining}",
        ])
        return 0

    if args.action == "enable":
        setup = await panel.begin_setup()
        if setup is None:
            return fail(panel.error)
        print(f"Add this key to your authenticator app: {setup.manual_entry_key or setup.secret}", file=sys.stderr)
        if setup.qr_code_uri:
            print(f"Or scan: {setup.qr_code_uri}", file=sys.stderr)
        panel.set_setup_code(args.code or input("Enter the 6-digit code: "))
        if not await panel.verify_setup():
            return fail(panel.error)
        lines = ["MFA enabled. Backup codes:", *setup.backup_codes]
        if args.save_codes and setup.backup_codes:
            lines.append(f"Saved to {panel.save_backup_codes(args.save_codes, setup.backup_codes)}")
        emit(args, setup.backup_codes, lines)
        return 0

    if args.action == "disable":
        panel.disable_password = args.password if args.password is not None else getpass.getpass("Password: ")
        panel.set_disable_code(args.code)
        if not await panel.disable():
            return fail(panel.error)
        emit(args, panel.status, ["MFA disabled"])
        return 0

    panel.set_regenerate_code(args.code)
    codes = await panel.regenerate()
    if not codes:
        return fail(panel.error or "No backup codes were returned")
    lines = ["New backup codes:", *codes]
    if args.save_codes:
        lines.append(f"Saved to {panel.save_backup_codes(args.save_codes)}")
    emit(args, codes, lines)
    return 0


COMMANDS = {
    "clients": cmd_clients,
    "envs": cmd_envs,
    "oauth": cmd_oauth,
    "assess": cmd_assess,
    "mfa": cmd_mfa,
}


async def run(args: argparse.Namespace, ctx: PortalContext | None = None) -> int:
    """Run one parsed command and return its exit code."""
    settings = ctx.settings if ctx is not None else get_settings()

    if args.command in ("login", "logout"):
        store = TokenStore(settings)
        if args.command == "login":
            store.save(args.token)
            print(f"Token saved to {store.path}")
        else:
            store.clear()
            print("Signed out")
        return 0

    owned = ctx is None
    ctx = ctx or PortalContext.create(settings)
    try:
        return await COMMANDS[args.command](ctx, args)
    except CompassError as e:
        logger.debug(f"{args.command} {args.action} failed: {e}")
        return fail(describe_error(e, e.message))
    finally:
        if owned:
            await ctx.aclose()


async def async_main(argv: list[str] | None = None) -> int:
    """Async main entry point."""
    try:
        args = build_parser().parse_args(argv)
    except SystemExit as e:
        return e.code if isinstance(e.code, int) else 2

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    try:
        return await run(args)

    except KeyboardInterrupt:
        print("\nInterrupted by user", file=sys.stderr)
        return 2

    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        if args.verbose:
            import traceback
            traceback.print_exc()
        return 2


def main() -> int:
    """Main entry point."""
    return asyncio.run(async_main())


if __name__ == "__main__":
    sys.exit(main())
