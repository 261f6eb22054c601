"""Command-line interface for inbox-rules."""

import asyncio
from pathlib import Path
from typing import Annotated

import typer
import yaml
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from inbox_rules.config import Settings, load_rules, save_rules
from inbox_rules.errors import GroupInUseError, InboxRulesError
from inbox_rules.models import Session, User

app = typer.Typer(
    name="inbox-rules",
    help="AI-assisted email rules: match, plan, approve, execute",
    no_args_is_help=True,
)
console = Console()

# Sub-command groups
rules_app = typer.Typer(help="Manage rules")
plans_app = typer.Typer(help="Review planned actions")
senders_app = typer.Typer(help="Categorize senders")

app.add_typer(rules_app, name="rules")
app.add_typer(plans_app, name="plans")
app.add_typer(senders_app, name="senders")


EXAMPLE_RULES = """# inbox-rules rules file
# Import with: inbox-rules rules import

rules:
  - name: "Stripe receipts"
    from_address: "stripe.com"
    automate: true
    actions:
      - type: LABEL
        fields:
          label: "Receipts"
      - type: ARCHIVE

  - name: "Newsletters"
    group:
      name: "Newsletters"
      items:
        - type: BODY
          value: "view this email in your browser"
    actions:
      - type: ARCHIVE

  - name: "Meeting requests"
    instructions: "Emails asking to schedule a meeting or call"
    actions:
      - type: DRAFT_EMAIL
        fields:
          content:
            kind: generate
"""


def get_settings() -> Settings:
    """Load application settings."""
    return Settings()


def get_session(settings: Settings) -> Session:
    return Session(user_id=settings.user_id, email=settings.user_email)


def open_stores(settings: Settings):
    """Open the database and return the rule and plan stores."""
    from inbox_rules.storage import Database, PlanStore, RuleStore

    db = Database(settings.database_path)
    return RuleStore(db), PlanStore(db)


def setup(settings: Settings) -> None:
    from inbox_rules.logging import setup_logging

    setup_logging(
        settings.log_dir,
        settings.log_level,
        max_bytes=settings.log_rotation_size_mb * 1024 * 1024,
        backup_count=settings.log_backup_count,
    )


@app.command()
def version() -> None:
    """Show version information."""
    from inbox_rules import __version__

    console.print(f"inbox-rules v{__version__}")


@app.command()
def init(
    config_dir: Annotated[
        Path | None,
        typer.Option("--config-dir", "-c", help="Configuration directory"),
    ] = None,
    email: Annotated[
        str | None,
        typer.Option("--email", "-e", help="Your mailbox address"),
    ] = None,
) -> None:
    """Create the config directory, database, user and example rules."""
    settings = get_settings()
    if config_dir:
        settings.config_dir = config_dir

    settings.ensure_config_dir()

    if not settings.rules_path.exists():
        settings.rules_path.write_text(EXAMPLE_RULES)
        console.print(f"[green]Created[/green] {settings.rules_path}")

    rules, _ = open_stores(settings)
    user_email = email or settings.user_email or f"{settings.user_id}@localhost"
    rules.add_user(User(id=settings.user_id, email=user_email, about=settings.user_about))
    for category in settings.default_categories:
        rules.add_category(settings.user_id, category)

    console.print(f"[green]Database ready[/green] {settings.database_path}")
    console.print(f"\n[bold]Configuration initialized at:[/bold] {settings.config_dir}")


# === Rules Commands ===


@rules_app.command("list")
def rules_list() -> None:
    """List your rules in priority order."""
    settings = get_settings()
    rules, _ = open_stores(settings)

    user_rules = rules.list_rules(settings.user_id)
    if not user_rules:
        console.print("[yellow]No rules configured[/yellow]")
        console.print("Run [bold]inbox-rules rules import[/bold] to add the example rules")
        return

    groups = rules.list_groups(settings.user_id)

    table = Table(title="Rules")
    table.add_column("#", style="dim", width=4)
    table.add_column("Name", style="cyan")
    table.add_column("Type", style="blue", width=8)
    table.add_column("Condition", max_width=40)
    table.add_column("Actions", style="green")
    table.add_column("Enabled", width=7)
    table.add_column("Auto", width=4)

    for position, rule in enumerate(user_rules, start=1):
        if rule.group_id and rule.group_id in groups:
            condition = f"group: {groups[rule.group_id].name}"
        elif rule.has_static_conditions:
            condition = ", ".join(
                f"{label}: {value}"
                for label, value in (
                    ("from", rule.from_address),
                    ("to", rule.to_address),
                    ("subject", rule.subject),
                )
                if value
            )
        elif rule.category_filters:
            condition = "categories: " + ", ".join(rule.category_filters)
        else:
            condition = rule.instructions[:40]

        table.add_row(
            str(position),
            rule.name,
            rule.type.value,
            condition,
            ", ".join(a.type.value for a in rule.actions),
            "✓" if rule.enabled else "✗",
            "✓" if rule.automate else "",
        )

    console.print(table)

    for rule in user_rules:
        for warning in rule.configuration_warnings():
            console.print(f"[yellow]Warning:[/yellow] {warning}")


@rules_app.command("import")
def rules_import(
    path: Annotated[
        Path | None,
        typer.Argument(help="YAML rules file (default: rules file in config dir)"),
    ] = None,
) -> None:
    """Import rules from a YAML file."""
    from inbox_rules.rules.loader import import_rules

    settings = get_settings()
    setup(settings)
    path = path or settings.rules_path

    try:
        definitions = load_rules(path)
    except yaml.YAMLError as e:
        console.print(f"[red]Invalid YAML in {path}:[/red] {e}")
        raise typer.Exit(1)

    if not definitions:
        console.print(f"[yellow]No rules found in {path}[/yellow]")
        return

    rules, _ = open_stores(settings)
    try:
        created, skipped, conflicts = import_rules(rules, settings.user_id, definitions)
    except ValidationError as e:
        console.print(f"[red]Invalid rule definition:[/red]\n{e}")
        raise typer.Exit(1)
    except InboxRulesError as e:
        console.print(f"[red]Import failed:[/red] {e}")
        raise typer.Exit(1)

    for rule in created:
        console.print(f"[green]✓ Imported[/green] {rule.name}")
    for name in skipped:
        console.print(f"[yellow]Skipped[/yellow] {name} (name already exists)")
    for conflict in conflicts:
        console.print(f"[yellow]Not imported:[/yellow] {conflict} (rule {conflict.existing_rule_id})")


@rules_app.command("create")
def rules_create(
    prompt: Annotated[str, typer.Argument(help="What the rule should do, in plain words")],
) -> None:
    """Create a rule from a plain-language prompt."""
    from inbox_rules.ai import get_provider
    from inbox_rules.rules.builder import RuleBuilder

    settings = get_settings()
    setup(settings)
    rules, _ = open_stores(settings)
    builder = RuleBuilder(rules, get_provider(settings))

    try:
        rule = asyncio.run(builder.create_rule_from_prompt(get_session(settings), prompt))
    except GroupInUseError as e:
        console.print(f"[red]{e}[/red] (rule {e.existing_rule_id})")
        raise typer.Exit(1)
    except InboxRulesError as e:
        console.print(f"[red]Could not create rule:[/red] {e}")
        raise typer.Exit(1)

    console.print(f"[green]✓ Created rule[/green] {rule.name} ({rule.type.value})")
    console.print("[dim]New rules are not automated; review its plans first.[/dim]")


RULE_REF_HELP = "Rule name or id"


def find_rule(rules, user_id: str, ref: str):
    """Look a rule up by id, or by name ignoring case."""
    for rule in rules.list_rules(user_id):
        if rule.id == ref or rule.name.lower() == ref.lower():
            return rule
    console.print(f"[red]No rule named {ref}[/red]")
    raise typer.Exit(1)


@rules_app.command("export")
def rules_export(
    path: Annotated[
        Path | None,
        typer.Argument(help="YAML file to write (default: rules file in config dir)"),
    ] = None,
) -> None:
    """Write your rules to a YAML file that rules import accepts."""
    from inbox_rules.rules.loader import export_rules

    settings = get_settings()
    rules, _ = open_stores(settings)
    path = path or settings.rules_path

    definitions = export_rules(rules, settings.user_id)
    save_rules(path, definitions)
    console.print(f"[green]✓ Exported {len(definitions)} rules[/green] to {path}")


@rules_app.command("enable")
def rules_enable(
    rule_ref: Annotated[str, typer.Argument(help=RULE_REF_HELP)],
    on: Annotated[bool, typer.Option("--on/--off", help="Enable or disable the rule")] = True,
) -> None:
    """Enable or disable a rule."""
    settings = get_settings()
    rules, _ = open_stores(settings)
    rule = rules.set_enabled(find_rule(rules, settings.user_id, rule_ref).id, settings.user_id, on)
    console.print(f"{rule.name}: {'enabled' if rule.enabled else 'disabled'}")


@rules_app.command("automate")
def rules_automate(
    rule_ref: Annotated[str, typer.Argument(help=RULE_REF_HELP)],
    on: Annotated[bool, typer.Option("--on/--off", help="Run actions without approval")] = True,
) -> None:
    """Execute a rule's actions immediately instead of waiting for approval."""
    settings = get_settings()
    rules, _ = open_stores(settings)
    rule = rules.set_automate(find_rule(rules, settings.user_id, rule_ref).id, settings.user_id, on)
    state = "runs automatically" if rule.automate else "needs approval"
    console.print(f"{rule.name}: {state}")


@rules_app.command("threads")
def rules_threads(
    rule_ref: Annotated[str, typer.Argument(help=RULE_REF_HELP)],
    on: Annotated[bool, typer.Option("--on/--off", help="Apply to replies in threads")] = True,
) -> None:
    """Apply a rule to replies in threads, not just the first message."""
    settings = get_settings()
    rules, _ = open_stores(settings)
    rule = rules.set_run_on_threads(
        find_rule(rules, settings.user_id, rule_ref).id, settings.user_id, on
    )
    state = "applies to threads" if rule.run_on_threads else "first message only"
    console.print(f"{rule.name}: {state}")


# === Plans Commands ===


@plans_app.command("list")
def plans_list(
    status: Annotated[
        str,
        typer.Option("--status", "-s", help="pending, approved, rejected or skipped"),
    ] = "pending",
    limit: Annotated[int, typer.Option("--limit", "-l", help="Max plans to show")] = 20,
) -> None:
    """List plans by status."""
    from inbox_rules.engine.models import PlanStatus

    settings = get_settings()
    rules, plans = open_stores(settings)

    try:
        plan_status = PlanStatus(status.upper())
    except ValueError:
        console.print(f"[red]Unknown status:[/red] {status}")
        raise typer.Exit(1)

    items = plans.list_plans(settings.user_id, status=plan_status, limit=limit)
    if not items:
        console.print(f"[yellow]No {status.lower()} plans[/yellow]")
        return

    names = {r.id: r.name for r in rules.list_rules(settings.user_id)}

    table = Table(title=f"{plan_status.value.title()} Plans")
    table.add_column("ID", style="dim", width=6)
    table.add_column("Message", style="cyan", width=12)
    table.add_column("Rule", style="blue")
    table.add_column("Actions", style="green")
    table.add_column("Reason", max_width=40)
    table.add_column("Created", style="dim", width=16)

    for plan in items:
        table.add_row(
            str(plan.id),
            plan.message_id[:12],
            names.get(plan.rule_id, "-") if plan.rule_id else "-",
            ", ".join(i.type.value for i in plan.items) or "-",
            (plan.reason or "")[:40],
            plan.created_at.isoformat()[:16],
        )

    console.print(table)
    if plan_status == PlanStatus.PENDING:
        console.print("\nUse [bold]inbox-rules plans show <id>[/bold] or [bold]plans reject <id>[/bold]")


@plans_app.command("show")
def plans_show(
    plan_id: Annotated[int, typer.Argument(help="Plan ID")],
) -> None:
    """Show a plan with its action items and outcomes."""
    settings = get_settings()
    _, plans = open_stores(settings)

    try:
        plan = plans.get_plan(plan_id, settings.user_id)
    except InboxRulesError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    console.print(f"\n[bold]Plan {plan.id}[/bold] ({plan.status.value})")
    console.print(f"[bold]Message:[/bold] {plan.message_id}")
    console.print(f"[bold]Thread:[/bold] {plan.thread_id}")
    console.print(f"[bold]Reason:[/bold] {plan.reason or '-'}")
    console.print(f"[bold]Automated:[/bold] {'Yes' if plan.automated else 'No'}")
    if plan.executed_at:
        console.print(f"[bold]Executed:[/bold] {plan.executed_at.isoformat()[:19]}")

    if not plan.action_items:
        return

    table = Table(title="Actions")
    table.add_column("#", style="dim", width=3)
    table.add_column("Type", style="green", width=12)
    table.add_column("Arguments", max_width=50)
    table.add_column("Outcome", width=10)
    table.add_column("Detail", max_width=40)

    for planned in plan.action_items:
        args = planned.item.model_dump(exclude={"type"})
        outcome = planned.outcome
        table.add_row(
            str(planned.position + 1),
            planned.item.type.value,
            ", ".join(f"{k}={v!r}" for k, v in args.items() if v) or "-",
            outcome.status.value if outcome else "-",
            (outcome.error or outcome.detail or "")[:40] if outcome else "",
        )

    console.print(table)


@plans_app.command("reject")
def plans_reject(
    plan_id: Annotated[int, typer.Argument(help="Plan ID to reject")],
) -> None:
    """Reject a pending plan."""
    settings = get_settings()
    setup(settings)
    _, plans = open_stores(settings)

    from inbox_rules.engine.models import PlanStatus
    from inbox_rules.logging import get_user_logger

    try:
        plan = plans.transition(plan_id, settings.user_id, PlanStatus.REJECTED, source="cli")
    except InboxRulesError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    get_user_logger(plan.user_id).info("Plan %d rejected from the CLI", plan.id)
    console.print(f"[yellow]✓ Rejected plan {plan.id}[/yellow]")


@app.command()
def history(
    limit: Annotated[int, typer.Option("--limit", "-l", help="Max items to show")] = 20,
) -> None:
    """Show executed actions, newest first."""
    settings = get_settings()
    _, plans = open_stores(settings)

    rows = plans.history(settings.user_id, limit=limit)
    if not rows:
        console.print("[yellow]No action history found[/yellow]")
        return

    table = Table(title="Action History")
    table.add_column("Time", style="dim", width=16)
    table.add_column("Plan", style="dim", width=6)
    table.add_column("Rule", style="blue")
    table.add_column("Action", style="green", width=12)
    table.add_column("Outcome", width=10)
    table.add_column("Details", max_width=40)

    for row in rows:
        outcome = row["outcome"] or "-"
        style = {"SUCCEEDED": "green", "FAILED": "red"}.get(outcome, "yellow")
        table.add_row(
            (row["executed_at"] or "")[:16],
            str(row["plan_id"]),
            row["rule_name"] or "-",
            row["type"],
            f"[{style}]{outcome}[/{style}]",
            (row["error"] or row["detail"] or "")[:40],
        )

    console.print(table)


# === Sender Commands ===


@senders_app.command("categorize")
def senders_categorize(
    senders: Annotated[list[str], typer.Argument(help="Sender email addresses")],
) -> None:
    """Categorize senders with the AI provider and save the result."""
    from inbox_rules.ai import get_provider
    from inbox_rules.categorize import CategorizationQueue, QueueStatus

    settings = get_settings()
    setup(settings)
    rules, _ = open_stores(settings)

    queue = CategorizationQueue(
        rules, get_provider(settings), concurrency=settings.categorize_concurrency
    )
    queue.push(senders)

    try:
        items = asyncio.run(queue.process(get_session(settings)))
    except InboxRulesError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    table = Table(title="Sender Categories")
    table.add_column("Sender", style="cyan")
    table.add_column("Category", style="green")
    table.add_column("Status", width=10)

    for sender, item in items.items():
        status = item.status.value
        if item.status == QueueStatus.FAILED:
            status = f"[red]{status}[/red]"
        table.add_row(sender, item.category or item.error or "-", status)

    console.print(table)
    if any(item.status == QueueStatus.FAILED for item in items.values()):
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
