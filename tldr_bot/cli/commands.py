"""CLI commands for TLDR Bot."""

import asyncio
import logging
import os

import click

from ..ai.errors import SummarizationError, classify_generation_error
from ..ai.gemini_client import GeminiClient
from ..database.repository import DatabaseRepository
from ..database.secrets import StoredSecretCodec
from ..database.models import SCHEDULE_FREQUENCIES, SUMMARY_STYLES
from ..pipeline.models import ChatKind, SummaryRequest, SummaryRequestError
from ..pipeline.settings_actions import (
    ExcludeUser,
    IncludeUser,
    SetCustomPrompt,
    SetExcludeBots,
    SetExcludeCommands,
    SetSchedule,
    SetStyle,
    SettingsState,
    apply_action,
)
from ..pipeline.summarizer_factory import SummarizerFactory
from ..pipeline.summary_pipeline import SummaryPipeline
from ..scheduler.jobs import LifecycleScheduler
from ..utils.rate_limiter import RateLimiter
from ..utils.timezone import to_configured_timezone

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = '/data/tldr_bot.db'


def _db_path_option(func):
    return click.option('--db-path', envvar='DB_PATH', default=DEFAULT_DB_PATH, help='Database path')(func)


def _print_settings(settings):
    click.echo(f"  Style: {settings.summary_style}")
    click.echo(f"  Custom prompt: {'set' if settings.custom_prompt else 'none'}")
    click.echo(f"  Exclude bot messages: {'Yes' if settings.exclude_bot_messages else 'No'}")
    click.echo(f"  Exclude commands: {'Yes' if settings.exclude_commands else 'No'}")
    excluded = ', '.join(str(uid) for uid in (settings.excluded_user_ids or [])) or 'none'
    click.echo(f"  Excluded users: {excluded}")
    if settings.schedule_enabled:
        click.echo(f"  Schedule: {settings.schedule_frequency} at {settings.schedule_time} UTC")
    else:
        click.echo("  Schedule: off")


@click.group()
@click.pass_context
def cli(ctx):
    """TLDR Bot - Telegram group chat summaries powered by Gemini."""
    ctx.ensure_object(dict)


# =========================================================================
# Daemon
# =========================================================================

async def _run_daemon(token: str, db_path: str):
    """Run the Telegram bot and lifecycle scheduler until cancelled."""
    from telegram import Update
    from telegram.ext import Application

    from ..messaging.membership import TelegramMembership
    from ..messaging.telegram_bot import TldrTelegramBot
    from ..messaging.transport import TelegramTransport
    from ..pipeline.summary_poster import SummaryPoster

    db_repo = DatabaseRepository(db_path)
    summarizer_factory = SummarizerFactory(StoredSecretCodec())
    rate_limiter = RateLimiter(float(os.getenv('TLDR_RATE_LIMIT_SECONDS', '30')))
    pipeline = SummaryPipeline(db_repo, summarizer_factory, rate_limiter)

    application = Application.builder().token(token).build()
    membership = TelegramMembership(application.bot)
    TldrTelegramBot(application, db_repo, pipeline, membership)

    summary_poster = SummaryPoster(TelegramTransport(application.bot), summarizer_factory, db_repo)
    scheduler = LifecycleScheduler(
        db_repo=db_repo,
        summarizer_factory=summarizer_factory,
        summary_poster=summary_poster,
        membership=membership,
    )

    active = db_repo.get_active_group_configs()
    click.echo("\n📝 TLDR Bot")
    click.echo(f"✓ Active groups: {len(active)}")
    click.echo(f"🗑️  Eviction: every {scheduler.eviction_interval_hours}h "
               f"(messages older than {scheduler.message_retention_hours}h)")
    click.echo(f"📦 Summary retention: {scheduler.summary_retention_days} days")

    await application.initialize()
    await application.start()
    await application.updater.start_polling(allowed_updates=Update.ALL_TYPES)
    scheduler.start()
    click.echo("\n✓ TLDR Bot daemon started. Press Ctrl+C to stop.\n")

    try:
        await asyncio.Event().wait()
    finally:
        scheduler.stop()
        await application.updater.stop()
        await application.stop()
        await application.shutdown()


@cli.command()
@click.option('--token', envvar='TELEGRAM_BOT_TOKEN', required=True, help='Telegram bot token')
@_db_path_option
def daemon(token, db_path):
    """Run the Telegram bot with scheduled eviction and summaries."""
    click.echo("Starting TLDR Bot daemon...")
    try:
        asyncio.run(_run_daemon(token, db_path))
    except KeyboardInterrupt:
        click.echo("\n✓ TLDR Bot daemon stopped")


# =========================================================================
# Group management
# =========================================================================

@cli.command('add-group')
@click.option('--chat-id', required=True, type=int, help='Telegram chat ID of the group')
@click.option('--api-key', required=True, help="The group's Gemini API key")
@click.option('--setup-by', type=int, help='Telegram user ID of the admin setting the group up')
@click.option('--verify', is_flag=True, help='Make a test request with the key before saving it')
@_db_path_option
def add_group(chat_id, api_key, setup_by, verify, db_path):
    """Create or complete a group configuration."""
    api_key = api_key.strip()
    if not GeminiClient.is_valid_api_key_format(api_key):
        click.echo("✗ That does not look like a Gemini API key.")
        raise SystemExit(1)

    if verify:
        click.echo("Verifying API key...")
        try:
            asyncio.run(GeminiClient(api_key).check_api_key())
        except Exception as e:
            error = classify_generation_error(e)
            click.echo(f"✗ {error.user_message if error else f'API key check failed: {e}'}")
            raise SystemExit(1)
        click.echo("✓ API key works")

    db_repo = DatabaseRepository(db_path)
    db_repo.create_group_config(chat_id, setup_by_user_id=setup_by)
    group = db_repo.set_group_api_key(chat_id, StoredSecretCodec().conceal(api_key))
    db_repo.get_group_settings(chat_id)

    click.echo(f"✓ Group {chat_id} configured ({'enabled' if group.enabled else 'disabled'})")


@cli.command('set-enabled')
@click.option('--chat-id', required=True, type=int, help='Telegram chat ID of the group')
@click.option('--enabled/--disabled', required=True, help='Enable or disable summaries')
@_db_path_option
def set_enabled(chat_id, enabled, db_path):
    """Enable or disable summaries for a group."""
    db_repo = DatabaseRepository(db_path)
    group = db_repo.set_group_enabled(chat_id, enabled)
    if group is None:
        click.echo(f"✗ Group {chat_id} not found")
        raise SystemExit(1)
    click.echo(f"✓ Group {chat_id} {'enabled' if enabled else 'disabled'}")


@cli.command('remove-group')
@click.option('--chat-id', required=True, type=int, help='Telegram chat ID of the group')
@_db_path_option
@click.confirmation_option(prompt='Remove this group, its cached messages and its summaries?')
def remove_group(chat_id, db_path):
    """Remove a group and everything stored for it."""
    db_repo = DatabaseRepository(db_path)
    if db_repo.delete_group_config(chat_id):
        click.echo(f"✓ Removed group {chat_id}")
    else:
        click.echo(f"✗ Group {chat_id} not found")


@cli.command('list-groups')
@_db_path_option
def list_groups(db_path):
    """List configured groups."""
    db_repo = DatabaseRepository(db_path)
    groups = db_repo.get_all_group_configs()

    click.echo("\n=== Configured Groups ===\n")
    if not groups:
        click.echo("No groups configured. Use 'add-group' to configure one.")
        return

    counts = db_repo.get_message_count_by_chat()
    for group in groups:
        if group.is_pending:
            status = "⏳ pending"
        elif group.enabled:
            status = "✓ active"
        else:
            status = "✗ disabled"
        click.echo(f"{group.chat_id}  {status}  ({counts.get(group.chat_id, 0)} cached messages)")
        if group.setup_by_user_id:
            click.echo(f"    Set up by: {group.setup_by_user_id}")
        click.echo(f"    Added: {to_configured_timezone(group.created_at).strftime('%Y-%m-%d %H:%M %Z')}")


# =========================================================================
# Settings
# =========================================================================

@cli.command()
@click.option('--chat-id', required=True, type=int, help='Telegram chat ID of the group')
@click.option('--style', type=click.Choice(SUMMARY_STYLES), help='Summary style')
@click.option('--custom-prompt', help='Custom prompt template ({{messages}} marks where messages go)')
@click.option('--clear-custom-prompt', is_flag=True, help='Remove the custom prompt')
@click.option('--exclude-bots/--include-bots', default=None, help='Drop messages from bot accounts')
@click.option('--exclude-commands/--include-commands', default=None, help='Drop /command messages')
@click.option('--exclude-user', type=int, multiple=True, help='User ID to leave out of summaries')
@click.option('--include-user', type=int, multiple=True, help='User ID to include again')
@click.option('--schedule/--no-schedule', 'schedule_enabled', default=None, help='Enable scheduled summaries')
@click.option('--frequency', type=click.Choice(SCHEDULE_FREQUENCIES), help='Schedule frequency')
@click.option('--time', 'schedule_time', help='Schedule time, HH:MM UTC')
@_db_path_option
def settings(chat_id, style, custom_prompt, clear_custom_prompt, exclude_bots, exclude_commands,
             exclude_user, include_user, schedule_enabled, frequency, schedule_time, db_path):
    """Show or change a group's summary settings."""
    db_repo = DatabaseRepository(db_path)
    if db_repo.get_group_config(chat_id) is None:
        click.echo(f"✗ Group {chat_id} not found")
        raise SystemExit(1)

    state = SettingsState.from_model(db_repo.get_group_settings(chat_id))

    actions = []
    if style:
        actions.append(SetStyle(style))
    if clear_custom_prompt:
        actions.append(SetCustomPrompt(None))
    elif custom_prompt is not None:
        actions.append(SetCustomPrompt(custom_prompt))
    if exclude_bots is not None:
        actions.append(SetExcludeBots(exclude_bots))
    if exclude_commands is not None:
        actions.append(SetExcludeCommands(exclude_commands))
    actions.extend(ExcludeUser(uid) for uid in exclude_user)
    actions.extend(IncludeUser(uid) for uid in include_user)
    if schedule_enabled is not None or frequency or schedule_time:
        enabled = state.schedule_enabled if schedule_enabled is None else schedule_enabled
        actions.append(SetSchedule(enabled, frequency=frequency, time=schedule_time))

    try:
        for action in actions:
            state = apply_action(state, action)
    except ValueError as e:
        click.echo(f"✗ {e}")
        raise SystemExit(1)

    if actions:
        updated = db_repo.update_group_settings(chat_id, **state.to_columns())
        click.echo(f"✓ Updated settings for group {chat_id}")
    else:
        updated = db_repo.get_group_settings(chat_id)
        click.echo(f"Settings for group {chat_id}:")

    _print_settings(updated)


# =========================================================================
# Manual operations
# =========================================================================

@cli.command()
@click.option('--chat-id', required=True, type=int, help='Telegram chat ID of the group')
@click.option('--timeframe', default='', help='Timeframe or message count (e.g. 6h, 2d, week, 200)')
@_db_path_option
def summarize(chat_id, timeframe, db_path):
    """Print a summary to the console without posting it."""
    db_repo = DatabaseRepository(db_path)
    pipeline = SummaryPipeline(db_repo, SummarizerFactory(StoredSecretCodec()))
    request = SummaryRequest(chat_id=chat_id, user_id=0, chat_kind=ChatKind.GROUP, argument=timeframe)

    try:
        result = asyncio.run(pipeline.handle_request(request))
    except (SummaryRequestError, SummarizationError) as e:
        click.echo(f"✗ {e.user_message}")
        raise SystemExit(1)

    click.echo(f"\n=== Summary for {chat_id} ({result.label}, {result.message_count} messages) ===\n")
    click.echo(result.text)


@cli.command()
@_db_path_option
def evict(db_path):
    """Summarize and delete expired messages now."""
    db_repo = DatabaseRepository(db_path)
    scheduler = LifecycleScheduler(
        db_repo=db_repo,
        summarizer_factory=SummarizerFactory(StoredSecretCodec()),
        summary_poster=None,
        membership=None,
    )

    click.echo(f"Evicting messages older than {scheduler.message_retention_hours}h...")
    results = asyncio.run(scheduler.run_eviction_now())

    click.echo(f"✓ Summaries created: {results['summaries_created']}")
    if results['chats_failed']:
        click.echo(f"⚠ Chats whose summary failed: {results['chats_failed']}")
    click.echo(f"✓ Messages deleted: {results['messages_deleted']}")


@cli.command()
@_db_path_option
def stats(db_path):
    """Show cached message and summary counts."""
    db_repo = DatabaseRepository(db_path)
    data = db_repo.get_stats()

    click.echo("\n=== TLDR Bot Stats ===\n")
    click.echo(f"Groups: {data['total_groups']} ({data['active_groups']} active)")
    click.echo(f"Cached messages: {data['total_messages']}")
    click.echo(f"Archived summaries: {data['total_summaries']}")
    if data['oldest_message']:
        click.echo(f"Oldest cached message: {to_configured_timezone(data['oldest_message']).strftime('%Y-%m-%d %H:%M %Z')}")
    if data['newest_message']:
        click.echo(f"Newest cached message: {to_configured_timezone(data['newest_message']).strftime('%Y-%m-%d %H:%M %Z')}")
    for chat_id, count in sorted(data['messages_by_chat'].items()):
        click.echo(f"  {chat_id}: {count} messages")


@cli.command()
@click.option('--host', envvar='API_HOST', default='0.0.0.0', help='API server host')
@click.option('--port', envvar='API_PORT', default=8000, type=int, help='API server port')
@click.option('--reload', 'auto_reload', is_flag=True, help='Enable auto-reload for development')
def api(host, port, auto_reload):
    """Start the REST API server.

    The API requires the API_SECRET environment variable for authentication.
    """
    import uvicorn

    if not os.getenv('API_SECRET'):
        click.echo("⚠️  Warning: API_SECRET not set. API authentication will be disabled!")
        click.echo("   Set API_SECRET environment variable for production use.\n")

    click.echo("\n=== TLDR Bot API ===")
    click.echo(f"Starting API server on {host}:{port}")
    click.echo(f"Documentation available at: http://{host}:{port}/api/docs")
    click.echo()

    uvicorn.run(
        "tldr_bot.api.main:create_app",
        factory=True,
        host=host,
        port=port,
        reload=auto_reload,
        log_level=os.getenv('LOG_LEVEL', 'info').lower()
    )
