"""Sirichai chatbot maintenance CLI.

Housekeeping jobs that run from cron or by hand, outside the web server.

Usage:
    sirichai-bot auto-resume                 Resume conversations paused too long
    sirichai-bot cleanup-conversations       Delete idle conversations
    sirichai-bot files list                  List files uploaded to Gemini
    sirichai-bot refresh-cache               Drop catalog and file caches
    sirichai-bot init-db                     Create database tables
"""

import asyncio
import os
from typing import Optional

import typer
from rich.console import Console
from sqlalchemy.exc import SQLAlchemyError

from sirichai_bot.config import ConfigError, Settings, get_settings
from sirichai_bot.db.config import Database
from sirichai_bot.db.init import init_db
from sirichai_bot.dependencies import build_file_manager, build_product_api
from sirichai_bot.services.conversation_service import ConversationManager, ConversationStoreError
from sirichai_bot.services.gemini_files import GeminiFileError
from sirichai_bot.utils.logger import setup_logging

app = typer.Typer(
    name="sirichai-bot",
    help="Sirichai chatbot maintenance commands",
    no_args_is_help=True,
)
files_app = typer.Typer(help="Manage files uploaded to the Gemini File API")
app.add_typer(files_app, name="files")

console = Console()


def _settings() -> Settings:
    settings = get_settings()
    setup_logging(settings.log_level)
    return settings


def _conversation_manager(settings: Settings, db) -> ConversationManager:
    return ConversationManager(
        db,
        max_messages=settings.max_messages_per_conversation,
        retention_days=settings.message_retention_days,
    )


@app.command("auto-resume")
def auto_resume(
    minutes: Optional[int] = typer.Option(
        None, "--minutes", "-m", help="Pause timeout (default AUTO_RESUME_TIMEOUT_MINUTES)"
    ),
):
    """Re-enable the chatbot for conversations paused longer than the timeout."""
    settings = _settings()
    timeout = minutes if minutes is not None else settings.auto_resume_timeout_minutes
    database = Database(settings.database_url)
    try:
        with database.session() as db:
            resumed = _conversation_manager(settings, db).auto_resume(timeout)
    except (ConversationStoreError, SQLAlchemyError) as e:
        console.print(f"[red]Auto-resume failed:[/red] {e}")
        raise typer.Exit(1)
    finally:
        database.dispose()
    console.print(f"Auto-resumed {resumed} conversation(s) paused longer than {timeout} minutes")


@app.command("cleanup-conversations")
def cleanup_conversations(
    max_age_hours: int = typer.Option(..., "--max-age-hours", help="Delete conversations idle this long"),
):
    """Delete conversations with no activity in the last N hours."""
    settings = _settings()
    database = Database(settings.database_url)
    try:
        with database.session() as db:
            deleted = _conversation_manager(settings, db).cleanup_old_conversations(max_age_hours)
    except (ConversationStoreError, SQLAlchemyError) as e:
        console.print(f"[red]Cleanup failed:[/red] {e}")
        raise typer.Exit(1)
    finally:
        database.dispose()
    console.print(f"Deleted {deleted} conversation(s) idle for more than {max_age_hours} hours")


@files_app.command("list")
def files_list():
    """List files currently stored in the Gemini File API."""
    manager = build_file_manager(_settings())
    try:
        files = asyncio.run(manager.list_files())
    except GeminiFileError as e:
        console.print(f"[red]Could not list files:[/red] {e}")
        raise typer.Exit(1)

    if not files:
        console.print("No files uploaded.")
        return
    for info in files:
        console.print(
            f"{info.get('name')}  {info.get('displayName', '')}  "
            f"{info.get('sizeBytes', '?')} bytes  expires {info.get('expirationTime', '?')}"
        )
    console.print(f"\n{len(files)} file(s)")


@files_app.command("info")
def files_info(name: str = typer.Argument(help="File name, e.g. files/abc123")):
    """Show metadata of one uploaded file."""
    info = asyncio.run(build_file_manager(_settings()).get_file_info(name))
    if info is None:
        console.print(f"[red]File {name} not found[/red]")
        raise typer.Exit(1)
    for key in ("name", "displayName", "mimeType", "sizeBytes", "createTime", "expirationTime", "state", "uri"):
        if key in info:
            console.print(f"{key}: {info[key]}")


@files_app.command("delete-all")
def files_delete_all():
    """Delete every uploaded file and reset the local file cache."""
    manager = build_file_manager(_settings())
    try:
        summary = asyncio.run(manager.delete_all_files())
    except GeminiFileError as e:
        console.print(f"[red]Could not list files:[/red] {e}")
        raise typer.Exit(1)

    console.print(f"Deleted: {summary['deleted']}  Failed: {summary['failed']}")
    for error in summary["errors"]:
        console.print(f"  [yellow]{error}[/yellow]")
    if summary["failed"]:
        raise typer.Exit(1)


@files_app.command("delete")
def files_delete(name: str = typer.Argument(help="File name, e.g. files/abc123")):
    """Delete one uploaded file."""
    manager = build_file_manager(_settings())
    if not asyncio.run(manager.delete_file(name)):
        console.print(f"[red]Failed to delete {name}[/red]")
        raise typer.Exit(1)
    console.print(f"Deleted {name}")


@app.command("refresh-cache")
def refresh_cache():
    """Clear the catalog cache and the uploaded-file cache."""
    settings = _settings()
    os.makedirs(settings.cache_dir, exist_ok=True)
    catalog_cleared = build_product_api(settings).clear_cache()
    build_file_manager(settings).clear_cache()
    console.print(f"Catalog cache {'cleared' if catalog_cleared else 'was already empty'}")
    console.print("File cache cleared; the catalog will be re-uploaded on the next chat")


@app.command("init-db")
def init_database():
    """Create database tables."""
    settings = _settings()
    database = Database(settings.database_url)
    try:
        init_db(database)
    finally:
        database.dispose()
    console.print("[green]Database tables initialized.[/green]")


@app.command("check-config")
def check_config():
    """Verify that every required environment variable is set."""
    try:
        _settings().validate()
    except ConfigError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)
    console.print("[green]Configuration is valid.[/green]")


def main():
    app()


if __name__ == "__main__":
    main()
