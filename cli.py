import asyncio
import logging
from typing import Annotated, Optional

import typer

from database import Base, engine, SessionLocal, get_settings
from models import ContestantStatus
from core.room_repository import SqlRoomRepository
from core.runtime import DraftRuntime
from core.exceptions import DraftException, RoomNotFound
from services.catalog_service import load_cast

logger = logging.getLogger("auction_draft.cli")

app = typer.Typer(help="Auction draft CLI")


def _runtime() -> DraftRuntime:
    Base.metadata.create_all(bind=engine)
    return DraftRuntime.build(SqlRoomRepository(SessionLocal), get_settings())


@app.callback()
def main(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Debug logging.")] = False,
):
    logging.basicConfig(
        level=logging.DEBUG if verbose else get_settings().log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s -- %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


@app.command()
def serve(
    host: Annotated[str, typer.Option(help="Bind address.")] = "0.0.0.0",
    port: Annotated[int, typer.Option(help="Port.")] = 8000,
):
    """Run the API / WebSocket server."""
    import uvicorn

    uvicorn.run("main:app", host=host, port=port)


@app.command("create-room")
def create_room(
    cast_file: Annotated[
        Optional[str], typer.Option("--file", "-f", help="Cast JSON to seed the room with.")
    ] = None,
):
    """Create a room and print its code and admin key."""
    contestants = load_cast(cast_file or get_settings().cast_file)
    room = asyncio.run(_runtime().rooms.create_room(contestants))
    typer.echo(f"Room: {room.id}")
    typer.echo(f"Admin key: {room.admin_key}")
    typer.echo(f"Contestants: {len(room.contestants)}")


@app.command("check-room")
def check_room(room_id: str):
    """Show player and contestant counts for a room."""
    try:
        room = asyncio.run(_runtime().rooms.get_room(room_id.upper()))
    except RoomNotFound:
        typer.echo(f"Room {room_id} not found", err=True)
        raise typer.Exit(code=1)

    drafted = sum(1 for c in room.contestants.values() if c.status == ContestantStatus.DRAFTED)
    typer.echo(f"Room {room.id} ({room.phase.value})")
    typer.echo(f"   Players: {len(room.players)}")
    typer.echo(f"   Contestants: {len(room.contestants)} ({drafted} drafted)")
    for i, contestant in enumerate(list(room.contestants.values())[:5], start=1):
        typer.echo(f"   {i}. {contestant.name}")


@app.command("import-cast")
def import_cast(
    room_id: str,
    admin_key: str,
    cast_file: Annotated[
        Optional[str], typer.Option("--file", "-f", help="Cast JSON file.")
    ] = None,
):
    """
    Import a cast file into an existing room.

    Writes straight to the database: run it while the server is stopped,
    or the server keeps serving its cached copy of the room.
    """
    entries = load_cast(cast_file or get_settings().cast_file)
    if not entries:
        typer.echo("No contestants to import", err=True)
        raise typer.Exit(code=1)

    try:
        imported = asyncio.run(
            _runtime().rooms.import_contestants(room_id.upper(), admin_key, entries)
        )
    except DraftException as e:
        typer.echo(f"Import failed: {e}", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"Imported {imported} contestants to room {room_id.upper()}")


if __name__ == "__main__":
    app()
