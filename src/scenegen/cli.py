"""CLI entry point for the scene generator."""

import logging
import typer
from pathlib import Path
from typing import Optional

from . import __version__
from .config import config
from .errors import NotificationLevel
from .models import AspectRatio, GenerationConfig, ReferenceImage, SceneStatus
from .pipeline import EventType, PipelineEvent
from .storage import BoundedSessionStore, DirectoryStorage, PromptHistoryIndex, WorkspaceStore

app = typer.Typer(
    name="scene-maker",
    help="Turn a script into AI-generated scene images",
    no_args_is_help=True
)

STATUS_ICONS = {
    SceneStatus.PENDING: "⏳",
    SceneStatus.LOADING: "⏳",
    SceneStatus.SUCCEEDED: "✅",
    SceneStatus.FAILED: "❌",
}

LEVEL_ICONS = {
    NotificationLevel.ERROR: "❌",
    NotificationLevel.INFO: "ℹ️ ",
    NotificationLevel.SUCCESS: "✅",
}


def setup_logging(verbose: bool = False) -> None:
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(levelname)s: %(message)s",
    )


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"scene-maker version {__version__}")
        raise typer.Exit()


def _preview(text: str, width: int = 60) -> str:
    return text[:width] + "..." if len(text) > width else text


def _open_stores():
    storage = DirectoryStorage(config.storage_dir, config.storage_quota_bytes)
    sessions = BoundedSessionStore(storage)
    history = PromptHistoryIndex(storage, sessions)
    return sessions, history, WorkspaceStore(storage)


def _open_studio():
    """Build a studio backed by the real services."""
    from .agents import ScriptDecomposerAgent, StyleAnalysisAgent
    from .pipeline import GenerationPipeline
    from .services import AnthropicClient, ImagenClient
    from .studio import Studio

    try:
        config.validate_required()
        config.validate_imagen_required()
    except ValueError as e:
        typer.echo(f"❌ API key is not configured: {e}")
        raise typer.Exit(1)

    client = AnthropicClient()
    pipeline = GenerationPipeline(
        synthesizer=ImagenClient(),
        decomposer=ScriptDecomposerAgent(client=client),
        style_analyzer=StyleAnalysisAgent(client=client),
    )
    pipeline.subscribe(_render_event)
    return Studio.open(pipeline)


def _render_event(event: PipelineEvent) -> None:
    """Print pipeline progress as it happens."""
    if event.type == EventType.STATE_CHANGED and event.state is not None:
        typer.echo(f"   → {event.state.value.replace('_', ' ')}")
    elif event.type == EventType.SCENE_UPDATED and event.scene is not None:
        scene = event.scene
        if scene.status != SceneStatus.LOADING:
            icon = STATUS_ICONS[scene.status]
            typer.echo(f"   {icon} Scene {scene.id + 1}: {_preview(scene.prompt)}")
    elif event.type == EventType.NOTIFICATION and event.notification is not None:
        typer.echo(f"   {LEVEL_ICONS[event.notification.level]} {event.notification.text}")


def _load_reference(reference: Optional[Path]) -> Optional[ReferenceImage]:
    if reference is None:
        return None
    try:
        return ReferenceImage.from_path(reference)
    except OSError as e:
        typer.echo(f"❌ Could not read reference image: {e}")
        raise typer.Exit(1)


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit"
    )
) -> None:
    """Scene Maker - Turn scripts into scene images using AI."""
    pass


@app.command()
def generate(
    script_file: Path = typer.Argument(
        ...,
        help="Script text file (.txt or .md)",
        exists=True,
        file_okay=True,
        dir_okay=False
    ),
    style: str = typer.Option(
        "",
        "--style",
        help="Visual style keywords (e.g., 'watercolor, muted palette')"
    ),
    reference: Optional[Path] = typer.Option(
        None,
        "--reference",
        "-r",
        help="Reference image whose style should be matched",
        exists=True,
        file_okay=True,
        dir_okay=False
    ),
    aspect_ratio: AspectRatio = typer.Option(
        AspectRatio.LANDSCAPE,
        "--aspect-ratio",
        "-a",
        help="Image aspect ratio"
    ),
    scenes: Optional[int] = typer.Option(
        None,
        "--scenes",
        "-n",
        help="Number of scenes (auto-detected if not specified)",
        min=1
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose logging"
    ),
) -> None:
    """Generate one image per scene of a script and save the session."""
    setup_logging(verbose)

    try:
        script = script_file.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        typer.echo(f"❌ Failed to read the script file: {e}")
        raise typer.Exit(1)

    generation = GenerationConfig(
        script=script,
        style_keywords=style,
        reference_image=_load_reference(reference),
        aspect_ratio=aspect_ratio,
        target_scene_count=scenes,
    )

    studio = _open_studio()
    typer.echo(f"🎬 Generating scenes for {script_file}")
    outcome = studio.generate(generation, reference_path=reference)

    run = outcome.run
    typer.echo(f"\n📋 {len(run.succeeded)}/{len(run.scenes)} scenes generated")

    if outcome.assembly is not None:
        if outcome.assembly.notification:
            note = outcome.assembly.notification
            typer.echo(f"{LEVEL_ICONS[note.level]} {note.text}")
        if outcome.assembly.committed:
            typer.echo(f"✅ Session saved: {outcome.assembly.session.id}")

    if not run.succeeded:
        raise typer.Exit(1)


@app.command()
def regenerate(
    scene_id: int = typer.Argument(
        ...,
        help="Scene number as shown by 'status' (1-based)",
        min=1
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose logging"
    ),
) -> None:
    """Regenerate a single scene of the current workspace."""
    setup_logging(verbose)

    studio = _open_studio()
    draft = studio.resume()
    if not draft.scenes:
        typer.echo("❌ The workspace has no scenes. Run 'scene-maker generate' first.")
        raise typer.Exit(1)

    reference = Path(draft.reference_image_path) if draft.reference_image_path else None
    generation = GenerationConfig(
        script=draft.script,
        style_keywords=draft.style,
        reference_image=_load_reference(reference),
        aspect_ratio=draft.aspect_ratio,
        target_scene_count=draft.scene_count_hint,
    )

    try:
        scene = studio.regenerate(scene_id - 1, generation, reference_path=reference)
    except KeyError:
        typer.echo(f"❌ No scene {scene_id} in the workspace")
        raise typer.Exit(1)

    if scene.status != SceneStatus.SUCCEEDED:
        raise typer.Exit(1)


@app.command()
def status() -> None:
    """Show the dashboard: recent sessions and the current workspace."""
    sessions, _, workspace = _open_stores()

    all_sessions = sessions.list_sessions()
    typer.echo(f"📁 Sessions: {len(all_sessions)}")
    typer.echo(f"   Images: {sessions.total_images()}")

    recent = sessions.recent(3)
    if recent:
        typer.echo("\n🕘 Recent sessions:")
        for session in recent:
            typer.echo(f"   • {session.id}: {len(session.images)} images")
            typer.echo(f"     {_preview(session.script.strip())}")
    else:
        typer.echo("   No recent sessions. Generate some images to get started!")

    draft = workspace.load()
    if draft.scenes:
        typer.echo(f"\n📽️  Workspace ({draft.aspect_ratio.value}):")
        for scene in draft.scenes:
            icon = STATUS_ICONS[scene.status]
            line = f"   {icon} {scene.id + 1}: {_preview(scene.prompt)}"
            if scene.error:
                line += f" [{scene.error.value}]"
            typer.echo(line)


@app.command()
def history(
    search: str = typer.Option(
        "",
        "--search",
        "-s",
        help="Only show prompts containing this text"
    ),
) -> None:
    """List past prompts, newest first."""
    _, prompt_history, _ = _open_stores()

    entries = prompt_history.search(search)
    if not entries:
        if search:
            typer.echo(f"No prompts matching \"{search}\".")
        else:
            typer.echo("Your prompt history will appear here.")
        return

    for entry in entries:
        icon = "🖼️ " if prompt_history.image_for(entry.text) else "  "
        typer.echo(f"{icon} {entry.timestamp:%Y-%m-%d %H:%M}  {entry.text}")


@app.command(name="sessions")
def list_sessions(
    search: str = typer.Option(
        "",
        "--search",
        "-s",
        help="Only show sessions whose script contains this text"
    ),
) -> None:
    """List saved sessions, newest first."""
    sessions, _, _ = _open_stores()

    matches = sessions.search(search)
    if not matches:
        typer.echo("No sessions found.")
        return

    for session in matches:
        typer.echo(f"📁 {session.id}  {len(session.images)}/{len(session.scenes)} images")
        typer.echo(f"   {_preview(session.script.strip(), 70)}")


@app.command()
def delete(
    session_id: str = typer.Argument(..., help="Session identifier"),
    yes: bool = typer.Option(
        False,
        "--yes",
        "-y",
        help="Do not ask for confirmation"
    ),
) -> None:
    """Delete a saved session."""
    sessions, _, _ = _open_stores()

    if not yes:
        typer.confirm(
            "Are you sure you want to delete this session? This cannot be undone.",
            abort=True,
        )

    if not sessions.remove(session_id):
        typer.echo(f"❌ No session {session_id}")
        raise typer.Exit(1)
    typer.echo(f"🗑️  Deleted session {session_id}")


@app.command()
def export(
    output: Path = typer.Option(
        Path("scenes.zip"),
        "--output",
        "-o",
        help="Output zip file path"
    ),
    session_id: Optional[str] = typer.Option(
        None,
        "--session",
        "-s",
        help="Export a saved session instead of the current workspace"
    ),
) -> None:
    """Download all scene images as a zip file."""
    from .export import export_scenes

    sessions, _, workspace = _open_stores()

    if session_id:
        session = sessions.get(session_id)
        if session is None:
            typer.echo(f"❌ No session {session_id}")
            raise typer.Exit(1)
        scenes, script = session.scenes, session.script
    else:
        draft = workspace.load()
        scenes, script = draft.scenes, draft.script

    if not any(scene.image for scene in scenes):
        typer.echo("❌ No images to export")
        raise typer.Exit(1)

    try:
        written = export_scenes(scenes, output, script=script)
    except (OSError, ValueError) as e:
        typer.echo(f"❌ Failed to create ZIP file: {e}")
        raise typer.Exit(1)
    typer.echo(f"✅ Exported {len(written)} images to {output}")


@app.command()
def clear() -> None:
    """Clear the current workspace. Saved sessions are kept."""
    _, _, workspace = _open_stores()
    workspace.clear()
    typer.echo("🧹 Workspace cleared")


if __name__ == "__main__":
    app()
