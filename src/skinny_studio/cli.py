"""CLI Application for Skinny Studio."""

import logging
import os
from pathlib import Path

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from .attachments import AttachmentComposer, encode_attachment
from .brief import OUTPUT_TYPES, PLATFORMS, validate_brief
from .chat import ChatSession
from .errors import InsufficientBalanceError, StudioError
from .intents import match_skills
from .models import (
    IMAGE_PURPOSE_LABELS,
    ChatAttachment,
    ClientConfig,
    CreativeBrief,
    GenerationResult,
    ImagePurpose,
    RecoveryConfig,
    Storyboard,
)
from .recovery import GenerationRecoveryPoller
from .references import CAMERA_ANGLES, CAMERA_MOVEMENTS, ShotEditor
from .service import StudioService
from .skills import load_skills

# Setup Typer and Console
app = typer.Typer(help="Skinny Studio CLI - chat, library and storyboard tools")
console = Console()


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logs"),
) -> None:
    """Configure logging for every command."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def _get_service(
    base_url: str | None = None,
    user_token: str | None = None,
    user_id: str | None = None,
) -> StudioService:
    """Get the studio service."""
    load_dotenv()
    user_token = user_token or os.getenv("WHOP_DEV_TOKEN")
    user_id = user_id or os.getenv("WHOP_DEV_USER_ID")
    if not user_token:
        console.print(
            "[bold red]Error:[/bold red] WHOP_DEV_TOKEN not found in env or arguments.",
        )
        raise typer.Exit(code=1)
    config = ClientConfig(
        base_url=base_url or os.getenv("STUDIO_BASE_URL") or ClientConfig().base_url,
        user_token=user_token,
        user_id=user_id,
    )
    return StudioService(config)


def _analyzer(service: StudioService, purpose: ImagePurpose):
    def analyze(attachment: ChatAttachment) -> str:
        encoded = encode_attachment(attachment)
        return service.analyze_image(
            purpose,
            base64_data=encoded.base64,
            mime_type=encoded.mime_type,
        )

    return analyze


def _print_balance_error(error: InsufficientBalanceError) -> None:
    lines = ["[bold]Insufficient balance[/bold]"]
    if error.required is not None:
        lines.append(f"Required: ${error.required / 100:.2f}")
    if error.available is not None:
        lines.append(f"Available: ${error.available / 100:.2f}")
    if error.shortfall:
        lines.append(f"Top up at least ${error.shortfall / 100:.2f} to continue.")
    console.print(Panel("\n".join(lines), border_style="red"))


def _print_generation(generation: GenerationResult) -> None:
    if generation.status == "error":
        console.print(f"[bold red]Generation failed:[/bold red] {generation.error}")
    elif generation.status == "complete" and generation.result:
        console.print(
            Panel(
                f"[bold]Model:[/bold] {generation.model}\n"
                f"[bold]Image:[/bold] {generation.result.image_url}\n"
                f"[bold]Prompt:[/bold] {generation.result.prompt}",
                title="Generation Complete",
                border_style="green",
            ),
        )
    else:
        console.print(f"[yellow]{generation.status.capitalize()} with {generation.model}...[/yellow]")


@app.command()
def chat(
    message: str = typer.Argument(..., help="Message to send"),
    image: Path | None = typer.Option(None, help="Image to attach"),
    purpose: ImagePurpose = typer.Option(
        ImagePurpose.REFERENCE,
        help="How the attached image should be used",
    ),
    model: str | None = typer.Option(None, help="Preferred generation model"),
    conversation: str | None = typer.Option(None, help="Saved conversation to continue"),
    new_conversation: bool = typer.Option(False, "--save", help="Save this chat as a new conversation"),
    vibe: str = typer.Option("", help="Creative brief: overall vibe"),
    platform: str = typer.Option("", help=f"Creative brief: {', '.join(PLATFORMS)}"),
    style: str = typer.Option("", help="Creative brief: visual style"),
    output_type: str = typer.Option("", help=f"Creative brief: {', '.join(OUTPUT_TYPES)}"),
    skills_file: Path | None = typer.Option(None, help="JSON file with extra skills"),
    base_url: str | None = typer.Option(None, envvar="STUDIO_BASE_URL"),
    user_token: str | None = typer.Option(None, envvar="WHOP_DEV_TOKEN"),
    user_id: str | None = typer.Option(None, envvar="WHOP_DEV_USER_ID"),
) -> None:
    """Chat with the creative assistant and stream its reply."""
    if image is not None and not image.exists():
        console.print(f"[bold red]Error:[/bold red] File {image} not found.")
        raise typer.Exit(code=1)

    service = _get_service(base_url, user_token, user_id)
    composer = AttachmentComposer(analyzer=_analyzer(service, ImagePurpose.ANALYZE))

    try:
        brief = validate_brief(
            CreativeBrief(vibe=vibe, platform=platform, style=style, output_type=output_type),
        )
        session = ChatSession(
            service,
            skills=load_skills(skills_file),
            model_id=model,
            brief=brief,
        )
        if conversation:
            session.open(conversation)
            console.print(f"[dim]Continuing conversation with {len(session.messages)} message(s)[/dim]")
        elif new_conversation:
            conversation_id = session.start_conversation(title=message[:50])
            console.print(f"[dim]Saving to conversation {conversation_id}[/dim]")

        if image is not None:
            composer.add_file(image)
            attachment = composer.select_purpose(purpose)
            if attachment is None:
                console.print(Panel(composer.analysis_text, title="Image Analysis"))
                attachment = composer.confirm_analysis(ImagePurpose.REFERENCE)
            console.print(
                f"[dim]Attached {attachment.name} as {IMAGE_PURPOSE_LABELS[attachment.purpose]}[/dim]",
            )

        reply = session.send(
            message,
            attachments=composer.take(),
            on_chunk=lambda chunk: console.print(chunk, end="", markup=False),
            on_generation=_print_generation,
        )
        console.print()
        if session.error:
            console.print(f"[bold red]Error:[/bold red] {session.error}")
            raise typer.Exit(code=1)
        if reply.generation and reply.generation.is_stuck:
            console.print("[yellow]Generation still running; use `recover` to follow it.[/yellow]")
    except InsufficientBalanceError as e:
        _print_balance_error(e)
        raise typer.Exit(code=1) from e
    except (ValueError, StudioError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(code=1) from e


@app.command()
def conversations(
    base_url: str | None = typer.Option(None, envvar="STUDIO_BASE_URL"),
    user_token: str | None = typer.Option(None, envvar="WHOP_DEV_TOKEN"),
    user_id: str | None = typer.Option(None, envvar="WHOP_DEV_USER_ID"),
) -> None:
    """List saved conversations, most recent first."""
    service = _get_service(base_url, user_token, user_id)
    try:
        saved = service.list_conversations()
    except StudioError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(code=1) from e

    if not saved:
        console.print("No conversations yet.")
        return
    table = Table(title=f"Conversations ({len(saved)})")
    table.add_column("ID", no_wrap=True)
    table.add_column("Title")
    table.add_column("Updated")
    for item in saved:
        table.add_row(item.id, item.title, item.updated_at or "")
    console.print(table)


@app.command()
def suggest(
    text: str = typer.Argument(..., help="Message text to scan for intents"),
    skills_file: Path | None = typer.Option(None, help="JSON file with extra skills"),
) -> None:
    """Suggest skills that match the intent of a message."""
    try:
        skills = load_skills(skills_file)
    except ValueError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(code=1) from e

    suggestions = [] if "@" in text else match_skills(text, skills)
    if not suggestions:
        console.print("No skill suggestions.")
        return

    table = Table(title="Suggested Skills")
    table.add_column("Skill", no_wrap=True)
    table.add_column("Shortcut", no_wrap=True)
    table.add_column("Description")
    for skill in suggestions:
        table.add_row(f"{skill.icon or ''} {skill.name}".strip(), f"@{skill.shortcut}", skill.description)
    console.print(table)


@app.command()
def recover(
    model: str = typer.Argument(..., help="Model slug of the stuck generation"),
    prompt: str = typer.Argument(..., help="Exact prompt of the stuck generation"),
    interval: float = typer.Option(5.0, help="Seconds between library refreshes"),
    max_attempts: int = typer.Option(60, help="Give up after this many refreshes"),
    max_elapsed: float = typer.Option(300.0, help="Give up after this many seconds"),
    base_url: str | None = typer.Option(None, envvar="STUDIO_BASE_URL"),
    user_token: str | None = typer.Option(None, envvar="WHOP_DEV_TOKEN"),
    user_id: str | None = typer.Option(None, envvar="WHOP_DEV_USER_ID"),
) -> None:
    """Wait for a stuck generation to appear in the library."""
    service = _get_service(base_url, user_token, user_id)
    poller = GenerationRecoveryPoller(
        refresh=service.list_generations,
        config=RecoveryConfig(
            interval=interval,
            max_attempts=max_attempts,
            max_elapsed=max_elapsed,
        ),
    )
    generation = GenerationResult(status="generating", model=model, prompt=prompt)

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
    ) as progress:
        task = progress.add_task("Searching library...", total=None)
        match = poller.recover(
            generation,
            on_attempt=lambda n: progress.update(task, description=f"Searching library (attempt {n})..."),
        )

    if match is None:
        console.print(
            f"[bold red]Error:[/bold red] Generation not recovered after {poller.attempts} attempt(s).",
        )
        raise typer.Exit(code=1)

    console.print(
        Panel(
            "\n".join(match.output_urls),
            title=f"Recovered {match.id}",
            border_style="green",
        ),
    )


@app.command()
def estimate(
    model: str = typer.Argument(..., help="Model slug"),
    duration: int | None = typer.Option(None, help="Video duration in seconds"),
    base_url: str | None = typer.Option(None, envvar="STUDIO_BASE_URL"),
    user_token: str | None = typer.Option(None, envvar="WHOP_DEV_TOKEN"),
    user_id: str | None = typer.Option(None, envvar="WHOP_DEV_USER_ID"),
) -> None:
    """Estimate the cost of one generation."""
    service = _get_service(base_url, user_token, user_id)
    media_type = "video" if duration is not None else "image"
    cost = service.estimate_cost(model, duration=duration, media_type=media_type)
    if cost is None:
        console.print("No estimate available.")
        return
    console.print(f"Estimated cost for [bold]{model}[/bold]: ${cost / 100:.2f}")


@app.command()
def library(
    category: str | None = typer.Option(None, help="image, video, audio or llm"),
    folder: str | None = typer.Option(None, help="Folder id"),
    limit: int = typer.Option(50, help="Number of generations to list"),
    base_url: str | None = typer.Option(None, envvar="STUDIO_BASE_URL"),
    user_token: str | None = typer.Option(None, envvar="WHOP_DEV_TOKEN"),
    user_id: str | None = typer.Option(None, envvar="WHOP_DEV_USER_ID"),
) -> None:
    """List generations in the library."""
    service = _get_service(base_url, user_token, user_id)
    try:
        generations = service.list_generations(category=category, folder_id=folder, limit=limit)
    except StudioError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(code=1) from e

    table = Table(title=f"Library ({len(generations)})")
    table.add_column("ID")
    table.add_column("Model")
    table.add_column("Prompt")
    table.add_column("Outputs", justify="right")
    for generation in generations:
        table.add_row(
            generation.id,
            generation.model_slug,
            generation.prompt[:60],
            str(len(generation.output_urls)),
        )
    console.print(table)


@app.command()
def analyze(
    image: Path = typer.Argument(..., help="Local image to analyze"),
    purpose: ImagePurpose = typer.Option(ImagePurpose.ANALYZE, help="Analysis focus"),
    base_url: str | None = typer.Option(None, envvar="STUDIO_BASE_URL"),
    user_token: str | None = typer.Option(None, envvar="WHOP_DEV_TOKEN"),
    user_id: str | None = typer.Option(None, envvar="WHOP_DEV_USER_ID"),
) -> None:
    """Describe an image with the vision model."""
    if not image.exists():
        console.print(f"[bold red]Error:[/bold red] File {image} not found.")
        raise typer.Exit(code=1)

    service = _get_service(base_url, user_token, user_id)
    composer = AttachmentComposer(analyzer=_analyzer(service, purpose))
    try:
        composer.add_file(image)
    except ValueError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(code=1) from e

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
    ) as progress:
        progress.add_task("Analyzing...", total=None)
        text = composer.analyze()

    console.print(Panel(text, title="Image Analysis", border_style="cyan"))


@app.command()
def publish(
    generation_id: str = typer.Argument(..., help="Generation to publish"),
    title: str | None = typer.Option(None, help="Gallery title"),
    base_url: str | None = typer.Option(None, envvar="STUDIO_BASE_URL"),
    user_token: str | None = typer.Option(None, envvar="WHOP_DEV_TOKEN"),
    user_id: str | None = typer.Option(None, envvar="WHOP_DEV_USER_ID"),
) -> None:
    """Publish a generation to the public gallery."""
    service = _get_service(base_url, user_token, user_id)
    try:
        service.publish_to_gallery(generation_id, title=title)
    except StudioError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(code=1) from e
    console.print(f"Published [bold]{generation_id}[/bold] to the gallery.")


@app.command()
def delete(
    generation_id: str = typer.Argument(..., help="Generation to delete"),
    base_url: str | None = typer.Option(None, envvar="STUDIO_BASE_URL"),
    user_token: str | None = typer.Option(None, envvar="WHOP_DEV_TOKEN"),
    user_id: str | None = typer.Option(None, envvar="WHOP_DEV_USER_ID"),
) -> None:
    """Delete a generation from the library."""
    service = _get_service(base_url, user_token, user_id)
    try:
        service.delete_generation(generation_id)
    except StudioError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(code=1) from e
    console.print(f"Deleted [bold]{generation_id}[/bold].")


@app.command("generate-shot")
def generate_shot(
    storyboard_path: Path = typer.Argument(..., help="Path to the storyboard.json file"),
    shot_id: str = typer.Argument(..., help="Shot to generate"),
    model: str = typer.Option(..., help="Model slug (required, no default)"),
    media_type: str | None = typer.Option(None, help="image or video"),
    duration: int | None = typer.Option(None, help="Video duration in seconds"),
    camera_angle: str | None = typer.Option(
        None,
        help=f"One of: {', '.join(CAMERA_ANGLES)}",
    ),
    camera_movement: str | None = typer.Option(
        None,
        help=f"One of: {', '.join(CAMERA_MOVEMENTS)}",
    ),
    ref_shot: list[str] = typer.Option([], help="Completed shot to use as reference"),
    ref_entity: list[str] = typer.Option([], help="Entity to use as reference"),
    base_url: str | None = typer.Option(None, envvar="STUDIO_BASE_URL"),
    user_token: str | None = typer.Option(None, envvar="WHOP_DEV_TOKEN"),
    user_id: str | None = typer.Option(None, envvar="WHOP_DEV_USER_ID"),
) -> None:
    """Generate one storyboard shot with reference images."""
    if not storyboard_path.exists():
        console.print(f"[bold red]Error:[/bold red] File {storyboard_path} not found.")
        raise typer.Exit(code=1)

    with storyboard_path.open("r") as f:
        storyboard = Storyboard.model_validate_json(f.read())

    shot = next((s for s in storyboard.shots if s.id == shot_id), None)
    if shot is None:
        console.print(f"[bold red]Error:[/bold red] Shot {shot_id} not found.")
        raise typer.Exit(code=1)

    editor = ShotEditor(shot, storyboard.shots, storyboard.entities)
    try:
        if media_type:
            editor.set_media_type(media_type)
        editor.select_model(model)
        if duration is not None:
            editor.set_duration(duration)
        editor.set_camera(camera_angle, camera_movement)
    except ValueError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(code=1) from e

    shot_candidates = {s.id for s in editor.shot_candidates()}
    entity_candidates = {e.id for e in editor.entity_candidates()}
    for ref in ref_shot:
        if ref not in shot_candidates or not editor.selector.toggle_shot(ref):
            console.print(f"[yellow]Warning: Skipping reference shot {ref}[/yellow]")
    for ref in ref_entity:
        if ref not in entity_candidates or not editor.selector.toggle_entity(ref):
            console.print(f"[yellow]Warning: Skipping reference entity {ref}[/yellow]")

    service = _get_service(base_url, user_token, user_id)
    try:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
        ) as progress:
            progress.add_task(f"Generating shot {shot.shot_number}...", total=None)
            service.update_shot(storyboard.id, shot.id, editor.draft.to_update())
            result = service.generate_shot(storyboard.id, shot.id, editor.generation_request())
    except InsufficientBalanceError as e:
        _print_balance_error(e)
        raise typer.Exit(code=1) from e
    except StudioError as e:
        console.print(f"[bold red]Fatal Error:[/bold red] {e}")
        raise typer.Exit(code=1) from e

    editor.apply()
    shot.status = "completed"
    shot.generated_image_url = result.get("imageUrl")
    shot.generation_id = result.get("generationId")
    with storyboard_path.open("w") as f:
        f.write(storyboard.model_dump_json(indent=2))

    console.rule("[bold green]Shot Complete")
    console.print(f"Image: [underline]{shot.generated_image_url}[/underline]")


if __name__ == "__main__":
    app()
