import asyncio
import click
from pathlib import Path

from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table

from . import __version__
from .config import Config
from .errors import NovelistError
from .models.session import AppSettings
from .models.tasks import AgentLogEntry, LogKind
from .session import NovelSession
from .utils.logger import setup_logger
from .utils.text import format_plan_for_prompt

console = Console()

LOG_STYLES = {
    LogKind.THOUGHT: ("Thought", "dim"),
    LogKind.ACTION: ("Action", "blue"),
    LogKind.RESULT: ("Result", "green"),
    LogKind.ERROR: ("Error", "red"),
    LogKind.FINISH: ("Finished", "magenta"),
}


def _print_entry(entry: AgentLogEntry):
    title, style = LOG_STYLES[entry.kind]
    body = entry.content if isinstance(entry.content, str) else repr(entry.content)
    console.print(f"[bold {style}]{title}[/bold {style}] {body}")


def _chapter_index(session: NovelSession, number: int) -> int:
    if number < 1 or number > len(session.chapters):
        raise click.ClickException(
            f"Chapter {number} does not exist (the manuscript has {len(session.chapters)})."
        )
    return number - 1


def _run(ctx: click.Context, status: str, operation):
    """Run one session operation, then persist the session or report its error."""
    session: NovelSession = ctx.obj['session']
    with console.status(status):
        result = asyncio.run(operation(session))
    session.save(ctx.obj['session_path'])
    if session.error_message:
        raise click.ClickException(session.error_message)
    return result


@click.group()
@click.option('--config', '-c', type=click.Path(), default='config.yaml',
              help='Path to configuration file')
@click.option('--session', '-s', 'session_file', type=click.Path(), default='novel-session.json',
              help='Session file to read and update')
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose logging')
@click.pass_context
def cli(ctx: click.Context, config: str, session_file: str, verbose: bool):
    """AI Novelist - plan, write, check and revise a novel with Gemini."""
    ctx.ensure_object(dict)

    config_path = Path(config)
    ctx.obj['config'] = Config.from_yaml(config_path) if config_path.exists() else Config()

    log_level = "DEBUG" if verbose else ctx.obj['config'].log_level
    logger = setup_logger(
        log_level, ctx.obj['config'].log_file, secrets=[ctx.obj['config'].gemini.api_key]
    )
    logger.debug(f"AI Novelist v{__version__}")

    session_path = Path(session_file)
    try:
        ctx.obj['session'] = NovelSession.open(session_path, ctx.obj['config'])
    except NovelistError as e:
        raise click.ClickException(str(e))
    ctx.obj['session_path'] = session_path


@cli.command()
@click.argument('idea')
@click.pass_context
def plan(ctx: click.Context, idea: str):
    """Generate a plan from a story IDEA."""
    result = _run(ctx, "Planner is generating your novel's blueprint...",
                  lambda s: s.generate_plan(idea))
    console.print(Markdown(format_plan_for_prompt(result)))


@cli.command()
@click.argument('instruction')
@click.pass_context
def refine(ctx: click.Context, instruction: str):
    """Refine the plan following INSTRUCTION."""
    result = _run(ctx, "Planner is refining the blueprint...",
                  lambda s: s.refine_plan(instruction))
    console.print(Markdown(format_plan_for_prompt(result)))


@cli.command()
@click.option('--instruction', '-i', help='Extra direction; supports @chapter(N), @character(Name), ...')
@click.pass_context
def write(ctx: click.Context, instruction: str):
    """Write the next chapter."""
    chapter = _run(ctx, "Writer is drafting the next chapter...",
                   lambda s: s.write_chapter(instruction))
    if chapter is None:
        raise click.ClickException("A chapter is already being written.")
    console.print(Panel(Markdown(chapter.content), title=chapter.title))


@cli.command()
@click.argument('number', type=int)
@click.pass_context
def check(ctx: click.Context, number: int):
    """Review chapter NUMBER against the plan."""
    index = _chapter_index(ctx.obj['session'], number)
    feedback = _run(ctx, f"Checker is reviewing Chapter {number}...",
                    lambda s: s.check_chapter(index))
    style = "green" if feedback.approved else "yellow"
    console.print(f"[bold {style}]{feedback.verdict.value}[/bold {style}]: {feedback.thoughts.overall_impression}")
    for point in feedback.thoughts.detailed_feedback:
        console.print(f"  - {point}")


@cli.command()
@click.argument('number', type=int)
@click.argument('instruction')
@click.pass_context
def revise(ctx: click.Context, number: int, instruction: str):
    """Revise chapter NUMBER following INSTRUCTION."""
    index = _chapter_index(ctx.obj['session'], number)
    chapter = _run(ctx, f"Revising Chapter {number}...",
                   lambda s: s.revise_chapter(index, instruction))
    console.print(Panel(Markdown(chapter.content), title=chapter.title))


@cli.command()
@click.argument('number', type=int)
@click.pass_context
def sync(ctx: click.Context, number: int):
    """Update the plot outline to match chapter NUMBER."""
    index = _chapter_index(ctx.obj['session'], number)
    _run(ctx, f"Syncing the plan with Chapter {number}...", lambda s: s.sync_plan(index))
    console.print(f"[green]Plan synced with Chapter {number}[/green]")


@cli.command()
@click.argument('task')
@click.pass_context
def agent(ctx: click.Context, task: str):
    """Let the agent work on TASK, printing its steps as they happen."""
    session: NovelSession = ctx.obj['session']
    asyncio.run(session.run_agent(task, on_step=_print_entry))
    session.save(ctx.obj['session_path'])
    if session.error_message:
        raise click.ClickException(session.error_message)


@cli.command()
@click.argument('name')
@click.pass_context
def portrait(ctx: click.Context, name: str):
    """Generate a portrait for the character called NAME."""
    session: NovelSession = ctx.obj['session']
    index = session.plan.find_character(name) if session.plan else None
    if index is None:
        raise click.ClickException(f"No character named '{name}' in the plan.")
    character_id = session.plan.character_settings[index].id
    _run(ctx, f"Illustrating {name}...", lambda s: s.generate_portrait(character_id))
    console.print(f"[green]Portrait stored for {name}[/green]")


@cli.command()
@click.argument('number', type=int)
@click.option('--output', '-o', type=click.Path(), default='.', help='Output directory')
@click.pass_context
def export(ctx: click.Context, number: int, output: str):
    """Export chapter NUMBER as a .txt file."""
    session: NovelSession = ctx.obj['session']
    index = _chapter_index(session, number)
    path = session.export_chapter(index, Path(output))
    console.print(f"[green]Exported to {path}[/green]")


@cli.command()
@click.option('--global-prompt', help='Text prepended to every prompt')
@click.option('--continue/--no-continue', 'continue_last', default=None,
              help='Continue each chapter from the end of the previous one')
@click.pass_context
def settings(ctx: click.Context, global_prompt: str, continue_last: bool):
    """Show or change session settings."""
    session: NovelSession = ctx.obj['session']
    changes = {}
    if global_prompt is not None:
        changes['global_system_prompt'] = global_prompt
    if continue_last is not None:
        changes['continue_from_last_chapter'] = continue_last
    if changes:
        session.update_settings(AppSettings(**{**session.settings.model_dump(), **changes}))
        session.save(ctx.obj['session_path'])
    for key, value in session.settings.model_dump().items():
        console.print(f"{key}: {value!r}")


@cli.command()
@click.pass_context
def show(ctx: click.Context):
    """Show the plan and the chapter list."""
    session: NovelSession = ctx.obj['session']
    if session.plan is None:
        console.print("No plan yet. Run `novelist plan \"your idea\"` first.")
        return
    console.print(Markdown(format_plan_for_prompt(session.plan)))

    table = Table(title="Manuscript")
    table.add_column("#", justify="right")
    table.add_column("Title")
    table.add_column("Words", justify="right")
    table.add_column("Verdict")
    for chapter in session.chapters:
        verdict = chapter.feedback.verdict.value if chapter.feedback else "-"
        table.add_row(str(chapter.id), chapter.title, str(len(chapter.content.split())), verdict)
    console.print(table)


def main():
    cli()


if __name__ == '__main__':
    main()
