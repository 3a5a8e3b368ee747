"""Click CLI: orchestrates config loading, provider selection, clarification, research and output."""

import asyncio
import base64
import logging
import mimetypes
import signal
import sys
from pathlib import Path

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from config.config_loader import CUSTOM_MODE, AppConfig, load_config, resolve_role_models
from deep_research.healthcheck import run_health_checks
from deep_research.inbox import archive_file, ensure_dirs, parse_request, scan_inbox
from deep_research.models import FileData, FinalResearchData, RoleModels, SessionState
from deep_research.output import print_report, print_update, save_to_file
from deep_research.providers.base import AIProvider
from deep_research.providers.gemini import GeminiProvider
from deep_research.providers.openai_provider import OpenAIProvider
from deep_research.session import CANCELLED_REPORT, FAILED_REPORT, ResearchSession

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)

PROVIDER_CLASSES: dict[str, type[AIProvider]] = {
    "google-genai": GeminiProvider,
    "openai": OpenAIProvider,
}


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )
    # SDK transport chatter drowns the research trail
    for noisy in ("httpx", "httpcore", "google_genai"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def build_provider(config: AppConfig, name: str) -> AIProvider:
    """Instantiate the configured backend.

    Raises:
        click.ClickException: If the provider is unknown, unsupported or has no API key.
    """
    provider_cfg = config.providers.get(name)
    if provider_cfg is None:
        raise click.ClickException(f"Unknown provider '{name}' (configured: {', '.join(sorted(config.providers))})")
    if name not in config.available_providers:
        raise click.ClickException(f"Provider '{name}' has no API key. Set {provider_cfg.api_key_env} in .env.")
    provider_cls = PROVIDER_CLASSES.get(provider_cfg.sdk)
    if provider_cls is None:
        raise click.ClickException(f"Provider '{name}' uses unsupported sdk '{provider_cfg.sdk}'")
    provider = provider_cls(provider_cfg)
    if provider_cfg.supports_citations and not provider_cls.supports_citations:
        logger.warning("Provider '%s' is configured with citations but its sdk cannot return them", name)
    # Citations are used only when both the config and the backend allow them
    provider.supports_citations = provider_cfg.supports_citations and provider_cls.supports_citations
    return provider


def load_file_data(path: Path) -> FileData:
    """Read a file into the attachment payload."""
    mime_type, _ = mimetypes.guess_type(path.name)
    return FileData(
        name=path.name,
        mime_type=mime_type or "application/octet-stream",
        data=base64.b64encode(path.read_bytes()).decode("ascii"),
    )


def _collect_overrides(
    planner: str | None,
    searcher: str | None,
    synthesizer: str | None,
    clarifier: str | None,
) -> dict[str, str]:
    raw = {"planner": planner, "searcher": searcher, "synthesizer": synthesizer, "clarification": clarifier}
    return {role: model for role, model in raw.items() if model}


async def _check_provider(provider: AIProvider, roles: RoleModels) -> None:
    """Run health checks and ask the user what to do on failures. Exits on refusal."""
    console.print("\n[bold]Checking models...[/bold]")
    results = await run_health_checks(provider, roles)

    failed: list[str] = []
    for model in sorted(results):
        ok, err = results[model]
        if ok:
            console.print(f"  [green]OK  [/green] {model}")
        else:
            short_err = err.splitlines()[0][:120] if err else "unknown error"
            console.print(f"  [red]FAIL[/red] {model}: {escape(short_err)}")
            failed.append(model)

    console.print()
    if failed and not await asyncio.to_thread(
        click.confirm, "Some models failed the health check. Continue anyway?", default=False,
    ):
        sys.exit(1)


def _install_interrupt(session: ResearchSession) -> bool:
    """Route Ctrl-C to the session's cancellation signal while research runs."""
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, session.stop)
    except (NotImplementedError, RuntimeError):
        # Windows event loops: Ctrl-C falls back to KeyboardInterrupt
        return False
    return True


async def _research(session: ResearchSession) -> FinalResearchData:
    installed = _install_interrupt(session)
    console.print("[dim]Researching... press Ctrl-C to stop.[/dim]\n")
    try:
        return await session.run_research()
    finally:
        if installed:
            asyncio.get_running_loop().remove_signal_handler(signal.SIGINT)


async def _run_interactive(
    session: ResearchSession,
    query: str,
    roles: RoleModels,
    health_check: bool = True,
) -> FinalResearchData:
    """Optionally health-check, drive the clarification dialogue from the terminal, then research."""
    if health_check:
        await _check_provider(session.provider, roles)

    outcome = await session.start_clarification(query)
    while outcome.is_question:
        console.print(f"\n[bold cyan]?[/bold cyan] {escape(outcome.content)}")
        answer = await asyncio.to_thread(click.prompt, "Your answer", default="", show_default=False)
        outcome = await session.submit_answer(answer or "No preference.")

    console.print(f"\n[bold]Research brief:[/bold] [italic]{escape(session.clarified_context)}[/italic]\n")
    return await _research(session)


def _save(session: ResearchSession, final: FinalResearchData, output_dir: Path, provider_name: str,
          slug_override: str | None = None) -> Path:
    return save_to_file(
        session.query,
        final,
        session.updates,
        output_dir,
        clarified_context=session.clarified_context,
        mode=session.mode,
        provider=provider_name,
        slug_override=slug_override,
    )


async def _run_inbox(
    config: AppConfig,
    inbox_dir: Path,
    archive_dir: Path,
    mode_cli: str | None,
    provider_cli: str | None,
    overrides: dict[str, str],
    output_dir: Path,
) -> None:
    """Process every queued request without clarification.

    Precedence for per-file settings: CLI flag > frontmatter > config default.
    """
    ensure_dirs(inbox_dir, archive_dir)
    files = scan_inbox(inbox_dir)

    if not files:
        click.echo("No files in inbox.")
        return

    for file_path in files:
        try:
            request = parse_request(file_path)
            provider_name = provider_cli or request.provider or config.defaults.provider
            mode = CUSTOM_MODE if overrides else (mode_cli or request.mode or config.defaults.mode)
            provider = build_provider(config, provider_name)
            session = ResearchSession(config, provider, mode=mode, custom_models=overrides, on_update=print_update)
            if request.attach is not None:
                session.attach_file(load_file_data(request.attach))
            session.start_with_brief(request.query, request.brief)

            final = await session.run_research()
            if final.report in (CANCELLED_REPORT, FAILED_REPORT):
                raise RuntimeError(final.report)

            saved = _save(session, final, output_dir, provider_name, slug_override=file_path.stem)
            archived = archive_file(file_path, archive_dir)
            click.echo(f"Processed: {file_path.name} -> {saved} (archived: {archived.name})")
        except Exception as e:
            logger.error("Failed: %s -- %s", file_path.name, e)
            archive_file(file_path, archive_dir, failed=True)


@click.command()
@click.argument("query", required=False)
@click.option("--file", "query_file", type=click.Path(exists=True, dir_okay=False),
              help="Read the research query from a text/markdown file")
@click.option("--attach", "attach_path", type=click.Path(exists=True, dir_okay=False),
              help="Attach a file (PDF, image, text) to the research")
@click.option("--mode", default=None, help="Model profile, e.g. Balanced, DeepDive, Fast, UltraFast, Custom")
@click.option("--provider", "provider_name", default=None, help="Backend: gemini or openai (default: from config)")
@click.option("--planner", default=None, help="Planner model override (implies --mode Custom)")
@click.option("--searcher", default=None, help="Searcher model override (implies --mode Custom)")
@click.option("--synthesizer", default=None, help="Synthesizer model override (implies --mode Custom)")
@click.option("--clarifier", default=None, help="Clarification model override (implies --mode Custom)")
@click.option("--output", "output_path", default=None, help="Output directory (default: from config)")
@click.option("--verbose", is_flag=True, help="Enable DEBUG-level logging")
@click.option("--inbox", "use_inbox", is_flag=True, default=False,
              help="Process all queued .md research requests in the inbox folder")
@click.option("--inbox-dir", "inbox_dir_override", default=None,
              help="Override inbox folder path (default: from config)")
@click.option("--skip-health-check", is_flag=True, default=False,
              help="Skip the model connectivity check at startup")
def main(
    query: str | None,
    query_file: str | None,
    attach_path: str | None,
    mode: str | None,
    provider_name: str | None,
    planner: str | None,
    searcher: str | None,
    synthesizer: str | None,
    clarifier: str | None,
    output_path: str | None,
    verbose: bool,
    use_inbox: bool,
    inbox_dir_override: str | None,
    skip_health_check: bool,
) -> None:
    """Deep Research -- clarify a question, debate a plan, search, and report.

    \b
    Examples:
      deep-research "Impact of solid-state batteries on EV prices"
      deep-research "Rust vs Go for CLIs" --mode Fast --provider openai
      deep-research --file question.md --attach paper.pdf
      deep-research "Topic" --planner gemini-2.5-pro --searcher gemini-2.5-flash
      deep-research --inbox
    """
    if sys.platform == "win32":
        if hasattr(sys.stdout, "reconfigure"):
            sys.stdout.reconfigure(encoding="utf-8", errors="replace")
        if hasattr(sys.stderr, "reconfigure"):
            sys.stderr.reconfigure(encoding="utf-8", errors="replace")

    load_dotenv()
    _setup_logging(verbose)

    try:
        config = load_config()
    except FileNotFoundError as exc:
        console.print(f"[bold red]Config error:[/bold red] {escape(str(exc))}")
        sys.exit(1)

    overrides = _collect_overrides(planner, searcher, synthesizer, clarifier)
    effective_output = Path(output_path) if output_path else config.defaults.output_dir

    if use_inbox:
        if config.inbox is None and not inbox_dir_override:
            raise click.UsageError("No inbox configured; pass --inbox-dir.")
        inbox_dir = Path(inbox_dir_override) if inbox_dir_override else config.inbox.dir
        archive_dir = config.inbox.archive_dir if config.inbox else inbox_dir / "archive"
        asyncio.run(
            _run_inbox(
                config=config,
                inbox_dir=inbox_dir,
                archive_dir=archive_dir,
                mode_cli=mode,
                provider_cli=provider_name,
                overrides=overrides,
                output_dir=effective_output,
            )
        )
        return

    if query_file:
        query_text = Path(query_file).read_text(encoding="utf-8").strip()
    elif query:
        query_text = query
    else:
        console.print("[bold red]Error:[/bold red] Provide a QUERY argument, --file, or --inbox.")
        sys.exit(1)

    effective_provider = provider_name or config.defaults.provider
    effective_mode = CUSTOM_MODE if overrides else (mode or config.defaults.mode)

    provider = build_provider(config, effective_provider)
    try:
        roles = resolve_role_models(config, effective_provider, effective_mode, overrides)
    except ValueError as exc:
        raise click.BadParameter(str(exc), param_hint="--mode") from exc

    session = ResearchSession(
        config, provider, mode=effective_mode, custom_models=overrides, on_update=print_update,
    )
    if attach_path:
        session.attach_file(load_file_data(Path(attach_path)))

    console.print(f"\n[bold cyan]Deep Research[/bold cyan] · {effective_provider} {escape(f'[{effective_mode}]')}")
    console.print(f"Planner: {roles.planner} | Searcher: {roles.searcher} | Synthesizer: {roles.synthesizer}")
    console.print(f"Query: [italic]{escape(query_text[:80])}{'...' if len(query_text) > 80 else ''}[/italic]")

    final = asyncio.run(_run_interactive(session, query_text, roles, health_check=not skip_health_check))

    print_report(final)
    if session.state is SessionState.COMPLETE and final.report not in (CANCELLED_REPORT, FAILED_REPORT):
        saved_path = _save(session, final, effective_output, effective_provider)
        console.print(f"\n[dim]Saved to: {saved_path}[/dim]")


if __name__ == "__main__":
    main()
