"""stepwise entry point: wires the planner, executor and sessions into a CLI."""

from __future__ import annotations

import asyncio
import importlib
import json
from typing import Any, Awaitable, Callable

import click

from stepwise.config import Settings, load_settings
from stepwise.display import format_plan, format_result, format_session, format_session_row
from stepwise.errors import OrchestratorError
from stepwise.executor.engine import Executor
from stepwise.executor.results import ExecutionResult
from stepwise.functions import CompositeFunctionProvider, LocalFunctionProvider, builtins
from stepwise.inputs.console import ConsoleInputProvider
from stepwise.llm import PlannerLLMClient, create_planner_client
from stepwise.planner.completion import CompletionOrchestrator, CompletionPlanner
from stepwise.planner.engine import Planner
from stepwise.planner.models import PlanResult
from stepwise.planner.selection import AllFunctionsSelector, FunctionSelector, TokenBudgetSelector
from stepwise.session.manager import SessionManager
from stepwise.session.storage import SqliteSessionStorage
from stepwise.utils.logging import get_logger, setup_logging

log = get_logger(__name__)


def _load_object(path: str) -> Any:
    module_name, _, attr = path.partition(":")
    module = importlib.import_module(module_name)
    return getattr(module, attr) if attr else module


class Stepwise:
    """Application wiring. Every collaborator is built here and injected."""

    def __init__(self, settings: Settings, function_modules: tuple[str, ...] = ()) -> None:
        self.settings = settings

        self.local_functions = LocalFunctionProvider()
        builtins.register(self.local_functions)
        for module_name in function_modules:
            _load_object(module_name).register(self.local_functions)
        self.functions = CompositeFunctionProvider(self.local_functions)

        self.inputs = ConsoleInputProvider()
        self.storage = SqliteSessionStorage(settings.sessions_db_path)
        self.executor = Executor(self.functions, self.inputs, settings.executor)
        self.sessions = SessionManager(self.executor, self.storage)
        self._llm: PlannerLLMClient | None = None

    @property
    def llm(self) -> PlannerLLMClient:
        if self._llm is None:
            self._llm = create_planner_client(self.settings.llm)
        return self._llm

    def build_planner(self) -> Planner | CompletionPlanner:
        selector: FunctionSelector = AllFunctionsSelector()
        if self.settings.planner.max_function_tokens > 0:
            selector = TokenBudgetSelector(self.settings.planner.max_function_tokens)
        planner = Planner(self.functions, self.llm, selector)

        completion = self.settings.completion
        if not completion.enabled:
            return planner
        if not completion.orchestrator:
            raise click.UsageError("completion.enabled requires completion.orchestrator")
        orchestrator: CompletionOrchestrator = _load_object(completion.orchestrator)(self.local_functions)
        return CompletionPlanner(planner, orchestrator, max_iterations=completion.max_iterations)

    async def start(self) -> None:
        log.info("stepwise_starting", provider=self.settings.llm.provider)
        await self.storage.start()

    async def stop(self) -> None:
        if self._llm is not None:
            await self._llm.close()
        await self.functions.close()
        await self.storage.stop()
        log.info("stepwise_stopped")

    async def drive(self, session_id: str, result: ExecutionResult) -> ExecutionResult:
        """Answer input requests on the console until the session settles."""
        while result.waiting_for_input is not None:
            pending = result.waiting_for_input
            click.echo(click.style(f"Step {pending.step_id} needs input:", bold=True))
            answer = await self.inputs.request_input(pending.schema)
            result = await self.sessions.resume_session(
                session_id, answer.values, skipped=answer.skipped
            )
        return result


def _run_app(coro_fn: Callable[[Stepwise], Awaitable[None]]) -> Callable[..., None]:
    """Run ``coro_fn(app)`` inside a started application."""

    async def runner(settings: Settings, modules: tuple[str, ...]) -> None:
        app = Stepwise(settings, modules)
        await app.start()
        try:
            await coro_fn(app)
        finally:
            await app.stop()

    def invoke(ctx: click.Context) -> None:
        try:
            asyncio.run(runner(ctx.obj["settings"], ctx.obj["functions"]))
        except OrchestratorError as e:
            raise click.ClickException(e.message) from e

    return invoke


def _print_plan_result(result: PlanResult, as_json: bool) -> None:
    if not result.success or result.plan is None:
        raise click.ClickException(f"Planning failed: {result.error}")
    if as_json:
        click.echo(json.dumps(result.plan.to_dict(), indent=2, ensure_ascii=False))
    else:
        click.echo(format_plan(result.plan))
    for err in result.completion_errors:
        click.echo(click.style(f"Could not generate {err.function_name}: {err.error}", fg="yellow"))


@click.group()
@click.option("--config", "config_path", default=None, help="Path to config YAML file")
@click.option("--log-level", default=None, help="Log level (DEBUG, INFO, WARNING, ERROR)")
@click.option(
    "--functions",
    "function_modules",
    multiple=True,
    help="Module exposing register(provider); may be given more than once",
)
@click.pass_context
def cli(
    ctx: click.Context,
    config_path: str | None,
    log_level: str | None,
    function_modules: tuple[str, ...],
) -> None:
    """Plan and run function pipelines from natural-language requests."""
    settings = load_settings(config_path)
    if log_level:
        settings = settings.model_copy(update={"log_level": log_level})
    setup_logging(level=settings.log_level, json_output=settings.log_json)
    ctx.obj = {"settings": settings, "functions": function_modules}


@cli.command()
@click.argument("request")
@click.option("--json", "as_json", is_flag=True, help="Print the plan as JSON")
@click.pass_context
def plan(ctx: click.Context, request: str, as_json: bool) -> None:
    """Generate a plan for REQUEST without running it."""

    async def body(app: Stepwise) -> None:
        _print_plan_result(await app.build_planner().plan(request), as_json)

    _run_app(body)(ctx)


@cli.command()
@click.argument("request")
@click.option("--yes", "-y", is_flag=True, help="Run without confirming the plan")
@click.pass_context
def run(ctx: click.Context, request: str, yes: bool) -> None:
    """Plan REQUEST and execute it in a new session."""

    async def body(app: Stepwise) -> None:
        result = await app.build_planner().plan(request)
        _print_plan_result(result, as_json=False)
        assert result.plan is not None
        if result.plan.status != "executable":
            raise click.ClickException("Plan is incomplete; register the missing functions first")
        if not yes and not click.confirm("Execute this plan?", default=True):
            return
        session = await app.sessions.create_session(result.plan, platform="cli")
        click.echo(f"Session {session.id}")
        outcome = await app.drive(session.id, await app.sessions.execute_session(session.id))
        click.echo(format_result(outcome))

    _run_app(body)(ctx)


@cli.group()
def sessions() -> None:
    """Inspect and control execution sessions."""


@sessions.command("list")
@click.option("--status", default=None, help="Only sessions with this status")
@click.option("--plan", "plan_id", default=None, help="Only sessions of this plan")
@click.option("--limit", default=20, show_default=True)
@click.pass_context
def list_sessions(ctx: click.Context, status: str | None, plan_id: str | None, limit: int) -> None:
    async def body(app: Stepwise) -> None:
        rows = await app.sessions.list_sessions(status=status, plan_id=plan_id, limit=limit)
        if not rows:
            click.echo("No sessions.")
        for session in rows:
            click.echo(format_session_row(session))

    _run_app(body)(ctx)


@sessions.command("show")
@click.argument("session_id")
@click.pass_context
def show_session(ctx: click.Context, session_id: str) -> None:
    async def body(app: Stepwise) -> None:
        session = await app.sessions.get_session(session_id)
        if session is None:
            raise click.ClickException(f"Session not found: {session_id}")
        click.echo(format_session(session))

    _run_app(body)(ctx)


@sessions.command("resume")
@click.argument("session_id")
@click.pass_context
def resume(ctx: click.Context, session_id: str) -> None:
    """Answer the pending input request of SESSION_ID and continue."""

    async def body(app: Stepwise) -> None:
        status = await app.sessions.get_session_status(session_id)
        if status.pending_input is None:
            raise click.ClickException(f"Session {session_id} is not waiting for input")
        answer = await app.inputs.request_input(status.pending_input.schema)
        result = await app.sessions.resume_session(session_id, answer.values, skipped=answer.skipped)
        click.echo(format_result(await app.drive(session_id, result)))

    _run_app(body)(ctx)


@sessions.command("retry")
@click.argument("session_id")
@click.option("--from-step", type=int, default=None, help="Keep results of the steps before this one")
@click.option("--no-run", is_flag=True, help="Only create the retry session")
@click.pass_context
def retry(ctx: click.Context, session_id: str, from_step: int | None, no_run: bool) -> None:
    """Retry a failed SESSION_ID in a new session."""

    async def body(app: Stepwise) -> None:
        child = await app.sessions.retry_session(session_id, from_step=from_step)
        click.echo(f"Session {child.id} (retry #{child.retry_count})")
        if no_run:
            return
        outcome = await app.drive(child.id, await app.sessions.execute_session(child.id))
        click.echo(format_result(outcome))

    _run_app(body)(ctx)


@sessions.command("cancel")
@click.argument("session_id")
@click.pass_context
def cancel(ctx: click.Context, session_id: str) -> None:
    async def body(app: Stepwise) -> None:
        session = await app.sessions.cancel_session(session_id)
        click.echo(f"Session {session.id} cancelled")

    _run_app(body)(ctx)


if __name__ == "__main__":
    cli()
