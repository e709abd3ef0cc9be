import asyncio
import os
from typing import List, Optional

import typer

from opsmate.controllers.agent_loop import AgentLoop
from opsmate.controllers.command_engine import CommandEngine
from opsmate.models.agent import AgentPhase
from opsmate.models.tool import ErrorExplained, ToolContext, Translation
from opsmate.services.audit_service import create_audit_sink
from opsmate.services.confirmation import ConfirmationRequest
from opsmate.services.error_explainer import ErrorExplainer
from opsmate.services.executor_service import ShellExecutor
from opsmate.services.openai_service import OpenAIService
from opsmate.services.tool_registry import create_default_registry
from opsmate.settings import get_settings
from opsmate.utils.errors import (
    AmbiguousIntent,
    InferenceFailure,
    OpsmateError,
    UnknownTool,
)
from opsmate.utils.logger import setup_logger
from opsmate.views.cli_view import CLIView

logger = setup_logger(__name__)

app = typer.Typer(invoke_without_command=True)


@app.callback()
def main(ctx: typer.Context):
    """
    opsmate: a safety-first assistant for kubectl, docker, SQL, drush,
    nginx, apache2 and network diagnostics.
    """
    pass


def _context(production: bool, kube_context: Optional[str] = None) -> ToolContext:
    safety = get_settings().safety
    docker_host = os.environ.get("DOCKER_HOST")
    is_production = production or safety.is_production
    if kube_context and not is_production:
        # Environment follows the context name ("prod-eu" -> production)
        return ToolContext.from_context_name(
            kube_context, working_directory=os.getcwd(), docker_host=docker_host
        )
    return ToolContext(
        is_production=is_production,
        environment="production" if is_production else safety.environment,
        working_directory=os.getcwd(),
        kube_context=kube_context,
        docker_host=docker_host,
    )


def _engine(context: ToolContext, use_model: bool = True) -> CommandEngine:
    settings = get_settings()
    oracle = OpenAIService()
    return CommandEngine(
        registry=create_default_registry(),
        oracle=oracle,
        executor=ShellExecutor(timeout=settings.agent.command_timeout, context=context),
        audit_sink=create_audit_sink(settings.audit.enabled, settings.audit.log_file),
        explainer=ErrorExplainer(llm=oracle if use_model else None),
    )


def _confirm_callback(view: CLIView, yes: bool):
    def confirm(request: ConfirmationRequest) -> bool:
        # --yes answers yes/no prompts; typed confirmations are always asked
        if yes and not request.typed:
            return True
        return view.confirm(request)

    return confirm


@app.command()
def tools():
    """
    List registered tool adapters.
    """
    CLIView().print_tools(create_default_registry().list_tools())


@app.command()
def detect(user_input: List[str] = typer.Argument(..., help="Text or command")):
    """
    Show which tool an input is aimed at.
    """
    view = CLIView()
    match = create_default_registry().detect_tool(" ".join(user_input))
    view.print_detection(match)
    if match is None:
        raise typer.Exit(code=1)


@app.command()
def risk(
    command: List[str] = typer.Argument(..., help="Command to classify"),
    tool: Optional[str] = typer.Option(None, "--tool", "-t", help="Tool name"),
    production: bool = typer.Option(False, "--production", help="Production target"),
):
    """
    Classify the risk of a command without running it.
    """
    view = CLIView()
    registry = create_default_registry()
    text = " ".join(command)
    context = _context(production)

    if tool is None:
        match = registry.detect_tool(text)
        if match is None:
            view.print_error(str(AmbiguousIntent(text)))
            raise typer.Exit(code=1)
        tool = match.name

    try:
        adapter = registry.get_tool(tool)
    except UnknownTool as e:
        view.print_error(str(e))
        raise typer.Exit(code=1)

    level = registry.classify_command(text, adapter, context)
    view.print_risk(text, adapter.name, level, context.is_production)


@app.command()
def explain(
    error_text: List[str] = typer.Argument(..., help="Error output to explain"),
    offline: bool = typer.Option(False, "--offline", help="Skip the model fallback"),
):
    """
    Explain an error message and suggest fixes.
    """
    view = CLIView()
    context = _context(False)
    engine = _engine(context, use_model=not offline)
    explanation = asyncio.run(engine.explain_error(" ".join(error_text), context))
    view.print_explanation(explanation)


@app.command()
def run(
    user_input: List[str] = typer.Argument(..., help="Request or raw command"),
    production: bool = typer.Option(False, "--production", help="Production target"),
    kube_context: Optional[str] = typer.Option(
        None, "--context", "-c", help="Kubernetes context name"
    ),
    yes: bool = typer.Option(False, "--yes", "-y", help="Answer yes/no prompts"),
):
    """
    Translate, confirm and execute a single command.
    """
    view = CLIView()
    context = _context(production, kube_context)
    engine = _engine(context)

    async def _run() -> None:
        translation: Translation = await engine.process_input(
            " ".join(user_input), context
        )
        level = engine.classify_risk(translation, context, user_input=" ".join(user_input))
        view.print_translation(translation, level)
        result = await engine.execute(
            translation,
            context,
            confirm=_confirm_callback(view, yes),
            risk_level=level,
        )
        view.print_result(result)
        if isinstance(result, ErrorExplained):
            raise typer.Exit(code=1)

    try:
        asyncio.run(_run())
    except (AmbiguousIntent, InferenceFailure, UnknownTool, FileNotFoundError) as e:
        view.print_error(str(e))
        raise typer.Exit(code=1)


@app.command()
def diagnose(
    task: List[str] = typer.Argument(..., help="Problem to investigate"),
    max_iterations: Optional[int] = typer.Option(
        None, "--max-iterations", help="Iteration limit"
    ),
    production: bool = typer.Option(False, "--production", help="Production target"),
    kube_context: Optional[str] = typer.Option(
        None, "--context", "-c", help="Kubernetes context name"
    ),
    yes: bool = typer.Option(False, "--yes", "-y", help="Answer yes/no prompts"),
):
    """
    Investigate a problem autonomously with a think-act-observe loop.
    """
    settings = get_settings()
    view = CLIView()
    context = _context(production, kube_context)
    audit_sink = create_audit_sink(settings.audit.enabled, settings.audit.log_file)

    loop = AgentLoop(
        task=" ".join(task),
        registry=create_default_registry(),
        oracle=OpenAIService(),
        executor=ShellExecutor(timeout=settings.agent.command_timeout, context=context),
        context=context,
        confirm=_confirm_callback(view, yes),
        audit_sink=audit_sink,
        max_iterations=max_iterations or settings.agent.max_iterations,
        max_duration=settings.agent.max_duration,
        on_step=view.print_step,
    )

    try:
        state = asyncio.run(loop.run_until_complete())
    except OpsmateError as e:
        view.print_error(str(e))
        raise typer.Exit(code=1)

    view.print_agent_summary(state)
    if state.status.phase != AgentPhase.COMPLETED:
        raise typer.Exit(code=1)


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", help="Bind address"),
    port: int = typer.Option(8000, help="Port"),
):
    """
    Start the HTTP API server.
    """
    import uvicorn

    logger.info(f"Starting API server on {host}:{port}")
    uvicorn.run("opsmate.server:app", host=host, port=port)


if __name__ == "__main__":
    app()
