"""
HTTP API exposing tool detection, risk classification, error explanation and
the diagnostic loop to a host process.
"""

from functools import lru_cache
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, HTTPException
from pydantic import BaseModel, Field

from opsmate.controllers.agent_loop import AgentLoop
from opsmate.controllers.command_engine import (
    CommandEngine,
    CommandExecutor,
    InferenceOracle,
)
from opsmate.models.tool import ToolContext, Translation
from opsmate.services.audit_service import AuditSink, create_audit_sink
from opsmate.services.confirmation import auto_confirm
from opsmate.services.error_explainer import ErrorExplainer
from opsmate.services.executor_service import ShellExecutor
from opsmate.services.openai_service import OpenAIService
from opsmate.services.tool_registry import ToolRegistry, create_default_registry
from opsmate.settings import get_settings
from opsmate.utils.errors import UnknownTool
from opsmate.utils.logger import setup_logger

logger = setup_logger(__name__)

app = FastAPI(title="opsmate")

# Read-only after construction, shared by every request
_registry = create_default_registry()


def get_registry() -> ToolRegistry:
    return _registry


@lru_cache(maxsize=1)
def get_oracle() -> InferenceOracle:
    return OpenAIService()


def get_executor() -> CommandExecutor:
    return ShellExecutor(timeout=get_settings().agent.command_timeout)


def get_audit_sink() -> AuditSink:
    audit = get_settings().audit
    return create_audit_sink(audit.enabled, audit.log_file)


class ContextModel(BaseModel):
    is_production: bool = False
    environment: str = "unknown"
    working_directory: str = "."
    kube_context: Optional[str] = None
    docker_host: Optional[str] = None

    def to_context(self) -> ToolContext:
        environment = "production" if self.is_production else self.environment
        return ToolContext(
            is_production=self.is_production,
            environment=environment,
            working_directory=self.working_directory,
            kube_context=self.kube_context,
            docker_host=self.docker_host,
        )


class DetectRequest(BaseModel):
    input: str


class ClassifyRequest(BaseModel):
    command: str
    tool: str
    context: ContextModel = Field(default_factory=ContextModel)


class ExplainRequest(BaseModel):
    error_text: str
    use_model: bool = False


class RunRequest(BaseModel):
    task: str
    max_iterations: Optional[int] = Field(default=None, ge=1)
    # Without it only LOW risk commands run; a remote caller cannot answer prompts
    auto_confirm: bool = False
    context: ContextModel = Field(default_factory=ContextModel)


@app.get("/health")
async def health() -> Dict[str, str]:
    return {"status": "ok"}


@app.get("/tools")
async def list_tools(registry: ToolRegistry = Depends(get_registry)) -> Dict[str, Any]:
    return {"tools": registry.list_tools()}


@app.post("/detect_tool")
async def detect_tool(
    request: DetectRequest, registry: ToolRegistry = Depends(get_registry)
) -> Dict[str, Any]:
    """
    Identify the tool an input targets. No match is reported as a null tool.
    """
    match = registry.detect_tool(request.input)
    if match is None:
        return {"tool": None, "confidence": 0.0}
    return {"tool": match.name, "confidence": match.confidence}


@app.post("/classify_risk")
async def classify_risk(
    request: ClassifyRequest,
    registry: ToolRegistry = Depends(get_registry),
    oracle: InferenceOracle = Depends(get_oracle),
    executor: CommandExecutor = Depends(get_executor),
    audit_sink: AuditSink = Depends(get_audit_sink),
) -> Dict[str, Any]:
    context = request.context.to_context()
    engine = CommandEngine(registry, oracle, executor, audit_sink=audit_sink)
    translation = Translation(
        command=request.command, confidence=100, tool_name=request.tool
    )
    try:
        level = engine.classify_risk(translation, context)
    except UnknownTool as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {
        "tool": request.tool,
        "command": request.command,
        "risk_level": level.as_str(),
        "requires_confirmation": level.requires_confirmation(),
        "requires_typed_confirmation": level.requires_typed_confirmation(
            context.is_production
        ),
    }


@app.post("/explain_error")
async def explain_error(
    request: ExplainRequest,
    registry: ToolRegistry = Depends(get_registry),
    oracle: InferenceOracle = Depends(get_oracle),
    executor: CommandExecutor = Depends(get_executor),
) -> Dict[str, Any]:
    explainer = ErrorExplainer(llm=oracle if request.use_model else None)
    engine = CommandEngine(registry, oracle, executor, explainer=explainer)
    explanation = await engine.explain_error(request.error_text)
    return explanation.to_dict()


@app.post("/run_until_complete")
async def run_until_complete(
    request: RunRequest,
    registry: ToolRegistry = Depends(get_registry),
    oracle: InferenceOracle = Depends(get_oracle),
    executor: CommandExecutor = Depends(get_executor),
    audit_sink: AuditSink = Depends(get_audit_sink),
) -> Dict[str, Any]:
    """
    Run the diagnostic loop to a terminal status and return the final state.
    """
    settings = get_settings()
    loop = AgentLoop(
        task=request.task,
        registry=registry,
        oracle=oracle,
        executor=executor,
        context=request.context.to_context(),
        confirm=auto_confirm if request.auto_confirm else None,
        audit_sink=audit_sink,
        max_iterations=request.max_iterations or settings.agent.max_iterations,
        max_duration=settings.agent.max_duration,
    )
    logger.info(f"Remote diagnostic run: {request.task}")
    state = await loop.run_until_complete()
    return state.to_dict()
