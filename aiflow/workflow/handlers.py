"""Step handlers, one per workflow step type."""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from ..agent import AgentLoop
from ..analysis import analyze
from ..codegen import CodeGenerationRequest, CodeGenerator, CodeReviewRequest
from ..config import AiflowConfig
from ..contracts import (
    AgentStep,
    CodeGenerationStep,
    CustomStep,
    DataAnalysisStep,
    EmbeddingStep,
    Step,
    SupplyChainStep,
    WorkflowRunContext,
)
from ..embeddings import EmbeddingService
from ..exceptions import UnsupportedOperationError
from ..gateways import GatewayFactory
from ..optimizer import SupplyChainOptimizer
from ..persistence import StorageBackend
from ..substitution import get_value_from_path, process_value, substitute
from ..tools.registry import ToolRegistry
from .custom import CustomFunctions

logger = logging.getLogger(__name__)

CONTEXT_PREFIX = "context."

Handler = Callable[[Any, WorkflowRunContext], Awaitable[Any]]


class StepHandlers:
    """Dispatch a step to the handler for its ``type``.

    Every handler returns plain JSON-compatible data, stored verbatim as the
    step's result.
    """

    def __init__(
        self,
        storage: StorageBackend,
        gateways: GatewayFactory,
        tools: ToolRegistry,
        config: Optional[AiflowConfig] = None,
        *,
        agent_loop: Optional[AgentLoop] = None,
        embeddings: Optional[EmbeddingService] = None,
        code_generator: Optional[CodeGenerator] = None,
        custom: Optional[CustomFunctions] = None,
    ) -> None:
        self.storage = storage
        self.gateways = gateways
        self.config = config or gateways.config
        self.agent_loop = agent_loop or AgentLoop(storage, gateways, tools, self.config)
        self.optimizer = SupplyChainOptimizer()
        self.custom = custom or CustomFunctions(storage)
        self._embeddings = embeddings
        self._code_generator = code_generator
        self._handlers: Dict[str, Handler] = {
            "agent": self.agent,
            "embedding": self.embedding,
            "supply_chain": self.supply_chain,
            "code_generation": self.code_generation,
            "data_analysis": self.data_analysis,
            "custom": self.custom_step,
        }

    @property
    def embeddings(self) -> EmbeddingService:
        if self._embeddings is None:
            settings = self.config.embedding
            self._embeddings = EmbeddingService(
                self.gateways.get(settings.provider, settings.model),
                self.storage,
                model=settings.model,
                batch_size=settings.batch_size,
            )
        return self._embeddings

    @property
    def code_generator(self) -> CodeGenerator:
        if self._code_generator is None:
            settings = self.config.code_generation
            self._code_generator = CodeGenerator(
                self.gateways.get(settings.provider, settings.model), settings.model
            )
        return self._code_generator

    async def handle(self, step: Step, context: WorkflowRunContext) -> Any:
        handler = self._handlers.get(step.type)
        if handler is None:
            raise UnsupportedOperationError(f"Unsupported step type: {step.type}")
        logger.debug(f"Running {step.type} step {step.id}")
        return await handler(step, context)

    # ------------------------------------------------------------------
    async def agent(self, step: AgentStep, context: WorkflowRunContext) -> Any:
        config = step.config
        result = await self.agent_loop.execute_agent(
            config.agent_id,
            substitute(config.query, context),
            max_iterations=config.max_iterations,
            timeout_ms=config.timeout_ms,
            verbose=config.verbose,
            user_id=context.user_id,
        )
        return result.model_dump(mode="json")

    async def embedding(self, step: EmbeddingStep, context: WorkflowRunContext) -> Any:
        config = step.config
        if config.operation == "create":
            documents = [
                {**doc, "content": substitute(doc.get("content", ""), context)}
                for doc in config.documents
            ]
            created = await self.embeddings.create_embeddings(
                documents,
                context.user_id,
                substitute(config.name or step.name, context),
                substitute(config.description, context),
            )
            return [item.model_dump(mode="json") for item in created]
        if config.operation == "search":
            matches = await self.embeddings.search_similar_documents(
                substitute(config.query or "", context),
                context.user_id,
                limit=config.limit,
                threshold=config.threshold,
            )
            return [match.model_dump(mode="json") for match in matches]
        raise UnsupportedOperationError(f"Unsupported embedding operation: {config.operation}")

    async def supply_chain(self, step: SupplyChainStep, context: WorkflowRunContext) -> Any:
        config = step.config
        items = process_value(config.items, context)
        packages = process_value(config.available_packages, context)
        origin = process_value(config.origin, context)
        destination = process_value(config.destination, context)
        carriers = process_value(config.carriers, context)

        if config.operation == "optimize_packaging":
            result: Any = self.optimizer.optimize_packaging(items, packages)
            return result.model_dump(mode="json")
        if config.operation == "optimize_shipping_routes":
            routes = self.optimizer.optimize_shipping_routes(origin, destination, packages, carriers)
            return [route.model_dump(mode="json") for route in routes]
        if config.operation == "optimize_supply_chain":
            result = self.optimizer.optimize_supply_chain(
                items, packages, origin, destination, carriers
            )
            return result.model_dump(mode="json")
        raise UnsupportedOperationError(f"Unsupported supply chain operation: {config.operation}")

    async def code_generation(self, step: CodeGenerationStep, context: WorkflowRunContext) -> Any:
        config = step.config
        if config.operation == "generate":
            generated = await self.code_generator.generate_code(
                CodeGenerationRequest(
                    language=config.language,
                    description=substitute(config.description or "", context),
                    context=substitute(config.context, context) if config.context else None,
                    framework=config.framework,
                    libraries=config.libraries,
                    examples=[substitute(ex, context) for ex in config.examples]
                    if config.examples
                    else None,
                )
            )
            return generated.model_dump(mode="json")
        if config.operation == "review":
            review = await self.code_generator.review_code(
                CodeReviewRequest(
                    code=substitute(config.code or "", context),
                    language=config.language,
                    focus=config.focus,
                )
            )
            return review.model_dump(mode="json")
        raise UnsupportedOperationError(
            f"Unsupported code generation operation: {config.operation}"
        )

    async def data_analysis(self, step: DataAnalysisStep, context: WorkflowRunContext) -> Any:
        config = step.config
        if config.data_source.startswith(CONTEXT_PREFIX):
            path = config.data_source[len(CONTEXT_PREFIX) :].split(".")
            rows = get_value_from_path(context, path)
        else:
            rows = await self.storage.select(config.data_source)
        if not isinstance(rows, list):
            raise UnsupportedOperationError(
                f"Data source {config.data_source} is not a list of rows"
            )
        return analyze(rows, config.analysis_type, config.time_period)

    async def custom_step(self, step: CustomStep, context: WorkflowRunContext) -> Any:
        config = step.config
        parameters = process_value(config.parameters, context)
        return await self.custom.run(config.function_name, parameters)
