"""
Dependency Injection Container: Centralized Object Lifecycle Management

Wires the application's object graph with dependency-injector:
settings -> telemetry (tracker, metrics) -> model client -> pipeline -> service.

Process-wide state (the activity tracker, the metrics registry and the model
client) lives in singletons; pipeline components hold no per-request state
and are singletons too. The orchestrator and service are factories so tests
can override any collaborator.
"""

from dependency_injector import containers, providers
from loguru import logger

from config.settings import Settings, get_settings
from execution.constraint_evaluator import ConstraintEvaluator
from execution.content_normalizer import ContentNormalizer
from execution.generation_orchestrator import GenerationOrchestrator
from execution.prompt_composer import PromptComposer
from execution.response_parser import ResponseParser
from infrastructure.activity_tracker import ActivityTracker
from infrastructure.llm_client import LLMClient
from infrastructure.monitoring import MetricsCollector
from services.content_service import ContentService


class Container(containers.DeclarativeContainer):
    """
    Central dependency injection container.

    Dependency Graph (DAG):
    Settings -> Infrastructure -> Execution -> Services
    """

    # Configuration providers (singletons)
    config: providers.Singleton[Settings] = providers.Singleton(get_settings)

    # Infrastructure layer providers (singletons)
    metrics: providers.Singleton[MetricsCollector] = providers.Singleton(MetricsCollector)

    activity_tracker: providers.Singleton[ActivityTracker] = providers.Singleton(
        ActivityTracker,
        window_seconds=config.provided.activity.window_seconds,
        cleanup_interval_seconds=config.provided.activity.cleanup_interval_seconds,
        assumed_request_limit=config.provided.activity.assumed_request_limit,
        warning_threshold_pct=config.provided.activity.warning_threshold_pct,
        critical_threshold_pct=config.provided.activity.critical_threshold_pct,
    )

    llm_client: providers.Singleton[LLMClient] = providers.Singleton(
        LLMClient,
        settings=config.provided.llm,
        activity_tracker=activity_tracker,
        metrics_collector=metrics,
    )

    # Execution layer providers
    prompt_composer: providers.Singleton[PromptComposer] = providers.Singleton(PromptComposer)

    response_parser: providers.Singleton[ResponseParser] = providers.Singleton(ResponseParser)

    content_normalizer: providers.Singleton[ContentNormalizer] = providers.Singleton(
        ContentNormalizer
    )

    constraint_evaluator: providers.Singleton[ConstraintEvaluator] = providers.Singleton(
        ConstraintEvaluator
    )

    generation_orchestrator: providers.Factory[GenerationOrchestrator] = providers.Factory(
        GenerationOrchestrator,
        llm_client=llm_client,
        llm_settings=config.provided.llm,
        generation_settings=config.provided.generation,
        prompt_composer=prompt_composer,
        response_parser=response_parser,
        content_normalizer=content_normalizer,
        constraint_evaluator=constraint_evaluator,
        metrics_collector=metrics,
    )

    # Service layer providers (factories)
    content_service: providers.Factory[ContentService] = providers.Factory(
        ContentService,
        orchestrator=generation_orchestrator,
        llm_client=llm_client,
        llm_settings=config.provided.llm,
        prompt_composer=prompt_composer,
    )


# Global container instance
container = Container()


# Container wiring helper
def wire_container(*modules: str) -> None:
    """
    Wire the container to specified modules.

    This enables dependency injection in the specified modules.

    Args:
        *modules: Module names to wire
    """
    container.wire(modules=modules)
    logger.info(f"Container wired to modules: {modules}")


# Export public API
__all__ = ["Container", "container", "wire_container"]
