"""Centralized dependency injection for FastAPI application.

This module provides factory functions for the store, AI client and batch
services. Long-lived objects are cached and shared by every request;
detectors and orchestrators are built fresh for each batch, which loads
the current detection rules.
"""

from functools import lru_cache

from app.config import settings
from app.core.ai_client import AIClient
from app.core.gemini_client import GeminiClient
from app.database.base import async_session_maker
from app.repositories.sql_store import SqlStore
from app.services.batch.batch_orchestrator import BatchOrchestrator
from app.services.batch.batch_registry import BatchRegistry
from app.services.detection.company_detector import CompanyDetector
from app.services.work_order.prompt_registry import PromptRegistry
from app.services.work_order.single_file_processor import SingleFileProcessor


@lru_cache
def get_sql_store() -> SqlStore:
    """Get the shared SQL store.

    Returns:
        SqlStore: Store for batches, work orders, rules and detection history
    """
    return SqlStore(async_session_maker)


@lru_cache
def get_ai_client() -> AIClient:
    """Get the shared Gemini client.

    Returns:
        AIClient: Client used for classification, extraction and generation
    """
    return GeminiClient(
        api_key=settings.gemini_api_key,
        model=settings.gemini_model,
        timeout=settings.llm.timeout,
        max_retries=settings.llm.max_retries,
    )


@lru_cache
def get_prompt_registry() -> PromptRegistry:
    return PromptRegistry()


def build_detector(ai_client: AIClient, store: SqlStore, prompt_registry: PromptRegistry) -> CompanyDetector:
    """Create a company detector configured from settings."""
    return CompanyDetector(
        ai_client=ai_client,
        rule_source=store,
        history_store=store if settings.detection.record_history else None,
        company_names=prompt_registry.company_names(),
        short_circuit_threshold=settings.detection.short_circuit_threshold,
        score_normalizer=settings.detection.score_normalizer,
        confidence_cap=settings.detection.rule_confidence_cap,
    )


def build_orchestrator() -> BatchOrchestrator:
    """Create an orchestrator with a fresh detector for one batch.

    Returns:
        BatchOrchestrator: Orchestrator wired to the shared store and AI client
    """
    store = get_sql_store()
    ai_client = get_ai_client()
    prompt_registry = get_prompt_registry()

    processor = SingleFileProcessor(
        ai_client=ai_client,
        detector=build_detector(ai_client, store, prompt_registry),
        work_order_store=store,
        prompt_registry=prompt_registry,
    )
    return BatchOrchestrator(
        processor=processor,
        batch_store=store,
        work_order_store=store,
        max_files=settings.batch.max_files,
        max_concurrency=settings.batch.max_concurrency,
        pause_poll_interval=settings.batch.pause_poll_interval,
        chunk_delay=settings.batch.chunk_delay,
        large_batch_threshold=settings.batch.large_batch_threshold,
        file_start_delay=settings.batch.file_start_delay,
        stage_delay=settings.batch.stage_delay,
        tracker_poll_interval=settings.tracker.poll_interval,
        min_document_creating_dwell=settings.tracker.min_document_creating_dwell,
    )


@lru_cache
def get_batch_registry() -> BatchRegistry:
    """Get the process-wide batch registry.

    Returns:
        BatchRegistry: Registry that starts and tracks batch runs
    """
    return BatchRegistry(build_orchestrator, max_finished_runs=settings.batch.retained_runs)

