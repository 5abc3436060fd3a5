"""Configuration Module

Centralized settings for the repair planner, read from environment
variables (a local .env file is loaded first when present).

Environment Variables:
    AZURE_AI_PROJECT_ENDPOINT: Planning/agent service endpoint (required)
    AZURE_AI_API_KEY: Optional API key sent as a bearer token
    MODEL_DEPLOYMENT_NAME: Model deployment for the agent (default: gpt-4o)
    REPAIR_PLANNER_AGENT_NAME: Agent name (default: RepairPlannerAgent)
    PLANNING_TIMEOUT_SECONDS: Planning call timeout (default: 60)
    COSMOS_ENDPOINT: Document store endpoint (empty -> in-memory store)
    COSMOS_KEY: Document store account master key (base64)
    COSMOS_DATABASE_NAME: Database name (default: FactoryDb)
    COSMOS_CONTAINER_NAME: Container name (default: WorkOrders)
    FAULT_TAXONOMY_PATH: JSON file replacing the built-in fault taxonomy
    WORK_ORDER_NUMBER_MODE: "random" (default) or "redis"
    LOG_LEVEL: Logging level (default: INFO)
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from repair_planner.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_MODEL_DEPLOYMENT = "gpt-4o"
DEFAULT_AGENT_NAME = "RepairPlannerAgent"


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}")


@dataclass
class PlanningConfig:
    """Planning/agent service configuration."""

    endpoint: str
    api_key: Optional[str] = None
    model_deployment_name: str = DEFAULT_MODEL_DEPLOYMENT
    agent_name: str = DEFAULT_AGENT_NAME
    timeout_seconds: float = 60.0

    @classmethod
    def from_env(cls) -> "PlanningConfig":
        endpoint = os.getenv("AZURE_AI_PROJECT_ENDPOINT", "").strip()
        if not endpoint:
            raise ConfigurationError(
                "AZURE_AI_PROJECT_ENDPOINT environment variable is required."
            )
        return cls(
            endpoint=endpoint.rstrip("/"),
            api_key=os.getenv("AZURE_AI_API_KEY") or None,
            model_deployment_name=os.getenv("MODEL_DEPLOYMENT_NAME") or DEFAULT_MODEL_DEPLOYMENT,
            agent_name=os.getenv("REPAIR_PLANNER_AGENT_NAME") or DEFAULT_AGENT_NAME,
            timeout_seconds=_env_float("PLANNING_TIMEOUT_SECONDS", 60.0),
        )


@dataclass
class DocumentStoreConfig:
    """Document store configuration."""

    endpoint: str = ""
    key: str = ""
    database_name: str = "FactoryDb"
    container_name: str = "WorkOrders"
    timeout_seconds: float = 30.0

    @property
    def is_remote(self) -> bool:
        return bool(self.endpoint)

    @classmethod
    def from_env(cls) -> "DocumentStoreConfig":
        return cls(
            endpoint=os.getenv("COSMOS_ENDPOINT", "").strip(),
            key=os.getenv("COSMOS_KEY", ""),
            database_name=os.getenv("COSMOS_DATABASE_NAME") or "FactoryDb",
            container_name=os.getenv("COSMOS_CONTAINER_NAME") or "WorkOrders",
            timeout_seconds=_env_float("COSMOS_TIMEOUT_SECONDS", 30.0),
        )


@dataclass
class Settings:
    """Main application settings."""

    planning: PlanningConfig
    document_store: DocumentStoreConfig = field(default_factory=DocumentStoreConfig)
    fault_taxonomy_path: Optional[Path] = None
    work_order_number_mode: str = "random"
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        taxonomy_path = os.getenv("FAULT_TAXONOMY_PATH")
        number_mode = (os.getenv("WORK_ORDER_NUMBER_MODE") or "random").lower()
        if number_mode not in ("random", "redis"):
            raise ConfigurationError(
                f"WORK_ORDER_NUMBER_MODE must be 'random' or 'redis', got {number_mode!r}"
            )
        return cls(
            planning=PlanningConfig.from_env(),
            document_store=DocumentStoreConfig.from_env(),
            fault_taxonomy_path=Path(taxonomy_path) if taxonomy_path else None,
            work_order_number_mode=number_mode,
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance (loads .env on first use).

    Raises:
        ConfigurationError: If required settings are missing
    """
    global _settings
    if _settings is None:
        load_dotenv()
        _settings = Settings.from_env()
        logger.info(
            f"Settings loaded: agent={_settings.planning.agent_name}, "
            f"deployment={_settings.planning.model_deployment_name}, "
            f"document_store={'remote' if _settings.document_store.is_remote else 'in-memory'}"
        )
    return _settings


def reset_settings() -> None:
    """Drop the cached settings (useful for testing)."""
    global _settings
    _settings = None
