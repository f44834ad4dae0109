__all__ = [
    "models",
    "errors",
    "config",
    "substitution",
    "view_state",
    "ingestion",
    "analysis_client",
    "session",
    "llm_provider",
    "prompts",
    "logging",
]
