from .errors import AnalyzeError
from .service import analyze_cv_with_job, create_provider, create_provider_from_env

__all__ = [
    "AnalyzeError",
    "analyze_cv_with_job",
    "create_provider",
    "create_provider_from_env",
]
