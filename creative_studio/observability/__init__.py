from .langfuse import (
    LangfuseConfigError,
    RunTrace,
    bind_run_trace,
    current_run_trace,
    get_openai_client_class,
    initialize_langfuse,
    shutdown_langfuse,
    start_langfuse_generation,
    start_langfuse_span,
)

__all__ = [
    "LangfuseConfigError",
    "RunTrace",
    "bind_run_trace",
    "current_run_trace",
    "get_openai_client_class",
    "initialize_langfuse",
    "shutdown_langfuse",
    "start_langfuse_generation",
    "start_langfuse_span",
]
