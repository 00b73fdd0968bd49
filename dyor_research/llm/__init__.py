"""Language-model collaborator: client adapters, prompts and lenient response parsing."""

from .client import CompletionClient, AnthropicCompletionClient, ResilientCompletionClient, build_completion_client
from .parsing import ParseOutcome, extract_json_object, parse_model_response

__all__ = [
    "CompletionClient",
    "AnthropicCompletionClient",
    "ResilientCompletionClient",
    "build_completion_client",
    "ParseOutcome",
    "extract_json_object",
    "parse_model_response",
]
