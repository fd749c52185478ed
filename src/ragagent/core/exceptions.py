class RagAgentError(Exception):
    """Base exception for the service."""


class UpstreamLLMError(RagAgentError):
    """Raised when the upstream chat model fails or returns garbage."""


class VectorStoreError(RagAgentError):
    """Raised for Qdrant/vector DB issues."""


class ToolingConfigError(RagAgentError):
    """Raised when the tooling YAML is missing or invalid."""
