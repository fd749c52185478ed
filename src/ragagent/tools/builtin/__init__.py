from .github_search import GitHubSearchCodeTool, GitHubSearchRepositoriesTool
from .memory_tool import MEMORY_TOOL_NAME, ConversationMemory, MemoryTool
from .rag_search import RAG_SEARCH_TOOL_NAME, RagSearchTool, Retriever

__all__ = [
    "ConversationMemory",
    "GitHubSearchCodeTool",
    "GitHubSearchRepositoriesTool",
    "MEMORY_TOOL_NAME",
    "MemoryTool",
    "RAG_SEARCH_TOOL_NAME",
    "RagSearchTool",
    "Retriever",
]
