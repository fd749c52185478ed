from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


ParameterType = Literal["string", "number", "boolean", "array", "object"]


class ToolCategory(str, Enum):
    RETRIEVAL = "retrieval"
    EXTERNAL_SEARCH = "external_search"
    WEB_SEARCH = "web_search"
    CODE_ANALYSIS = "code_analysis"
    FILESYSTEM = "filesystem"
    MEMORY = "memory"
    CUSTOM = "custom"


class ToolParameter(BaseModel):
    """One declared argument of a tool, rendered into the system prompt and checked by the executor."""

    model_config = ConfigDict(frozen=True)

    name: str
    description: str = ""
    type: ParameterType = "string"
    required: bool = False
    default: Any = None
    enum_values: Optional[List[str]] = None


class ToolMetadata(BaseModel):
    """
    Descriptive, not behavioral: used for discovery (category filters, search by tag)
    and for the tool listing endpoints.
    """

    name: str
    description: str
    category: ToolCategory = ToolCategory.CUSTOM
    tags: List[str] = Field(default_factory=list)
    requires_auth: bool = False
    version: Optional[str] = "1.0.0"


class DocumentHit(BaseModel):
    document_id: str
    page: Optional[int] = None
    score: float = 0.0
    text: Optional[str] = None


class DocumentsOutput(BaseModel):
    """Structured output of a retrieval tool; the source of agent citations."""

    kind: Literal["documents"] = "documents"
    query: Optional[str] = None
    documents: List[DocumentHit] = Field(default_factory=list)


class DataOutput(BaseModel):
    """Free-form structured output for every other tool."""

    kind: Literal["data"] = "data"
    values: Dict[str, Any] = Field(default_factory=dict)


ToolOutput = Annotated[Union[DocumentsOutput, DataOutput], Field(discriminator="kind")]


class ToolCall(BaseModel):
    """
    A single model-requested invocation of a tool.

    Frozen: contextual arguments (e.g. the tenant) are added with `with_argument`,
    which returns a new call instead of mutating the one the model produced.
    """

    model_config = ConfigDict(frozen=True)

    tool_name: str
    arguments: Dict[str, Any] = Field(default_factory=dict)
    reasoning_trace: Optional[str] = None

    def with_argument(self, name: str, value: Any) -> "ToolCall":
        return self.model_copy(update={"arguments": {**self.arguments, name: value}})


class ToolResult(BaseModel):
    """
    The result of executing a ToolCall.

    Either a success carrying `content` (plus optional structured `output`) or a
    failure carrying `error`; never both.
    """

    success: bool
    content: Optional[str] = None
    output: Optional[ToolOutput] = None
    error: Optional[str] = None

    @model_validator(mode="after")
    def _check_shape(self) -> "ToolResult":
        if self.success:
            if self.content is None:
                raise ValueError("successful ToolResult requires content")
            if self.error is not None:
                raise ValueError("successful ToolResult cannot carry an error")
        else:
            if not self.error:
                raise ValueError("failed ToolResult requires an error message")
            if self.content is not None or self.output is not None:
                raise ValueError("failed ToolResult cannot carry content or output")
        return self

    @classmethod
    def ok(cls, content: str, output: Optional[Union[DocumentsOutput, DataOutput]] = None) -> "ToolResult":
        return cls(success=True, content=content, output=output)

    @classmethod
    def fail(cls, error: str) -> "ToolResult":
        return cls(success=False, error=error)
