from .base import LLMClient, is_retryable_error
from .anthropic_client import AnthropicClient
from .openai_client import OpenAIClient, OpenAICompatibleClient
from .openrouter_client import OpenRouterClient
from .assembler import ToolCallAssembler
from .cancellation import CancelToken
from .decoders import (
    AnthropicDecoder,
    ChatCompletionsDecoder,
    ResponsesDecoder,
    StreamDecoder,
    create_decoder,
)
from .events import (
    Completed,
    Failed,
    StreamEvent,
    TextDelta,
    ToolCall,
    ToolCallArgsDelta,
    ToolCallCompleted,
    ToolCallStarted,
    ToolInputParseError,
    TurnResult,
    Usage,
)
from .stream import drive_stream
