from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Literal, Protocol

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage, ToolMessage
from langchain_core.runnables import RunnableConfig
from langchain_google_genai import ChatGoogleGenerativeAI
from langgraph.graph import END, START, MessagesState, StateGraph

from .config import Settings, get_settings
from .prompts import get_system_prompt
from .tools import get_registered_tools, get_tools_by_name

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class AgentMessage:
    """Role-tagged message the agent understands (no tool role)."""

    role: Literal["user", "assistant", "system"]
    content: str


@dataclass(frozen=True, slots=True)
class AgentReply:
    text: str


class AgentOutputError(RuntimeError):
    """The agent returned nothing usable as reply text."""


class GenerativeAgent(Protocol):
    """Opaque generative capability: ordered messages in, one text blob out. May raise."""

    async def generate(self, messages: Sequence[AgentMessage]) -> AgentReply: ...


def to_langchain_messages(messages: Sequence[AgentMessage]) -> list[BaseMessage]:
    converted: list[BaseMessage] = []
    for message in messages:
        if message.role == "user":
            converted.append(HumanMessage(content=message.content))
        elif message.role == "assistant":
            converted.append(AIMessage(content=message.content))
        else:
            converted.append(SystemMessage(content=message.content))
    return converted


def extract_text_from_content(content: Any) -> str:
    """Extract text from AI message content (string or list of parts)."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        text_parts = []
        for block in content:
            if isinstance(block, dict) and block.get("type") == "text":
                text_parts.append(block.get("text", ""))
            elif isinstance(block, str):
                text_parts.append(block)
        return "".join(text_parts)
    return ""


def build_model(settings: Settings) -> ChatGoogleGenerativeAI:
    """Instantiate the Gemini chat model for the weather agent."""
    return ChatGoogleGenerativeAI(
        model=settings.gemini_model,
        api_key=settings.google_api_key,
        timeout=60,
        max_retries=0,  # single attempt per run; failures surface as an apology
    )


def create_graph(settings: Settings, model: Any | None = None):
    """Compile the model ⇄ tool loop used to answer weather questions."""

    tools = get_registered_tools()
    tools_by_name = get_tools_by_name()
    system_message = SystemMessage(content=get_system_prompt(override=settings.system_prompt))
    model_with_tools = (model if model is not None else build_model(settings)).bind_tools(tools)

    async def call_model(state: MessagesState, config: RunnableConfig):
        messages = [system_message] + list(state["messages"])
        response = await model_with_tools.ainvoke(messages, config=config)
        return {"messages": [response]}

    async def call_tool(state: MessagesState, config: RunnableConfig):
        tool_outputs: list[ToolMessage] = []
        last_message = state["messages"][-1]
        for tool_call in last_message.tool_calls:
            tool_name = tool_call["name"]
            tool = tools_by_name.get(tool_name)
            logger.info("[AGENT] Executing tool: %s", tool_name)
            if not tool:
                observation = f"Requested tool '{tool_name}' is not available."
                logger.warning("[AGENT] Tool not found: %s", tool_name)
            else:
                try:
                    result = await tool.ainvoke(dict(tool_call.get("args") or {}), config=config)
                    observation = result if isinstance(result, str) else json.dumps(result, ensure_ascii=False)
                    logger.info("[AGENT] Tool result: %s", str(observation)[:500])
                except Exception as exc:
                    # Tool errors go back to the model as observations.
                    logger.exception("[AGENT] Tool execution failed: %s", tool_name)
                    observation = f"Tool '{tool_name}' failed: {exc}"
            tool_outputs.append(ToolMessage(content=observation, tool_call_id=tool_call["id"]))
        return {"messages": tool_outputs}

    def should_continue(state: MessagesState) -> Literal["tool_node", END]:
        last_message = state["messages"][-1]
        if getattr(last_message, "tool_calls", None):
            return "tool_node"
        return END

    workflow = StateGraph(MessagesState)
    workflow.add_node("model", call_model)
    workflow.add_node("tool_node", call_tool)
    workflow.add_edge(START, "model")
    workflow.add_conditional_edges("model", should_continue, ["tool_node", END])
    workflow.add_edge("tool_node", "model")
    return workflow.compile()


class GeminiWeatherAgent:
    """GenerativeAgent backed by a Gemini model with the weather tool bound."""

    def __init__(self, settings: Settings, graph: Any | None = None) -> None:
        self._graph = graph if graph is not None else create_graph(settings)

    async def generate(self, messages: Sequence[AgentMessage]) -> AgentReply:
        result = await self._graph.ainvoke({"messages": to_langchain_messages(messages)})
        for message in reversed(result.get("messages", [])):
            if isinstance(message, AIMessage):
                return AgentReply(text=extract_text_from_content(message.content))
        raise AgentOutputError("Agent produced no AI message")


@lru_cache
def _cached_agent() -> GeminiWeatherAgent | None:
    settings = get_settings()
    if not settings.google_api_key:
        logger.warning("[AGENT] GOOGLE_API_KEY not set; weather agent disabled")
        return None
    return GeminiWeatherAgent(settings)


def get_agent() -> GenerativeAgent | None:
    """FastAPI dependency: the shared weather agent, or None when not configured."""
    return _cached_agent()


__all__ = [
    "AgentMessage",
    "AgentOutputError",
    "AgentReply",
    "GeminiWeatherAgent",
    "GenerativeAgent",
    "create_graph",
    "extract_text_from_content",
    "get_agent",
    "to_langchain_messages",
]
