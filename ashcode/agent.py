"""Agent facade: owns the conversation and wires the turn machinery together."""

from typing import Dict, Optional

from .approval import ApprovalGate
from .config import Config
from .context_window import ContextCompactor
from .errors import AgentError
from .events import EventSink, NullSink, TurnEvent, COMPACTED
from .llm import CompletionClient, build_system_prompt, load_project_instructions
from .logger import get_logger
from .messages import ConversationHistory, Message
from .tokenizer import estimate_history_tokens
from .tools.registry import ToolRegistry
from .turn import Approver, TurnController, TurnOutcome

_log = get_logger(__name__)


class Agent:
    def __init__(self, config: Config, sink: Optional[EventSink] = None,
                 approver: Optional[Approver] = None,
                 client: Optional[CompletionClient] = None,
                 registry: Optional[ToolRegistry] = None,
                 approve_all: bool = False,
                 use_reader_thread: bool = False,
                 project_instructions: Optional[str] = None):
        self.config = config
        if project_instructions is None:
            project_instructions = load_project_instructions(config.project_root)
        self.project_instructions = project_instructions
        self.system_prompt = build_system_prompt(project_instructions)
        self.history = ConversationHistory(self.system_prompt)
        self.budget = config.budget
        self.compactor = ContextCompactor(self.budget)
        self.registry = registry or ToolRegistry(config.tools)
        self.client = client or CompletionClient(config.api)
        self.gate = ApprovalGate(lambda: config.tools.auto_approve_tools, approve_all=approve_all)
        self.sink = sink or NullSink()
        self.controller = TurnController(
            client=self.client,
            registry=self.registry,
            history=self.history,
            compactor=self.compactor,
            gate=self.gate,
            sink=self.sink,
            approver=approver,
            max_iterations=config.max_iterations,
            use_reader_thread=use_reader_thread,
        )

    @property
    def approver(self) -> Optional[Approver]:
        return self.controller.approver

    @approver.setter
    def approver(self, value: Optional[Approver]):
        self.controller.approver = value

    def set_sink(self, sink: EventSink):
        self.sink = sink
        self.controller.sink = sink
        self.controller.executor.sink = sink

    def chat(self, text: str) -> TurnOutcome:
        if self.controller.busy:
            raise AgentError("A turn is already running")
        self.history.append(Message.user(text))
        return self.controller.run()

    def cancel(self):
        self.controller.cancel()

    def compact(self, strategy: str = "default") -> int:
        """Compact now, regardless of auto-compact. Returns the number of messages removed."""
        if self.controller.busy:
            raise AgentError("Cannot compact while a turn is running")
        messages = self.history.messages
        compacted = self.compactor.compact(messages, strategy)
        if compacted is messages:
            return 0
        self.history.replace(compacted)
        removed = len(messages) - len(compacted)
        self.sink.emit(TurnEvent(COMPACTED, data={"before": len(messages), "after": len(compacted)}))
        return removed

    def reset(self):
        self.history.reset()
        self.controller.total_usage = {}
        self.controller.tool_calls_executed = 0
        _log.info("Conversation reset")

    def get_stats(self) -> Dict:
        counts = self.history.count_by_role()
        tool_calls = sum(len(m.tool_calls) for m in self.history)
        context_tokens = estimate_history_tokens(self.history)
        threshold = self.budget.token_threshold
        pct = int(context_tokens / threshold * 100) if threshold > 0 else 0
        usage = self.controller.total_usage
        return {
            "messages": len(self.history),
            "user_messages": counts["user"],
            "assistant_messages": counts["assistant"],
            "tool_messages": counts["tool"],
            "tool_calls": tool_calls,
            "tool_calls_executed": self.controller.tool_calls_executed,
            "prompt_tokens": usage.get("prompt_tokens", 0),
            "completion_tokens": usage.get("completion_tokens", 0),
            "total_tokens": usage.get("total_tokens", 0),
            "context_used": f"~{context_tokens:,} / {threshold:,} ({pct}%)",
            "max_messages": self.budget.max_messages,
        }
