"""Pure dataclasses for the deep research pipeline. No logic, no deps."""

from dataclasses import dataclass, field
from enum import Enum


class AgentPersona(str, Enum):
    ALPHA = "Alpha"
    BETA = "Beta"

    @property
    def title(self) -> str:
        return "Strategist" if self is AgentPersona.ALPHA else "Tactician"

    def other(self) -> "AgentPersona":
        return AgentPersona.BETA if self is AgentPersona.ALPHA else AgentPersona.ALPHA


class UpdateType(str, Enum):
    THOUGHT = "thought"
    SEARCH = "search"
    READ = "read"
    FINISH = "finish"
    ERROR = "error"


class SessionState(str, Enum):
    IDLE = "idle"
    CLARIFYING = "clarifying"
    RESEARCHING = "researching"
    COMPLETE = "complete"


@dataclass
class ClarificationTurn:
    role: str              # "user" or "model"
    content: str


@dataclass
class ClarificationOutcome:
    type: str              # "question" or "summary"
    content: str

    @property
    def is_question(self) -> bool:
        return self.type == "question"

    @property
    def is_summary(self) -> bool:
        return self.type == "summary"


@dataclass(frozen=True)
class ResearchUpdate:
    id: int
    type: UpdateType
    content: str | list[str]
    persona: AgentPersona | None = None


@dataclass
class PlannerTurn:
    thought: str
    action: str            # "continue_debate", "search" or "finish"
    queries: list[str] = field(default_factory=list)
    finish_reason: str | None = None


@dataclass
class PlannerDecision:
    search_queries: list[str]
    should_finish: bool
    finish_reason: str | None = None


@dataclass(frozen=True)
class Citation:
    url: str
    title: str


@dataclass
class SearchResult:
    query: str
    text: str
    citations: list[Citation] = field(default_factory=list)


@dataclass(frozen=True)
class FileData:
    name: str
    mime_type: str
    data: str              # base64 payload


@dataclass
class RoleModels:
    planner: str
    searcher: str
    synthesizer: str
    clarification: str


@dataclass
class ResearchResult:
    report: str
    citations: list[Citation] = field(default_factory=list)


@dataclass
class FinalResearchData:
    report: str
    citations: list[Citation]
    research_time_ms: int
