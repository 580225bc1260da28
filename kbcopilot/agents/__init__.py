from kbcopilot.agents.base_agent import BaseAgent
from kbcopilot.agents.cite_checker_agent import CiteCheckerAgent
from kbcopilot.agents.drafter_agent import DrafterAgent
from kbcopilot.agents.retriever_agent import RetrieverAgent
from kbcopilot.agents.router_agent import RouterAgent

__all__ = [
    "BaseAgent",
    "CiteCheckerAgent",
    "DrafterAgent",
    "RetrieverAgent",
    "RouterAgent",
]
