from kbcopilot.pipeline.orchestrator import AgentPipeline

__all__ = ["AgentPipeline"]
