from kbcopilot.services.evaluation.evaluation_service import EvaluationService, render_markdown

__all__ = ["EvaluationService", "render_markdown"]
