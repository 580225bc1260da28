from kbcopilot.services.retrieval.reranker import Reranker, lexical_overlap

__all__ = ["Reranker", "lexical_overlap"]
