"""kbcopilot: document ingestion and grounded question answering.

Ingests PDF, HTML, Markdown and text files into a vector store, answers
questions and drafts letters with citations back to the stored chunks, and
keeps an audit record of every request.
"""

__version__ = "0.1.0"
