from kbcopilot.providers.parsers.html_parser import HtmlParser
from kbcopilot.providers.parsers.markdown_parser import MarkdownParser
from kbcopilot.providers.parsers.pdf_parser import PdfParser
from kbcopilot.providers.parsers.registry import ParserRegistry
from kbcopilot.providers.parsers.text_parser import TextParser

__all__ = ["HtmlParser", "MarkdownParser", "ParserRegistry", "PdfParser", "TextParser"]
