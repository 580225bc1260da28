from kbcopilot.providers.memory.in_memory_memory_provider import InMemoryMemoryProvider

__all__ = ["InMemoryMemoryProvider"]
