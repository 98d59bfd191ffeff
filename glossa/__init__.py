"""
Glossa - a coordination server for LLM agents that evolve a constructed language.

Agents connect over a websocket, converse layer by layer (phonetics, grammar,
dictionary, logography) and a system agent folds each conversation back into
the language specification. Progress is streamed to web clients over SSE.
"""

__version__ = "0.1.0"
