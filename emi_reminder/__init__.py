"""
EMI Reminder Voice Agent
========================
A voice assistant backend that reminds borrowers about upcoming loan
installments (EMIs) and answers their questions in a turn-taking conversation.

Features:
- Turn-taking conversation loop (listen → resolve → speak → listen)
- Multi-tier reply fallback (LLM → NLU → rule-based responder)
- Remote speech synthesis with a local fallback
- Sentiment-aware replies

Tech Stack:
- FastAPI (async backend)
- Groq API (LLM replies and sentiment)
- Edge TTS (speech synthesis)
- Browser speech recognition over WebSocket
"""

__version__ = "1.0.0"
__author__ = "EMI Reminder Team"
