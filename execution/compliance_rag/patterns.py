"""
Pattern and Prompt Definitions for Compliance RAG

Regex patterns, prompt templates, and canned fallback messages.
Modules import from here instead of defining them inline.
"""

import re

# =============================================================================
# Sentence Splitting (for the chunker)
# =============================================================================

# A boundary is ".", "!" or "?" followed by whitespace; the punctuation stays
# with the preceding sentence.
SENTENCE_BOUNDARY = re.compile(r"(?<=[.!?])\s+")

# =============================================================================
# Policy Cross-Reference Patterns
# =============================================================================

REFERENCE_KEYWORDS = ("clause", "section", "article", "paragraph")

REFERENCE_PATTERN = re.compile(
    r"\b(?:" + "|".join(REFERENCE_KEYWORDS) + r")\s+\d+(?:\.\d+)*",
    re.IGNORECASE,
)

# =============================================================================
# LLM Prompts
# =============================================================================

LLM_PROMPTS = {
    "compliance_system": (
        "You are a legal compliance expert. Provide accurate, professional responses "
        "based on the provided policy documents. Keep responses concise and to the point. "
        "Focus on the key compliance points without unnecessary details."
    ),

    "compliance_user": """You are answering a compliance question using EXCLUSIVELY the policy document excerpts below.

STRICT RULES:
1. Use ONLY information found in the excerpts below
2. If the excerpts don't contain sufficient information, clearly state: 'The provided excerpts do not contain enough information to answer this question'
3. NEVER add external knowledge, assumptions, or general legal advice
4. Quote specific text from excerpts when possible
5. If no excerpts relate to the question, respond: 'No relevant information found in the provided documents'

PROVIDED POLICY EXCERPTS:
==================================================
{excerpts}
==================================================

USER QUESTION: {query}

RESPONSE FORMAT:
- Start with a direct answer if found in excerpts
- Quote relevant text: "According to [Excerpt X]: [quoted text]"
- End with specific section/clause references if applicable
- Use professional, compliance-focused language

ANSWER (based ONLY on the excerpts above):""",

    "excerpt": "[EXCERPT {number}]\n{text}\n------------------------------",

    "general_system": (
        "You are a helpful AI assistant. Provide clear, concise, and helpful responses. "
        "Keep answers brief and to the point. Don't over-explain or provide excessive "
        "details unless specifically asked. If you're not certain about something, "
        "acknowledge the uncertainty."
    ),
}

# =============================================================================
# Degraded-mode Responses
# =============================================================================

FALLBACK_MESSAGES = {
    "compliance": "Service unavailable. Please try again later.",
    "general": "Hello! Service is currently unavailable. Please try again later.",
}
