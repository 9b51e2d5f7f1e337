"""Local-first multi-chat client for the Gemini generateContent API."""
