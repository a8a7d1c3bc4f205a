"""
Chat agents

- gemini_client: one generateContent call, classified into tagged results
- main_agent: the turn orchestrator (function-calling loop)
- subagents/skills: tool execution and user-facing error messages
"""
