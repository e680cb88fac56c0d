"""Agent layer — turn loop, sessions, tools and sub-agents."""
