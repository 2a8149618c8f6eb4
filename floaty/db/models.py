"""Database table name constants."""

# Table names used by every Supabase query
CHAT_SESSIONS = "chat_sessions"
MESSAGES = "messages"
LLM_CONFIGS = "llm_configs"
AI_ROLES = "ai_roles"
GLOBAL_PROMPTS = "global_prompts"
VOICE_SETTINGS = "voice_settings"
KNOWLEDGE_BASES = "knowledge_bases"
KNOWLEDGE_ENTRIES = "knowledge_entries"
